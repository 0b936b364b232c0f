"""
Purpose: Central configuration for the live dispatch core.
What it does:

Stores all tunable thresholds/caps for assignment and rider health:

TICK_INTERVAL_SECONDS = 10        (matches the live-fleet dashboard poll)
STALE_THRESHOLD_SECONDS = 120
AUTO_ASSIGN_ENABLED = true
MAX_PICKUP_DISTANCE_KM = (unset: no cap)

Values can be overridden from the environment / a .env file, e.g.:
DISPATCH_STALE_THRESHOLD_SECONDS=90

Rule: No logic here - just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "DISPATCH_"


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for assignment ticks and stale-rider eviction.
    """

    # --- Tick cadence ---
    # How often the assignment engine runs (and stale riders are swept).
    tick_interval_seconds: float = 10.0

    # --- Rider health ---
    # A rider with no position/status report for this long is forced OFFLINE.
    stale_threshold_seconds: float = 120.0

    # --- Auto-assignment settings (admin "auto-assignment" screen) ---
    auto_assign_enabled: bool = True
    # Riders farther than this from the pickup are not considered. None = no cap.
    max_pickup_distance_km: Optional[float] = None

    # --- Ranking ---
    # Distances equal to this precision (meters) count as a tie, which is
    # then broken by longest idle time.
    distance_tie_precision_m: float = 1.0

    # --- Bookkeeping ---
    # How many recent assignments are kept for the admin view.
    assignment_history_size: int = 50

    @property
    def stale_threshold(self) -> timedelta:
        return timedelta(seconds=self.stale_threshold_seconds)

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be > 0")

        if self.stale_threshold_seconds <= 0:
            raise ValueError("stale_threshold_seconds must be > 0")

        if self.max_pickup_distance_km is not None and self.max_pickup_distance_km <= 0:
            raise ValueError("max_pickup_distance_km must be > 0 when set")

        if self.distance_tie_precision_m <= 0:
            raise ValueError("distance_tie_precision_m must be > 0")

        if self.assignment_history_size < 0:
            raise ValueError("assignment_history_size must be >= 0")


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p


def policy_from_env() -> DispatchPolicy:
    """
    Build a policy from DISPATCH_* environment variables (a .env file in the
    working directory is loaded first). Unset variables keep their defaults.
    """
    load_dotenv()

    defaults = DispatchPolicy()
    max_distance = os.getenv(f"{ENV_PREFIX}MAX_PICKUP_DISTANCE_KM")

    p = DispatchPolicy(
        tick_interval_seconds=_float_env("TICK_INTERVAL_SECONDS", defaults.tick_interval_seconds),
        stale_threshold_seconds=_float_env("STALE_THRESHOLD_SECONDS", defaults.stale_threshold_seconds),
        auto_assign_enabled=_bool_env("AUTO_ASSIGN_ENABLED", defaults.auto_assign_enabled),
        max_pickup_distance_km=float(max_distance) if max_distance else None,
        distance_tie_precision_m=_float_env("DISTANCE_TIE_PRECISION_M", defaults.distance_tie_precision_m),
        assignment_history_size=int(_float_env("ASSIGNMENT_HISTORY_SIZE", defaults.assignment_history_size)),
    )
    p.validate()
    return p


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(f"{ENV_PREFIX}{name}")
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(f"{ENV_PREFIX}{name}")
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
