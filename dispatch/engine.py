"""
Purpose: AssignmentEngine - the per-tick matcher.
What it does:
For each unassigned order (oldest first):
  1. resolve the pickup zone
  2. ask the registry for eligible riders (same zone, or any ONLINE rider
     when the pickup is outside every zone)
  3. rank them (dispatch/scoring.py)
  4. try the atomic commit on the best rider; on a lost race try the next;
     if nobody can be claimed, the order simply waits for the next tick

Greedy: no lookahead, no batching.
Safety: never double-assigns (the OrderQueue commit guarantees it).
Liveness: an unassigned order is reconsidered on every tick.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, List, Optional

from orders.models import OrderSnapshot, OrderStatus
from orders.queue import OrderQueue
from riders.models import as_utc
from riders.registry import RiderRegistry
from zones.geometry import haversine_km
from zones.index import GeoZoneIndex

from .policy import DispatchPolicy, default_dispatch_policy
from .scoring import rank_candidates

logger = logging.getLogger(__name__)

AUTO = "auto"
MANUAL = "manual"


@dataclass(frozen=True)
class AssignmentRecord:
    order_id: str
    rider_id: str
    distance_km: Optional[float]
    method: str
    assigned_at: datetime
    # 1 = first ranked candidate accepted; >1 means earlier candidates were lost to races
    attempts: int = 1

    def to_dict(self):
        return {
            "orderId": self.order_id,
            "riderId": self.rider_id,
            "distanceKm": round(self.distance_km, 3) if self.distance_km is not None else None,
            "method": self.method,
            "assignedAt": self.assigned_at.isoformat(),
            "attempts": self.attempts,
        }


@dataclass
class TickResult:
    started_at: datetime
    assignments: List[AssignmentRecord] = field(default_factory=list)
    unassigned_order_ids: List[str] = field(default_factory=list)
    races_lost: int = 0
    skipped: bool = False


class AssignmentEngine:
    """
    Coordinates unassigned orders, eligible riders and zones on each tick.
    """

    def __init__(
        self,
        riders: RiderRegistry,
        orders: OrderQueue,
        zones: GeoZoneIndex,
        policy: Optional[DispatchPolicy] = None,
    ):
        self.riders = riders
        self.orders = orders
        self.zones = zones
        self.policy = policy or default_dispatch_policy()

        # single-flight: two ticks must never race on the same orders
        self._tick_lock = threading.Lock()
        self._history_lock = threading.Lock()
        self._history: Deque[AssignmentRecord] = deque(maxlen=self.policy.assignment_history_size)
        self.auto_assigned_total = 0
        self.manual_assigned_total = 0

    def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        now = as_utc(now)

        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Assignment tick skipped: previous tick still running")
            return TickResult(started_at=now, skipped=True)

        try:
            return self._run_tick(now)
        finally:
            self._tick_lock.release()

    def _run_tick(self, now: datetime) -> TickResult:
        result = TickResult(started_at=now)
        pending = self.orders.list_unassigned()

        if not self.policy.auto_assign_enabled:
            result.unassigned_order_ids = [order.id for order in pending]
            return result

        for order in pending:
            record = self._assign_one(order, now, result)
            if record is None:
                result.unassigned_order_ids.append(order.id)
            else:
                result.assignments.append(record)

        if result.assignments or result.races_lost:
            logger.info(
                f"Tick at {now.isoformat()}: {len(result.assignments)} assigned, "
                f"{len(result.unassigned_order_ids)} waiting, {result.races_lost} races lost"
            )
        return result

    def _assign_one(self, order: OrderSnapshot, now: datetime, result: TickResult) -> Optional[AssignmentRecord]:
        pickup = order.pickup.coordinates
        zone = self.zones.resolve_zone(*pickup)

        # pickup outside every zone must not strand the order: fall back to any ONLINE rider
        candidates = self.riders.list_eligible(zone.id if zone else None)
        ranked = rank_candidates(
            pickup,
            candidates,
            now,
            tie_precision_m=self.policy.distance_tie_precision_m,
            max_distance_km=self.policy.max_pickup_distance_km,
        )

        if not ranked:
            logger.debug(f"Order {order.id}: no eligible riders (zone={zone.id if zone else None})")
            return None

        for attempt, candidate in enumerate(ranked, start=1):
            committed = self.orders.mark_assigned(
                order.id,
                candidate.rider.id,
                expected_rider_version=candidate.rider.version,
                now=now,
            )
            if committed:
                record = AssignmentRecord(
                    order_id=order.id,
                    rider_id=candidate.rider.id,
                    distance_km=candidate.distance_km,
                    method=AUTO,
                    assigned_at=now,
                    attempts=attempt,
                )
                self._remember(record)
                return record

            result.races_lost += 1
            logger.debug(f"Order {order.id}: lost race for rider {candidate.rider.id}, trying next")

            # the order itself may have been taken (manual assign, cancel): stop trying
            current = self.orders.get(order.id)
            if current is None or current.status != OrderStatus.UNASSIGNED:
                return None

        return None

    def assign_manually(self, order_id: str, rider_id: str, now: Optional[datetime] = None) -> Optional[AssignmentRecord]:
        """
        Administrative override: skip ranking, keep every commit-time check.
        Returns None when the commit is rejected.
        """
        now = as_utc(now)
        if not self.orders.mark_assigned(order_id, rider_id, now=now):
            return None

        order = self.orders.get(order_id)
        rider = self.riders.get(rider_id)
        distance = None
        if order is not None and rider is not None and rider.location is not None:
            distance = haversine_km(rider.location, order.pickup.coordinates)

        record = AssignmentRecord(order_id=order_id, rider_id=rider_id, distance_km=distance, method=MANUAL, assigned_at=now)
        self._remember(record)
        logger.info(f"Order {order_id} manually assigned to rider {rider_id}")
        return record

    def recent_assignments(self, limit: Optional[int] = None) -> List[AssignmentRecord]:
        """Newest first."""
        with self._history_lock:
            records = list(reversed(self._history))
        return records[:limit] if limit is not None else records

    def _remember(self, record: AssignmentRecord) -> None:
        with self._history_lock:
            self._history.append(record)
            if record.method == MANUAL:
                self.manual_assigned_total += 1
            else:
                self.auto_assigned_total += 1
