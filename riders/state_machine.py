from datetime import datetime

from .models import Rider, RiderStatus


class RiderStateException(Exception):
    """Raised when an invalid rider transition is attempted."""
    pass


def ensure_claimable(rider: Rider, expected_version: int = None) -> None:
    """
    A rider can take an order only while ONLINE with no order in hand.
    `expected_version` lets optimistic callers abort if the rider changed
    since they ranked it.
    """
    if rider.status != RiderStatus.ONLINE:
        raise RiderStateException(f"Rider {rider.id} is {rider.status.value}, not ONLINE")

    if rider.current_order_id is not None:
        raise RiderStateException(f"Rider {rider.id} already holds order {rider.current_order_id}")

    if rider.location is None:
        raise RiderStateException(f"Rider {rider.id} has no known position")

    if expected_version is not None and rider.version != expected_version:
        raise RiderStateException(
            f"Rider {rider.id} changed since candidate selection (version {rider.version} != {expected_version})"
        )


def claim_rider(rider: Rider, order_id: str) -> Rider:
    """
    ONLINE -> BUSY. Must be preceded by ensure_claimable under the same lock.
    """
    rider.status = RiderStatus.BUSY
    rider.current_order_id = order_id
    rider.idle_since = None
    rider.version += 1
    return rider


def release_rider(rider: Rider, now: datetime, to_status: RiderStatus = RiderStatus.ONLINE) -> Rider:
    """
    BUSY -> ONLINE when the order completes or is cancelled,
    BUSY -> OFFLINE when the rider is evicted as stale or deregistered.
    """
    if to_status == RiderStatus.BUSY:
        raise RiderStateException(f"Rider {rider.id} cannot be released into BUSY")

    rider.current_order_id = None
    rider.status = to_status
    rider.idle_since = now if to_status == RiderStatus.ONLINE else None
    rider.version += 1
    return rider


def apply_reported_status(rider: Rider, status: RiderStatus, now: datetime) -> bool:
    """
    Device-reported status change. Returns False when nothing changed.

    OFFLINE <-> ONLINE is always allowed. BUSY is never accepted from a
    report, and a BUSY rider is not moved by reports: it is freed by
    delivery, cancellation or stale eviction.
    """
    if status == RiderStatus.BUSY:
        raise RiderStateException(f"Rider {rider.id}: BUSY can only be entered through an assignment")

    if rider.status == RiderStatus.BUSY:
        raise RiderStateException(
            f"Rider {rider.id} is BUSY with order {rider.current_order_id}; status report {status.value} ignored"
        )

    if rider.status == status:
        return False

    rider.status = status
    rider.idle_since = now if status == RiderStatus.ONLINE else None
    rider.version += 1
    return True
