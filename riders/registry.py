"""
Purpose: RiderRegistry - authoritative store of rider identity, position,
status and current assignment.
What it does:
- Applies device reports (position, status) per rider, each under that
  rider's own lock so reports from different riders never serialize.
- Derives the rider's zone from the GeoZoneIndex on every position report.
- Evicts stale riders (self-healing against disconnected devices); a stale
  BUSY rider's order goes back to the OrderQueue in the same atomic step.
- Answers "who is eligible for assignment in zone Z".

Rule: the registry never writes order records. Anything that touches an
order and a rider together goes through the bound OrderQueue.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, List, Optional

from zones import GeoZoneIndex

from .models import Rider, RiderSnapshot, RiderStatus, as_utc
from .state_machine import RiderStateException, apply_reported_status

if TYPE_CHECKING:
    from orders.queue import OrderQueue

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "phone", "vehicle", "vehicle_number", "rating")


class RiderRegistry:

    def __init__(self, zone_index: GeoZoneIndex):
        self.zone_index = zone_index
        self._riders: Dict[str, Rider] = {}
        self._lock = threading.Lock()  # guards the dict only, never held across record locks
        self._order_queue: Optional[OrderQueue] = None

    def bind_order_queue(self, order_queue: OrderQueue) -> None:
        """Called by OrderQueue on construction; needed to release orders of evicted riders."""
        self._order_queue = order_queue

    # --- Registration ---

    def register(self, rider_id: str, **profile) -> RiderSnapshot:
        """
        Create a rider (OFFLINE) or update the profile of an existing one.
        Registration never changes status.
        """
        unknown = set(profile) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"unknown rider profile fields: {sorted(unknown)}")

        rider = self._get_or_create(rider_id)
        with rider.lock:
            for key, value in profile.items():
                setattr(rider, key, value)
            return rider.snapshot()

    def deregister(self, rider_id: str, now: Optional[datetime] = None) -> bool:
        """
        Riders are never deleted, only marked OFFLINE. A BUSY rider's order
        is released back to UNASSIGNED.
        """
        now = as_utc(now)
        rider = self._record(rider_id)
        if rider is None:
            logger.warning(f"Deregister for unknown rider {rider_id} dropped")
            return False

        self._force_offline(rider, now, reason="deregistered")
        return True

    # --- Device reports ---

    def report_position(self, rider_id: str, lat: float, lng: float, timestamp: Optional[datetime] = None) -> None:
        """
        Upsert position, recompute zone, update last_update.
        Unknown riders are auto-registered OFFLINE (reports can overtake
        the registration event).
        """
        lat, lng = _validate_coordinates(lat, lng)
        timestamp = as_utc(timestamp)

        rider = self._record(rider_id)
        if rider is None:
            logger.info(f"Position report for unknown rider {rider_id}: auto-registering as OFFLINE")
            rider = self._get_or_create(rider_id)

        zone_id = self.zone_index.resolve_zone_id(lat, lng)

        with rider.lock:
            if rider.last_update is not None and timestamp < rider.last_update:
                logger.debug(
                    f"Dropping out-of-order position for rider {rider_id}: "
                    f"{timestamp.isoformat()} < {rider.last_update.isoformat()}"
                )
                return
            rider.location = (lat, lng)
            rider.zone_id = zone_id
            rider.last_update = timestamp

    def report_status(self, rider_id: str, status: str | RiderStatus, now: Optional[datetime] = None) -> bool:
        """
        Apply an explicit status report. Returns True if the status changed.
        Rejected transitions (anything into or out of BUSY) are logged, not raised.
        """
        status = RiderStatus.parse(status)
        now = as_utc(now)

        rider = self._record(rider_id)
        if rider is None:
            logger.info(f"Status report for unknown rider {rider_id}: auto-registering")
            rider = self._get_or_create(rider_id)

        with rider.lock:
            # any status report is a sign of life, even a repeated or rejected one
            if rider.last_update is None or now > rider.last_update:
                rider.last_update = now
            try:
                changed = apply_reported_status(rider, status, now)
            except RiderStateException as e:
                logger.warning(f"Rejected status report: {e}")
                return False
            if changed:
                logger.info(f"Rider {rider_id} is now {status.value}")
            return changed

    # --- Self-healing ---

    def mark_stale_offline(self, now: datetime, stale_threshold: timedelta | float) -> List[str]:
        """
        Force OFFLINE every non-OFFLINE rider whose last_update is older than
        the threshold. Returns the ids of evicted riders.
        """
        now = as_utc(now)
        if not isinstance(stale_threshold, timedelta):
            stale_threshold = timedelta(seconds=stale_threshold)
        cutoff = now - stale_threshold

        evicted: List[str] = []
        for rider in self._records():
            if not _is_stale(rider, cutoff):
                continue
            if self._force_offline(rider, now, reason="stale", cutoff=cutoff):
                evicted.append(rider.id)

        if evicted:
            logger.info(f"Evicted {len(evicted)} stale riders: {evicted}")
        return evicted

    def _force_offline(self, rider: Rider, now: datetime, *, reason: str, cutoff: Optional[datetime] = None) -> bool:
        if rider.status == RiderStatus.BUSY and self._order_queue is not None:
            order_id = self._order_queue.release_rider(
                rider.id, to_status=RiderStatus.OFFLINE, now=now, only_if_stale_before=cutoff
            )
            if order_id is not None:
                logger.warning(f"Rider {rider.id} {reason}: order {order_id} released back to UNASSIGNED")
                return True
            # the rider lost its order meanwhile; fall through and re-check under its lock

        with rider.lock:
            if cutoff is not None and not _is_stale(rider, cutoff):
                return False
            if rider.status == RiderStatus.OFFLINE:
                return False
            if rider.status == RiderStatus.BUSY:
                # only reachable without a bound queue, or if the rider got a new order mid-eviction
                logger.warning(f"Rider {rider.id} is BUSY; {reason} eviction deferred")
                return False
            rider.status = RiderStatus.OFFLINE
            rider.idle_since = None
            rider.version += 1
        logger.info(f"Rider {rider.id} marked OFFLINE ({reason})")
        return True

    def refresh_zones(self) -> int:
        """Recompute every rider's zone after a zone rebuild. Returns how many changed."""
        changed = 0
        for rider in self._records():
            with rider.lock:
                if rider.location is None:
                    continue
                zone_id = self.zone_index.resolve_zone_id(*rider.location)
                if zone_id != rider.zone_id:
                    rider.zone_id = zone_id
                    changed += 1
        return changed

    # --- Queries ---

    def list_eligible(self, zone_id: Optional[str] = None, exclude_busy: bool = True) -> List[RiderSnapshot]:
        """
        Candidate riders for assignment: ONLINE (or BUSY when exclude_busy is
        False), with a known position, in `zone_id`. `zone_id=None` means any zone.
        """
        allowed = {RiderStatus.ONLINE} if exclude_busy else {RiderStatus.ONLINE, RiderStatus.BUSY}

        eligible: List[RiderSnapshot] = []
        for rider in self._records():
            with rider.lock:
                if rider.status not in allowed or rider.location is None:
                    continue
                if zone_id is not None and rider.zone_id != zone_id:
                    continue
                eligible.append(rider.snapshot())
        return eligible

    def get(self, rider_id: str) -> Optional[RiderSnapshot]:
        rider = self._record(rider_id)
        if rider is None:
            return None
        with rider.lock:
            return rider.snapshot()

    def all(self) -> List[RiderSnapshot]:
        snapshots = []
        for rider in self._records():
            with rider.lock:
                snapshots.append(rider.snapshot())
        return snapshots

    def __len__(self) -> int:
        with self._lock:
            return len(self._riders)

    def __contains__(self, rider_id: str) -> bool:
        with self._lock:
            return rider_id in self._riders

    # --- Internal record access (OrderQueue commit path) ---

    def _record(self, rider_id: str) -> Optional[Rider]:
        with self._lock:
            return self._riders.get(rider_id)

    def _records(self) -> List[Rider]:
        with self._lock:
            return list(self._riders.values())

    def _get_or_create(self, rider_id: str) -> Rider:
        if not rider_id:
            raise ValueError("rider id is required")
        with self._lock:
            rider = self._riders.get(rider_id)
            if rider is None:
                rider = Rider(id=rider_id)
                self._riders[rider_id] = rider
            return rider


def _is_stale(rider: Rider, cutoff: datetime) -> bool:
    if rider.status == RiderStatus.OFFLINE:
        return False
    return rider.last_update is None or rider.last_update < cutoff


def _validate_coordinates(lat, lng):
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValueError(f"invalid coordinates lat={lat!r}, lng={lng!r}") from None
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
        raise ValueError(f"coordinates out of range: lat={lat}, lng={lng}")
    return lat, lng
