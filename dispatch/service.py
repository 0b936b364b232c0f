"""
Purpose: FleetDispatchService - the single, explicitly owned fleet store.
What it does:
Wires GeoZoneIndex, RiderRegistry, OrderQueue, AssignmentEngine and
SnapshotBuilder together and is the only object collaborators talk to:

Consumed from collaborators:
- on_order_created / on_delivery_progress   (order subsystem)
- on_rider_position / on_rider_status        (rider devices)
- replace_zones                              (zone configuration)

Exposed to collaborators:
- snapshot()                 dashboard poll
- manual_assign(order, rider) administrative override
- rider_detail(rider)        drill-down on one rider

Construct one per process (or per test); nothing here is a global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from orders.models import OrderSnapshot, OrderStatus
from orders.queue import OrderQueue
from riders.models import RiderSnapshot, as_utc
from riders.registry import RiderRegistry
from zones.index import GeoZoneIndex
from zones.models import Zone

from .engine import AssignmentEngine, AssignmentRecord, TickResult
from .events import DeliveryProgress, OrderCreated, RiderPosition, RiderStatusReport
from .policy import DispatchPolicy, default_dispatch_policy
from .snapshot import FleetSnapshot, SnapshotBuilder

logger = logging.getLogger(__name__)


class UnknownEntityError(LookupError):
    """Raised by the exposed operations when an id does not exist."""
    pass


@dataclass(frozen=True)
class RiderDetail:
    rider: RiderSnapshot
    active_order: Optional[OrderSnapshot]

    def to_dict(self) -> dict:
        data = self.rider.to_dict()
        data["idleSince"] = self.rider.idle_since.isoformat() if self.rider.idle_since else None
        data["activeOrder"] = self.active_order.to_dict() if self.active_order else None
        return data


class FleetDispatchService:

    def __init__(
        self,
        policy: Optional[DispatchPolicy] = None,
        zones: Optional[Iterable[Mapping[str, Any] | Zone]] = None,
    ):
        self.policy = policy or default_dispatch_policy()
        self.policy.validate()

        self.zone_index = GeoZoneIndex(zones)
        self.riders = RiderRegistry(self.zone_index)
        self.orders = OrderQueue(self.riders)
        self.engine = AssignmentEngine(self.riders, self.orders, self.zone_index, self.policy)
        self.snapshots = SnapshotBuilder(self.riders, self.orders, self.zone_index)

    # --- Consumed from collaborators ---

    def on_order_created(self, payload: Mapping[str, Any]) -> bool:
        event = OrderCreated.from_payload(payload)
        return self.orders.enqueue(event.order)

    def on_delivery_progress(self, payload: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
        event = DeliveryProgress.from_payload(payload)
        if event.new_status == OrderStatus.PICKED_UP:
            return self.orders.mark_picked_up(event.order_id, now=now)
        return self.orders.mark_terminal(event.order_id, event.new_status, now=now)

    def on_rider_position(self, payload: Mapping[str, Any]) -> None:
        event = RiderPosition.from_payload(payload)
        self.riders.report_position(event.rider_id, event.lat, event.lng, event.timestamp)

    def on_rider_status(self, payload: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
        event = RiderStatusReport.from_payload(payload)
        return self.riders.report_status(event.rider_id, event.status, now=now)

    def replace_zones(self, zones: Iterable[Mapping[str, Any] | Zone]) -> List[Zone]:
        """
        Full zone-list replacement. Raises ZoneConfigError (previous zones
        stay active) on any invalid polygon.
        """
        loaded = self.zone_index.replace_zones(zones)
        moved = self.riders.refresh_zones()
        if moved:
            logger.info(f"{moved} riders changed zone after zone rebuild")
        return loaded

    def cancel_order(self, order_id: str, now: Optional[datetime] = None) -> bool:
        return self.orders.mark_terminal(order_id, OrderStatus.CANCELLED, now=now)

    # --- Periodic work ---

    def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        return self.engine.run_tick(now)

    def evict_stale(self, now: Optional[datetime] = None) -> List[str]:
        now = as_utc(now)
        return self.riders.mark_stale_offline(now, self.policy.stale_threshold)

    # --- Exposed to collaborators ---

    def snapshot(self, now: Optional[datetime] = None) -> FleetSnapshot:
        return self.snapshots.build_snapshot(now)

    def manual_assign(self, order_id: str, rider_id: str, now: Optional[datetime] = None) -> Optional[AssignmentRecord]:
        """
        Returns the assignment record, or None if the commit checks rejected it
        (order not UNASSIGNED, rider not ONLINE/idle). Unknown ids raise.
        """
        if self.orders.get(order_id) is None:
            raise UnknownEntityError(f"unknown order {order_id}")
        if self.riders.get(rider_id) is None:
            raise UnknownEntityError(f"unknown rider {rider_id}")
        return self.engine.assign_manually(order_id, rider_id, now=now)

    def rider_detail(self, rider_id: str) -> RiderDetail:
        rider = self.riders.get(rider_id)
        if rider is None:
            raise UnknownEntityError(f"unknown rider {rider_id}")

        active_order = None
        if rider.current_order_id is not None:
            active_order = self.orders.get(rider.current_order_id)
        return RiderDetail(rider=rider, active_order=active_order)

    def recent_assignments(self, limit: Optional[int] = None) -> List[AssignmentRecord]:
        return self.engine.recent_assignments(limit)
