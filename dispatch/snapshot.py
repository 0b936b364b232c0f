"""
Purpose: SnapshotBuilder - the read model polled by the live-fleet dashboard.
What it does:
Reads riders, zones and unassigned orders without mutating anything and
derives the aggregate stats from the very same lists, so a snapshot can
never disagree with itself (e.g. stats.unassigned_orders is by
construction len(unassigned_orders)).
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from orders.models import OrderSnapshot
from orders.queue import OrderQueue
from riders.models import RiderSnapshot, RiderStatus, as_utc
from riders.registry import RiderRegistry
from zones.index import GeoZoneIndex
from zones.models import Zone


@dataclass(frozen=True)
class FleetStats:
    total_riders: int
    online: int
    busy: int
    offline: int
    unassigned_orders: int
    riders_by_zone: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRiders": self.total_riders,
            "online": self.online,
            "busy": self.busy,
            "offline": self.offline,
            "unassignedOrders": self.unassigned_orders,
            "ridersByZone": dict(self.riders_by_zone),
        }


@dataclass(frozen=True)
class FleetSnapshot:
    taken_at: datetime
    riders: List[RiderSnapshot]
    zones: List[Zone]
    unassigned_orders: List[OrderSnapshot]
    stats: FleetStats
    # rider id -> the order it is carrying, for busy riders
    active_orders: Dict[str, OrderSnapshot] = field(default_factory=dict)

    def filter_riders(self, status: Optional[str | RiderStatus]) -> List[RiderSnapshot]:
        """Rider list filtered by status ('all' / None = everyone). Stats stay fleet-wide."""
        if status is None or str(status).lower() == "all":
            return list(self.riders)
        wanted = RiderStatus.parse(status)
        return [rider for rider in self.riders if rider.status == wanted]

    def to_dict(self, status: Optional[str] = None) -> Dict[str, Any]:
        riders = []
        for rider in self.filter_riders(status):
            entry = rider.to_dict()
            active = self.active_orders.get(rider.id)
            entry["activeOrder"] = active.to_dict() if active else None
            riders.append(entry)

        return {
            "takenAt": self.taken_at.isoformat(),
            "riders": riders,
            "zones": [zone.to_dict() for zone in self.zones],
            "unassignedOrders": [order.to_dict() for order in self.unassigned_orders],
            "stats": self.stats.to_dict(),
        }


class SnapshotBuilder:

    def __init__(self, riders: RiderRegistry, orders: OrderQueue, zones: GeoZoneIndex):
        self.riders = riders
        self.orders = orders
        self.zones = zones

    def build_snapshot(self, now: Optional[datetime] = None, *, unassigned_limit: Optional[int] = None) -> FleetSnapshot:
        now = as_utc(now)

        riders = self.riders.all()
        # map overlay: inactive zones stay configured but are not drawn
        zones = [zone for zone in self.zones.zones() if zone.is_active]
        unassigned = self.orders.list_unassigned(limit=unassigned_limit)

        status_counts = Counter(rider.status for rider in riders)
        zone_counts = Counter(rider.zone_id for rider in riders if rider.zone_id is not None)

        active_orders: Dict[str, OrderSnapshot] = {}
        for rider in riders:
            if rider.current_order_id is None:
                continue
            order = self.orders.get(rider.current_order_id)
            if order is not None and order.rider_id == rider.id:
                active_orders[rider.id] = order

        stats = FleetStats(
            total_riders=len(riders),
            online=status_counts[RiderStatus.ONLINE],
            busy=status_counts[RiderStatus.BUSY],
            offline=status_counts[RiderStatus.OFFLINE],
            unassigned_orders=len(unassigned),
            riders_by_zone=dict(zone_counts),
        )

        return FleetSnapshot(
            taken_at=now,
            riders=riders,
            zones=zones,
            unassigned_orders=unassigned,
            stats=stats,
            active_orders=active_orders,
        )
