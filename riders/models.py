"""
Purpose: Core data models for the riders domain.
What it does:
Defines the live Rider record owned by the RiderRegistry, and the immutable
RiderSnapshot handed to everyone else (engine, snapshot builder, API).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

LatLon = Tuple[float, float]


def as_utc(value: Optional[datetime] = None) -> datetime:
    """
    Every timestamp inside the core is timezone-aware UTC. Naive values are
    taken as UTC, aware ones are converted, None means now.
    """
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RiderStatus(str, Enum):
    """
    OFFLINE <-> ONLINE <-> BUSY.
    BUSY is only ever entered through an order assignment.
    """
    OFFLINE = "OFFLINE"
    ONLINE = "ONLINE"
    BUSY = "BUSY"

    @classmethod
    def parse(cls, value: str | RiderStatus) -> RiderStatus:
        if isinstance(value, RiderStatus):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"unknown rider status {value!r}") from None


@dataclass(frozen=True)
class RiderSnapshot:
    """
    A read-only copy of a Rider at a specific point in time.
    """
    id: str
    status: RiderStatus
    location: Optional[LatLon]
    zone_id: Optional[str]
    current_order_id: Optional[str]
    last_update: Optional[datetime]
    idle_since: Optional[datetime]
    version: int

    name: str = ""
    phone: Optional[str] = None
    vehicle: str = ""
    vehicle_number: Optional[str] = None
    rating: Optional[float] = None
    total_deliveries: int = 0

    def idle_seconds(self, now: datetime) -> float:
        """
        How long the rider has been ONLINE without an assignment.
        Falls back to last_update for riders that never went idle explicitly.
        """
        since = self.idle_since or self.last_update
        if since is None:
            return 0.0
        return max(0.0, (as_utc(now) - since).total_seconds())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "vehicle": self.vehicle,
            "vehicleNumber": self.vehicle_number,
            "status": self.status.value.lower(),
            "lat": self.location[0] if self.location else None,
            "lng": self.location[1] if self.location else None,
            "zone": self.zone_id,
            "rating": self.rating,
            "totalDeliveries": self.total_deliveries,
            "currentOrderId": self.current_order_id,
            "lastUpdate": self.last_update.isoformat() if self.last_update else None,
        }


@dataclass
class Rider:
    """
    Live, mutable rider record. Only the RiderRegistry and the OrderQueue
    commit path touch it, always under `lock`.

    `version` is bumped on every status / assignment change (not on plain
    position updates), so optimistic commits can detect that the rider they
    ranked is no longer in the state they saw.
    """
    id: str
    name: str = ""
    phone: Optional[str] = None
    vehicle: str = ""
    vehicle_number: Optional[str] = None
    rating: Optional[float] = None

    location: Optional[LatLon] = None
    status: RiderStatus = RiderStatus.OFFLINE
    last_update: Optional[datetime] = None
    current_order_id: Optional[str] = None
    zone_id: Optional[str] = None
    idle_since: Optional[datetime] = None
    total_deliveries: int = 0
    version: int = 0

    lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def snapshot(self) -> RiderSnapshot:
        return RiderSnapshot(
            id=self.id,
            status=self.status,
            location=self.location,
            zone_id=self.zone_id,
            current_order_id=self.current_order_id,
            last_update=self.last_update,
            idle_since=self.idle_since,
            version=self.version,
            name=self.name,
            phone=self.phone,
            vehicle=self.vehicle,
            vehicle_number=self.vehicle_number,
            rating=self.rating,
            total_deliveries=self.total_deliveries,
        )
