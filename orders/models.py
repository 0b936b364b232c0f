"""
Purpose: Domain models for the Orders capability.
What it does:
- Defines core data structures:
- Order (id, pickup stop, dropoff stop, timestamps, status, assigned rider)
- Stop (coordinates + human label, e.g. vendor name / customer address)
- OrderSnapshot (read-only copy handed out by the OrderQueue)

Defines enums/constants:
- OrderStatus = CREATED | UNASSIGNED | ASSIGNED | PICKED_UP | DELIVERED | CANCELLED

Rule: No dispatch logic. Models only.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

LatLon = Tuple[float, float]


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    UNASSIGNED = "UNASSIGNED"
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: str | OrderStatus) -> OrderStatus:
        if isinstance(value, OrderStatus):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"unknown order status {value!r}") from None

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    @property
    def holds_rider(self) -> bool:
        return self in (OrderStatus.ASSIGNED, OrderStatus.PICKED_UP)


@dataclass(frozen=True)
class Stop:
    """
    A pickup or dropoff point: coordinates plus the label shown on the dashboard.
    """
    coordinates: LatLon
    label: str = ""

    @property
    def lat(self) -> float:
        return self.coordinates[0]

    @property
    def lng(self) -> float:
        return self.coordinates[1]

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng, "label": self.label}


@dataclass(frozen=True)
class OrderSnapshot:
    id: str
    pickup: Stop
    dropoff: Stop
    status: OrderStatus
    rider_id: Optional[str]
    created_at: datetime
    assigned_at: Optional[datetime]
    picked_up_at: Optional[datetime]
    closed_at: Optional[datetime]
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "pickup": self.pickup.to_dict(),
            "dropoff": self.dropoff.to_dict(),
            "riderId": self.rider_id,
            "createdAt": self.created_at.isoformat(),
            "assignedAt": self.assigned_at.isoformat() if self.assigned_at else None,
        }


@dataclass
class Order:
    """
    Represents a single order in flight. Owned by the OrderQueue; mutated
    only under `lock`.
    """

    id: str
    pickup: Stop
    dropoff: Stop

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: OrderStatus = OrderStatus.CREATED
    rider_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    version: int = 0

    lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @classmethod
    def new(
        cls,
        order_id: str,
        pickup: LatLon,
        dropoff: LatLon,
        *,
        pickup_label: str = "",
        dropoff_label: str = "",
        created_at: Optional[datetime] = None,
    ) -> Order:
        return cls(
            id=order_id,
            pickup=Stop(coordinates=(float(pickup[0]), float(pickup[1])), label=pickup_label),
            dropoff=Stop(coordinates=(float(dropoff[0]), float(dropoff[1])), label=dropoff_label),
            created_at=created_at or datetime.now(timezone.utc),
        )

    def snapshot(self) -> OrderSnapshot:
        return OrderSnapshot(
            id=self.id,
            pickup=self.pickup,
            dropoff=self.dropoff,
            status=self.status,
            rider_id=self.rider_id,
            created_at=self.created_at,
            assigned_at=self.assigned_at,
            picked_up_at=self.picked_up_at,
            closed_at=self.closed_at,
            version=self.version,
        )
