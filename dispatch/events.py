"""
Purpose: Shapes of the events collaborators push into the dispatch core.
What it does:
Parses raw payloads (dicts, as they come off HTTP / a message bus) into
typed events. A missing or mistyped required field is the one error the
core lets propagate: it is a caller contract violation, not an
operational condition.

Payloads (camelCase, as produced by the admin/rider apps):
- order created     {orderId, pickup:{lat,lng,label}, dropoff:{lat,lng,label}, createdAt}
- delivery progress {orderId, newStatus}
- rider position    {riderId, lat, lng, timestamp}
- rider status      {riderId, status}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from orders.models import Order, OrderStatus
from riders.models import RiderStatus, as_utc


class InvalidEventError(ValueError):
    """Raised when an event payload is missing required fields or has the wrong shape."""
    pass


PROGRESS_STATUSES = (OrderStatus.PICKED_UP, OrderStatus.DELIVERED, OrderStatus.CANCELLED)


@dataclass(frozen=True)
class OrderCreated:
    order: Order

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> OrderCreated:
        order_id = _required_str(payload, "orderId")
        pickup = _stop(payload, "pickup")
        dropoff = _stop(payload, "dropoff")
        created_at = parse_timestamp(payload.get("createdAt"), field_name="createdAt")

        order = Order.new(
            order_id,
            (pickup["lat"], pickup["lng"]),
            (dropoff["lat"], dropoff["lng"]),
            pickup_label=pickup["label"],
            dropoff_label=dropoff["label"],
            created_at=created_at,
        )
        return cls(order=order)


@dataclass(frozen=True)
class DeliveryProgress:
    order_id: str
    new_status: OrderStatus

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> DeliveryProgress:
        order_id = _required_str(payload, "orderId")
        raw = _required(payload, "newStatus")
        try:
            status = OrderStatus.parse(raw)
        except ValueError as exc:
            raise InvalidEventError(str(exc)) from None
        if status not in PROGRESS_STATUSES:
            raise InvalidEventError(f"newStatus must be one of {[s.value for s in PROGRESS_STATUSES]}, got {raw!r}")
        return cls(order_id=order_id, new_status=status)


@dataclass(frozen=True)
class RiderPosition:
    rider_id: str
    lat: float
    lng: float
    timestamp: datetime

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RiderPosition:
        return cls(
            rider_id=_required_str(payload, "riderId"),
            lat=_coordinate(payload, "lat", 90.0),
            lng=_coordinate(payload, "lng", 180.0),
            timestamp=parse_timestamp(payload.get("timestamp"), field_name="timestamp"),
        )


@dataclass(frozen=True)
class RiderStatusReport:
    rider_id: str
    status: RiderStatus

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RiderStatusReport:
        rider_id = _required_str(payload, "riderId")
        try:
            status = RiderStatus.parse(_required(payload, "status"))
        except ValueError as exc:
            raise InvalidEventError(str(exc)) from None
        return cls(rider_id=rider_id, status=status)


def parse_timestamp(value: Any, *, field_name: str = "timestamp", default: Optional[datetime] = None) -> datetime:
    """
    Accepts a datetime, an ISO-8601 string or epoch seconds. Naive values
    are taken as UTC. A missing value means "now".
    """
    if value is None:
        return as_utc(default)

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise InvalidEventError(f"{field_name} must be a timestamp, got {value!r}")
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(float(value), tz=timezone.utc)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            raise InvalidEventError(f"{field_name} is not ISO-8601: {value!r}") from None
    else:
        raise InvalidEventError(f"{field_name} must be a timestamp, got {type(value).__name__}")

    return as_utc(parsed)


def _required(payload: Mapping[str, Any], key: str) -> Any:
    if not isinstance(payload, Mapping):
        raise InvalidEventError(f"event payload must be an object, got {type(payload).__name__}")
    value = payload.get(key)
    if value is None or value == "":
        raise InvalidEventError(f"missing required field {key!r}")
    return value


def _required_str(payload: Mapping[str, Any], key: str) -> str:
    value = _required(payload, key)
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise InvalidEventError(f"{key} must be a string id, got {value!r}")
    return str(value)


def _coordinate(payload: Mapping[str, Any], key: str, bound: float) -> float:
    value = _required(payload, key)
    if isinstance(value, bool):
        raise InvalidEventError(f"{key} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidEventError(f"{key} must be a number, got {value!r}") from None
    if not -bound <= number <= bound:
        raise InvalidEventError(f"{key} out of range: {number}")
    return number


def _stop(payload: Mapping[str, Any], key: str) -> dict:
    stop = _required(payload, key)
    if not isinstance(stop, Mapping):
        raise InvalidEventError(f"{key} must be an object with lat/lng/label")
    return {
        "lat": _coordinate(stop, "lat", 90.0),
        "lng": _coordinate(stop, "lng", 180.0),
        "label": str(stop.get("label") or ""),
    }
