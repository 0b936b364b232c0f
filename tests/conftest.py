from datetime import datetime, timedelta, timezone

import pytest

from dispatch.policy import DispatchPolicy
from dispatch.service import FleetDispatchService

T0 = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)

# Two unit squares side by side along the equator; they share the lng=1 edge.
ZONE_A = {"id": "zone_a", "name": "Avondale", "polygon": [[0, 0], [0, 1], [1, 1], [1, 0]], "deliveryFee": 2.5}
ZONE_B = {"id": "zone_b", "name": "Borrowdale", "polygon": [[0, 1], [0, 2], [1, 2], [1, 1]], "deliveryFee": 3.0}


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def bring_online(service, rider_id, lat, lng, when=T0):
    """Position report followed by an ONLINE status report, both at `when`."""
    service.on_rider_position({"riderId": rider_id, "lat": lat, "lng": lng, "timestamp": when})
    service.on_rider_status({"riderId": rider_id, "status": "ONLINE"}, now=when)


def create_order(service, order_id, pickup, dropoff=(0.2, 0.2), created_at=T0):
    return service.on_order_created({
        "orderId": order_id,
        "pickup": {"lat": pickup[0], "lng": pickup[1], "label": f"vendor for {order_id}"},
        "dropoff": {"lat": dropoff[0], "lng": dropoff[1], "label": f"customer for {order_id}"},
        "createdAt": created_at,
    })


@pytest.fixture
def zone_config():
    return [dict(ZONE_A), dict(ZONE_B)]


@pytest.fixture
def policy():
    return DispatchPolicy(stale_threshold_seconds=120.0)


@pytest.fixture
def service(policy, zone_config):
    return FleetDispatchService(policy, zones=zone_config)
