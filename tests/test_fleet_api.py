import pytest
from django.urls import resolve
from rest_framework.test import APIRequestFactory

from fleet.views import (
    AssignmentHistoryView,
    FleetSnapshotView,
    ManualAssignView,
    RiderDetailView,
    RiderLocationView,
    RiderStatusView,
)

from conftest import at, bring_online, create_order


@pytest.fixture
def factory():
    return APIRequestFactory()


@pytest.fixture
def busy_fleet(service):
    bring_online(service, "rider_1", 0.5, 0.5)
    bring_online(service, "rider_2", 0.5, 0.7)
    create_order(service, "order_1", (0.5, 0.5), created_at=at(-20))
    create_order(service, "order_2", (0.5, 0.9), created_at=at(-10))
    service.run_tick(at(1))
    create_order(service, "order_3", (0.5, 0.5), created_at=at(2))
    return service


def test_routes_resolve_to_fleet_views():
    assert resolve("/api/v1/fleet/live/").func.cls is FleetSnapshotView
    assert resolve("/api/v1/fleet/assign/").func.cls is ManualAssignView
    assert resolve("/api/v1/fleet/riders/location/").func.cls is RiderLocationView
    assert resolve("/api/v1/fleet/riders/status/").func.cls is RiderStatusView
    assert resolve("/api/v1/fleet/riders/rider_9/").func.cls is RiderDetailView


def test_live_snapshot(factory, busy_fleet):
    view = FleetSnapshotView.as_view(service=busy_fleet)

    response = view(factory.get("/api/v1/fleet/live/"))

    assert response.status_code == 200
    assert response.data["success"] is True
    data = response.data["data"]
    assert data["stats"]["busy"] == 2
    assert data["stats"]["unassignedOrders"] == len(data["unassignedOrders"]) == 1
    assert {rider["activeOrder"]["id"] for rider in data["riders"]} == {"order_1", "order_2"}


def test_live_snapshot_status_filter(factory, busy_fleet):
    view = FleetSnapshotView.as_view(service=busy_fleet)

    response = view(factory.get("/api/v1/fleet/live/", {"status": "online"}))
    assert response.status_code == 200
    assert response.data["data"]["riders"] == []
    assert response.data["data"]["stats"]["totalRiders"] == 2

    response = view(factory.get("/api/v1/fleet/live/", {"status": "flying"}))
    assert response.status_code == 400
    assert response.data["success"] is False


def test_manual_assign_endpoint(factory, service):
    bring_online(service, "rider_1", 0.5, 0.5)
    create_order(service, "order_1", (0.5, 0.5))
    create_order(service, "order_2", (0.5, 0.5))
    view = ManualAssignView.as_view(service=service)

    # 1. Success
    response = view(factory.post("/api/v1/fleet/assign/", {"orderId": "order_1", "riderId": "rider_1"}, format="json"))
    assert response.status_code == 201
    assert response.data["data"]["method"] == "manual"

    # 2. Rider now busy -> conflict
    response = view(factory.post("/api/v1/fleet/assign/", {"orderId": "order_2", "riderId": "rider_1"}, format="json"))
    assert response.status_code == 409

    # 3. Unknown order -> not found
    response = view(factory.post("/api/v1/fleet/assign/", {"orderId": "ghost", "riderId": "rider_1"}, format="json"))
    assert response.status_code == 404

    # 4. Missing field -> bad request
    response = view(factory.post("/api/v1/fleet/assign/", {"orderId": "order_2"}, format="json"))
    assert response.status_code == 400
    assert "riderId" in response.data["errors"]


def test_assignment_history_endpoint(factory, busy_fleet):
    view = AssignmentHistoryView.as_view(service=busy_fleet)

    response = view(factory.get("/api/v1/fleet/assignments/"))

    data = response.data["data"]
    assert data["autoAssigned"] == 2
    assert data["manualAssigned"] == 0
    assert {record["orderId"] for record in data["recentAssignments"]} == {"order_1", "order_2"}


def test_rider_detail_endpoint(factory, busy_fleet):
    view = RiderDetailView.as_view(service=busy_fleet)

    response = view(factory.get("/api/v1/fleet/riders/rider_1/"), rider_id="rider_1")
    assert response.status_code == 200
    assert response.data["data"]["activeOrder"]["id"] == "order_1"

    response = view(factory.get("/api/v1/fleet/riders/ghost/"), rider_id="ghost")
    assert response.status_code == 404


def test_rider_location_endpoint(factory, service):
    view = RiderLocationView.as_view(service=service)

    response = view(factory.post(
        "/api/v1/fleet/riders/location/",
        {"riderId": "rider_7", "latitude": 0.5, "longitude": 1.5, "isOnline": True},
        format="json",
    ))

    assert response.status_code == 200
    assert response.data["data"] == {"status": "online", "zone": "zone_b"}
    assert service.riders.get("rider_7").location == (0.5, 1.5)

    response = view(factory.post(
        "/api/v1/fleet/riders/location/", {"riderId": "rider_7", "latitude": 120, "longitude": 1.5}, format="json",
    ))
    assert response.status_code == 400


def test_rider_status_endpoint(factory, service):
    view = RiderStatusView.as_view(service=service)

    response = view(factory.post("/api/v1/fleet/riders/status/", {"riderId": "rider_1", "status": "online"}, format="json"))
    assert response.status_code == 200
    assert response.data["data"] == {"changed": True, "status": "online"}

    # BUSY cannot be pushed from a device
    response = view(factory.post("/api/v1/fleet/riders/status/", {"riderId": "rider_1", "status": "busy"}, format="json"))
    assert response.status_code == 400
