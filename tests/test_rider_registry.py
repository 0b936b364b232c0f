from datetime import datetime, timedelta

import pytest

from orders.queue import OrderQueue
from orders.models import Order, OrderStatus
from riders import RiderRegistry, RiderStatus
from zones import GeoZoneIndex

from conftest import T0, at


@pytest.fixture
def registry(zone_config):
    return RiderRegistry(GeoZoneIndex(zone_config))


@pytest.fixture
def queue(registry):
    return OrderQueue(registry)


def test_position_report_auto_registers_offline_and_resolves_zone(registry):
    registry.report_position("rider_1", 0.5, 0.5, T0)

    rider = registry.get("rider_1")
    assert rider.status == RiderStatus.OFFLINE
    assert rider.location == (0.5, 0.5)
    assert rider.zone_id == "zone_a"
    assert rider.last_update == T0

    # moving across the border changes the derived zone
    registry.report_position("rider_1", 0.5, 1.5, at(5))
    assert registry.get("rider_1").zone_id == "zone_b"

    registry.report_position("rider_1", 5.0, 5.0, at(10))
    assert registry.get("rider_1").zone_id is None


def test_out_of_order_position_is_dropped(registry):
    registry.report_position("rider_1", 0.5, 0.5, at(10))
    registry.report_position("rider_1", 0.5, 1.5, at(5))

    rider = registry.get("rider_1")
    assert rider.location == (0.5, 0.5)
    assert rider.last_update == at(10)


def test_invalid_coordinates_raise(registry):
    with pytest.raises(ValueError):
        registry.report_position("rider_1", 91.0, 0.0, T0)
    with pytest.raises(ValueError):
        registry.report_position("rider_1", "north", 0.0, T0)
    assert "rider_1" not in registry


def test_register_sets_profile_without_changing_status(registry):
    registry.report_status("rider_1", "online", now=T0)
    snapshot = registry.register("rider_1", name="Tendai", vehicle="motorbike", vehicle_number="ABC-1234", rating=4.8)

    assert snapshot.name == "Tendai"
    assert snapshot.vehicle_number == "ABC-1234"
    assert snapshot.status == RiderStatus.ONLINE

    with pytest.raises(ValueError):
        registry.register("rider_1", favourite_colour="red")


def test_status_reports(registry):
    # 1. OFFLINE -> ONLINE starts the idle clock
    assert registry.report_status("rider_1", RiderStatus.ONLINE, now=T0) is True
    rider = registry.get("rider_1")
    assert rider.status == RiderStatus.ONLINE
    assert rider.idle_since == T0

    # 2. Same status again is a no-op
    assert registry.report_status("rider_1", "ONLINE", now=at(5)) is False

    # 3. BUSY can never be reported from outside
    assert registry.report_status("rider_1", "BUSY", now=at(6)) is False
    assert registry.get("rider_1").status == RiderStatus.ONLINE

    # 4. ONLINE -> OFFLINE
    assert registry.report_status("rider_1", "offline", now=at(7)) is True
    assert registry.get("rider_1").idle_since is None

    with pytest.raises(ValueError):
        registry.report_status("rider_1", "ASLEEP", now=at(8))


def test_list_eligible_filters_by_zone_status_and_position(registry):
    registry.report_position("in_a", 0.5, 0.5, T0)
    registry.report_status("in_a", "ONLINE", now=T0)
    registry.report_position("in_b", 0.5, 1.5, T0)
    registry.report_status("in_b", "ONLINE", now=T0)
    registry.report_position("offline_in_a", 0.4, 0.4, T0)
    # online but never reported a position
    registry.report_status("no_position", "ONLINE", now=T0)

    assert {r.id for r in registry.list_eligible("zone_a")} == {"in_a"}
    assert {r.id for r in registry.list_eligible("zone_b")} == {"in_b"}
    assert {r.id for r in registry.list_eligible(None)} == {"in_a", "in_b"}


def test_list_eligible_can_include_busy(registry, queue):
    registry.report_position("rider_1", 0.5, 0.5, T0)
    registry.report_status("rider_1", "ONLINE", now=T0)
    queue.enqueue(Order.new("order_1", (0.5, 0.6), (0.2, 0.2), created_at=T0))
    assert queue.mark_assigned("order_1", "rider_1", now=at(1))

    assert registry.list_eligible("zone_a") == []
    assert [r.id for r in registry.list_eligible("zone_a", exclude_busy=False)] == ["rider_1"]


def test_stale_online_rider_goes_offline(registry):
    registry.report_position("stale", 0.5, 0.5, T0)
    registry.report_status("stale", "ONLINE", now=T0)
    registry.report_position("fresh", 0.5, 0.6, T0)
    registry.report_status("fresh", "ONLINE", now=T0)
    registry.report_position("fresh", 0.5, 0.61, at(100))

    evicted = registry.mark_stale_offline(at(150), 120)

    assert evicted == ["stale"]
    assert registry.get("stale").status == RiderStatus.OFFLINE
    assert registry.get("fresh").status == RiderStatus.ONLINE

    # already OFFLINE riders are not evicted twice
    assert registry.mark_stale_offline(at(500), 120) == ["fresh"]


def test_stale_busy_rider_releases_order(registry, queue):
    registry.report_position("rider_1", 0.5, 0.5, T0)
    registry.report_status("rider_1", "ONLINE", now=T0)
    queue.enqueue(Order.new("order_1", (0.5, 0.6), (0.2, 0.2), created_at=T0))
    assert queue.mark_assigned("order_1", "rider_1", now=at(1))

    evicted = registry.mark_stale_offline(at(200), 120)

    assert evicted == ["rider_1"]
    rider = registry.get("rider_1")
    assert rider.status == RiderStatus.OFFLINE
    assert rider.current_order_id is None

    order = queue.get("order_1")
    assert order.status == OrderStatus.UNASSIGNED
    assert order.rider_id is None
    assert [o.id for o in queue.list_unassigned()] == ["order_1"]


def test_deregister_marks_offline_and_keeps_rider(registry, queue):
    registry.report_position("rider_1", 0.5, 0.5, T0)
    registry.report_status("rider_1", "ONLINE", now=T0)
    queue.enqueue(Order.new("order_1", (0.5, 0.6), (0.2, 0.2), created_at=T0))
    queue.mark_assigned("order_1", "rider_1", now=at(1))

    assert registry.deregister("rider_1", now=at(2)) is True

    assert "rider_1" in registry
    assert registry.get("rider_1").status == RiderStatus.OFFLINE
    assert queue.get("order_1").status == OrderStatus.UNASSIGNED
    assert registry.deregister("ghost") is False


def test_refresh_zones_after_rebuild(registry):
    registry.report_position("rider_1", 0.5, 0.5, T0)
    registry.zone_index.replace_zones([{"id": "zone_c", "polygon": [[0, 0], [0, 3], [3, 3], [3, 0]]}])

    assert registry.refresh_zones() == 1
    assert registry.get("rider_1").zone_id == "zone_c"


def test_status_reports_count_as_heartbeats(registry, queue):
    """
    A rider that only sends status reports is alive, whether the report
    changes anything or is rejected.
    """
    registry.report_position("idle", 0.5, 0.5, T0)
    registry.report_status("idle", "ONLINE", now=T0)
    registry.report_position("busy", 0.5, 0.6, T0)
    registry.report_status("busy", "ONLINE", now=T0)
    queue.enqueue(Order.new("order_1", (0.5, 0.6), (0.2, 0.2), created_at=T0))
    assert queue.mark_assigned("order_1", "busy", now=at(1))

    # 1. Repeated ONLINE: no change, but a sign of life
    assert registry.report_status("idle", "ONLINE", now=at(100)) is False
    assert registry.get("idle").last_update == at(100)

    # 2. Rejected report from a BUSY rider: still a sign of life
    assert registry.report_status("busy", "OFFLINE", now=at(100)) is False
    assert registry.get("busy").last_update == at(100)

    # 3. A late report never rewinds the clock
    registry.report_status("idle", "ONLINE", now=at(50))
    assert registry.get("idle").last_update == at(100)

    assert registry.mark_stale_offline(at(150), 120) == []
    assert registry.get("busy").status == RiderStatus.BUSY
    assert queue.get("order_1").status == OrderStatus.ASSIGNED


def test_naive_timestamps_are_taken_as_utc(registry, queue):
    naive_t0 = datetime(2026, 3, 2, 12, 0, 0)

    # 1. Naive position, then a status report on the default (aware) clock
    registry.report_position("rider_1", 0.5, 0.5, naive_t0)
    assert registry.get("rider_1").last_update == T0
    assert registry.report_status("rider_1", "ONLINE") is True
    assert registry.get("rider_1").last_update.tzinfo is not None

    # 2. Naive clocks on the sweep and on the commit path
    assert registry.mark_stale_offline(naive_t0, 120) == []
    queue.enqueue(Order.new("order_1", (0.5, 0.6), (0.2, 0.2), created_at=naive_t0))
    assert queue.get("order_1").created_at == T0
    assert queue.mark_assigned("order_1", "rider_1", now=naive_t0 + timedelta(seconds=5))
    assert queue.get("order_1").assigned_at == at(5)
    assert queue.release_rider("rider_1", now=naive_t0, only_if_stale_before=naive_t0) is None
    assert queue.prune_terminal(before=naive_t0) == 0
