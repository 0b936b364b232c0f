import math
import threading
from datetime import datetime

import pytest

from dispatch.engine import AUTO, MANUAL, AssignmentEngine
from dispatch.policy import DispatchPolicy
from dispatch.scoring import rank_candidates
from dispatch.service import FleetDispatchService
from orders.models import OrderStatus
from riders.models import RiderSnapshot, RiderStatus
from zones.geometry import EARTH_RADIUS_KM

from conftest import T0, at, bring_online, create_order

# ~0.009 degrees of latitude is ~1 km
KM = 1.0 / 111.195


def test_nearest_eligible_rider_wins(service):
    pickup = (0.5, 0.5)
    bring_online(service, "five_km", 0.5 + 5 * KM, 0.5)
    bring_online(service, "one_km", 0.5 - 1 * KM, 0.5)
    bring_online(service, "three_km", 0.5 + 3 * KM, 0.5)
    create_order(service, "order_1", pickup)

    result = service.run_tick(at(1))

    assert [(r.order_id, r.rider_id) for r in result.assignments] == [("order_1", "one_km")]
    assert result.assignments[0].distance_km == pytest.approx(1.0, abs=0.01)
    assert result.assignments[0].method == AUTO
    assert service.riders.get("one_km").status == RiderStatus.BUSY
    assert service.riders.get("three_km").status == RiderStatus.ONLINE


def test_equal_distance_goes_to_longest_idle(service):
    # same latitude, mirrored longitude: identical distance to the pickup
    bring_online(service, "recent", 0.5, 0.51, when=at(-60))
    bring_online(service, "waiting_longer", 0.5, 0.49, when=at(-300))
    create_order(service, "order_1", (0.5, 0.5))

    result = service.run_tick(at(1))

    assert result.assignments[0].rider_id == "waiting_longer"


def test_in_zone_rider_beats_closer_rider_in_other_zone(service):
    """
    R1 1km in zone A, R2 3km in zone A, R3 0.5km across the border in zone B.
    The pickup is in zone A, so R1 gets it.
    """
    pickup = (0.5, 0.997)
    bring_online(service, "R1", 0.5, 0.997 - 1 * KM)
    bring_online(service, "R2", 0.5, 0.997 - 3 * KM)
    bring_online(service, "R3", 0.5, 0.997 + 0.5 * KM)
    assert service.riders.get("R3").zone_id == "zone_b"

    create_order(service, "O1", pickup, created_at=T0)
    result = service.run_tick(at(1))

    assert [(r.order_id, r.rider_id) for r in result.assignments] == [("O1", "R1")]
    assert service.orders.get("O1").rider_id == "R1"
    assert service.riders.get("R3").status == RiderStatus.ONLINE


def test_pickup_outside_all_zones_falls_back_to_any_online_rider(service):
    bring_online(service, "in_b", 0.5, 1.5)
    bring_online(service, "in_a", 0.5, 0.5)
    create_order(service, "order_1", (3.0, 3.0))

    result = service.run_tick(at(1))

    # nearest of all ONLINE riders, whatever their zone
    assert result.assignments[0].rider_id == "in_b"


def test_no_eligible_rider_leaves_order_waiting(service):
    bring_online(service, "in_b", 0.5, 1.5)
    create_order(service, "order_1", (0.5, 0.5))

    result = service.run_tick(at(1))

    assert result.assignments == []
    assert result.unassigned_order_ids == ["order_1"]
    assert service.orders.get("order_1").status == OrderStatus.UNASSIGNED

    # a rider showing up in the zone picks it up on the next tick
    bring_online(service, "in_a", 0.5, 0.6, when=at(5))
    result = service.run_tick(at(10))
    assert result.assignments[0].rider_id == "in_a"


def test_oldest_order_served_first_when_riders_are_scarce(service):
    bring_online(service, "only_rider", 0.5, 0.5)
    create_order(service, "newer", (0.5, 0.5), created_at=at(-10))
    create_order(service, "older", (0.6, 0.6), created_at=at(-20))

    result = service.run_tick(at(1))

    assert [r.order_id for r in result.assignments] == ["older"]
    assert result.unassigned_order_ids == ["newer"]


def test_each_rider_takes_at_most_one_order_per_tick(service):
    bring_online(service, "rider_1", 0.5, 0.5)
    bring_online(service, "rider_2", 0.5, 0.7)
    for i in range(4):
        create_order(service, f"order_{i}", (0.5, 0.5 + i * 0.01), created_at=at(i - 10))

    result = service.run_tick(at(1))

    assert len(result.assignments) == 2
    assert len({r.rider_id for r in result.assignments}) == 2
    assert len(result.unassigned_order_ids) == 2


def test_lost_race_retries_next_candidate(service, monkeypatch):
    bring_online(service, "nearest", 0.5, 0.5)
    bring_online(service, "second", 0.5, 0.55)
    create_order(service, "order_1", (0.5, 0.5))

    real_mark_assigned = service.orders.mark_assigned

    def steal_nearest_first(order_id, rider_id, **kwargs):
        if rider_id == "nearest":
            # another actor claims the rider between ranking and commit
            service.riders.report_status("nearest", "OFFLINE", now=at(1))
        return real_mark_assigned(order_id, rider_id, **kwargs)

    monkeypatch.setattr(service.orders, "mark_assigned", steal_nearest_first)

    result = service.run_tick(at(2))

    assert result.races_lost == 1
    assert result.assignments[0].rider_id == "second"
    assert result.assignments[0].attempts == 2


def test_tick_is_single_flight(service):
    bring_online(service, "rider_1", 0.5, 0.5)
    create_order(service, "order_1", (0.5, 0.5))

    # hold the tick lock as a running tick would
    service.engine._tick_lock.acquire()
    try:
        skipped = service.run_tick(at(1))
    finally:
        service.engine._tick_lock.release()

    assert skipped.skipped is True
    assert skipped.assignments == []
    assert service.orders.get("order_1").status == OrderStatus.UNASSIGNED

    assert service.run_tick(at(2)).assignments[0].order_id == "order_1"


def test_concurrent_ticks_and_manual_assign_never_double_assign(service):
    for i in range(6):
        bring_online(service, f"rider_{i}", 0.5, 0.3 + i * 0.05)
    for i in range(10):
        create_order(service, f"order_{i}", (0.5, 0.5), created_at=at(i - 20))

    start = threading.Barrier(4)

    def ticker():
        start.wait()
        for _ in range(5):
            service.run_tick(at(1))

    def admin():
        start.wait()
        for i in range(10):
            for j in range(6):
                service.manual_assign(f"order_{i}", f"rider_{j}", now=at(1))

    threads = [threading.Thread(target=ticker) for _ in range(3)] + [threading.Thread(target=admin)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    busy = [rider for rider in service.riders.all() if rider.status == RiderStatus.BUSY]
    assert len(busy) == 6
    assert len({rider.current_order_id for rider in busy}) == 6
    for rider in busy:
        assert service.orders.get(rider.current_order_id).rider_id == rider.id
    assert service.engine.auto_assigned_total + service.engine.manual_assigned_total == 6


def test_max_pickup_distance_cap(zone_config):
    service = FleetDispatchService(DispatchPolicy(max_pickup_distance_km=2.0), zones=zone_config)
    bring_online(service, "far", 0.5 + 5 * KM, 0.5)
    create_order(service, "order_1", (0.5, 0.5))

    assert service.run_tick(at(1)).assignments == []

    bring_online(service, "near", 0.5 + 1 * KM, 0.5, when=at(2))
    assert service.run_tick(at(3)).assignments[0].rider_id == "near"


def test_auto_assign_disabled_only_allows_manual(zone_config):
    service = FleetDispatchService(DispatchPolicy(auto_assign_enabled=False), zones=zone_config)
    bring_online(service, "rider_1", 0.5, 0.5)
    create_order(service, "order_1", (0.5, 0.5))

    result = service.run_tick(at(1))
    assert result.assignments == []
    assert result.unassigned_order_ids == ["order_1"]

    record = service.manual_assign("order_1", "rider_1", now=at(2))
    assert record.method == MANUAL
    assert service.engine.manual_assigned_total == 1
    assert service.engine.auto_assigned_total == 0


def test_recent_assignments_newest_first_and_bounded(zone_config):
    service = FleetDispatchService(DispatchPolicy(assignment_history_size=2), zones=zone_config)
    for i in range(3):
        bring_online(service, f"rider_{i}", 0.5, 0.5 + i * 0.1)
        create_order(service, f"order_{i}", (0.5, 0.5 + i * 0.1), created_at=at(i - 10))
        service.run_tick(at(i))

    history = service.recent_assignments()
    assert [r.order_id for r in history] == ["order_2", "order_1"]
    assert [r.order_id for r in service.recent_assignments(limit=1)] == ["order_2"]
    assert service.engine.auto_assigned_total == 3


def test_rank_candidates_orders_by_distance_then_idle_then_id(service):
    bring_online(service, "b", 0.5, 0.51, when=at(-100))
    bring_online(service, "a", 0.5, 0.49, when=at(-100))
    bring_online(service, "c", 0.5, 0.52, when=at(-500))

    ranked = rank_candidates((0.5, 0.5), service.riders.list_eligible(), T0)

    assert [candidate.rider.id for candidate in ranked] == ["a", "b", "c"]


def test_engine_can_be_built_without_service(service):
    engine = AssignmentEngine(service.riders, service.orders, service.zone_index)
    assert engine.policy.auto_assign_enabled is True
    assert engine.run_tick(at(1)).assignments == []


def _idle_rider_north_of_origin(rider_id, metres, idle_since):
    km_per_degree = math.pi * EARTH_RADIUS_KM / 180.0
    return RiderSnapshot(
        id=rider_id,
        status=RiderStatus.ONLINE,
        location=(metres / 1000.0 / km_per_degree, 0.0),
        zone_id=None,
        current_order_id=None,
        last_update=idle_since,
        idle_since=idle_since,
        version=1,
    )


def test_near_equal_distances_tie_across_rounding_boundary():
    # 10.4999 m and 10.5001 m are within a metre of each other
    near = _idle_rider_north_of_origin("near", 10.4999, at(-10))
    patient = _idle_rider_north_of_origin("patient", 10.5001, at(-600))
    far = _idle_rider_north_of_origin("far", 12.0, at(-900))

    ranked = rank_candidates((0.0, 0.0), [far, near, patient], T0)

    # 1. Longest idle wins among the tied pair
    # 2. The rider 1.5 m beyond the nearest is not tied, however long it waited
    assert [candidate.rider.id for candidate in ranked] == ["patient", "near", "far"]


def test_tick_accepts_naive_clock(service):
    bring_online(service, "rider_1", 0.5, 0.5)
    create_order(service, "order_1", (0.5, 0.55))

    result = service.run_tick(datetime(2026, 3, 2, 12, 0, 1))

    assert [(r.order_id, r.rider_id) for r in result.assignments] == [("order_1", "rider_1")]
    assert result.assignments[0].assigned_at == at(1)
    assert service.snapshot(datetime(2026, 3, 2, 12, 0, 2)).taken_at == at(2)
