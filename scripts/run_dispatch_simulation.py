import json
import os
from datetime import datetime, timedelta

import numpy as np
import pandas as pd

from dispatch.policy import policy_from_env
from dispatch.scheduler import TickScheduler
from dispatch.service import FleetDispatchService
from orders.models import OrderStatus
from riders.models import RiderStatus
from zones.geometry import haversine_km

from scripts.generate_mock_data import generate_mock_orders, generate_mock_riders, generate_mock_zones

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Simulated rider speed, km per tick (10s ticks -> ~36 km/h)
KM_PER_TICK = 0.1
# Chance per tick that an online rider's phone drops off the network for good
DROPOUT_PROBABILITY = 0.002


def load_inputs():
    """
    Reads sampledata/ when present (see generate_mock_data.py),
    otherwise generates a fresh in-memory fleet.
    """
    sample_dir = os.path.join(BASE_DIR, "sampledata")
    zones_path = os.path.join(sample_dir, "zones.json")
    riders_path = os.path.join(sample_dir, "riders.csv")
    orders_path = os.path.join(sample_dir, "orders.csv")

    if all(os.path.exists(p) for p in (zones_path, riders_path, orders_path)):
        with open(zones_path, "r") as f:
            zones = json.load(f)
        return zones, pd.read_csv(riders_path), pd.read_csv(orders_path)

    return (
        generate_mock_zones(output_file=None),
        generate_mock_riders(output_file=None),
        generate_mock_orders(output_file=None),
    )


def step_towards(position, target, km):
    """Move `km` along the straight line to target; snaps onto it when close."""
    distance = haversine_km(position, target)
    if distance <= km:
        return target, True
    fraction = km / distance
    return (
        position[0] + (target[0] - position[0]) * fraction,
        position[1] + (target[1] - position[1]) * fraction,
    ), False


def run_simulation(ticks=360, seed=7, output_path=None):
    np.random.seed(seed)
    print("=== STARTING LIVE DISPATCH SIMULATION ===")

    # 1. Load data
    zones, riders_df, orders_df = load_inputs()
    orders_df["created_at"] = pd.to_datetime(orders_df["created_at"], utc=True)
    orders_df = orders_df.sort_values("created_at").reset_index(drop=True)
    print(f"Loaded {len(zones)} zones, {len(riders_df)} riders and {len(orders_df)} orders.\n")

    # 2. Configure system
    service = FleetDispatchService(policy_from_env(), zones=zones)
    scheduler = TickScheduler(service)
    tick = timedelta(seconds=scheduler.interval_seconds)
    clock: datetime = orders_df["created_at"].min().to_pydatetime()

    positions = {}
    dropped_out = set()
    for row in riders_df.itertuples():
        service.riders.register(row.rider_id, name=row.name, vehicle=row.vehicle, rating=float(row.rating))
        positions[row.rider_id] = (float(row.lat), float(row.lon))
        service.on_rider_position({"riderId": row.rider_id, "lat": row.lat, "lng": row.lon, "timestamp": clock})
        service.on_rider_status({"riderId": row.rider_id, "status": row.status}, now=clock)

    pending = list(orders_df.itertuples())
    log = []

    # 3. Tick loop
    for tick_number in range(ticks):
        clock += tick

        # 3a. Release orders created up to now
        while pending and pending[0].created_at.to_pydatetime() <= clock:
            row = pending.pop(0)
            service.on_order_created({
                "orderId": row.order_id,
                "pickup": {"lat": row.pickup_lat, "lng": row.pickup_lon, "label": row.pickup_address},
                "dropoff": {"lat": row.dropoff_lat, "lng": row.dropoff_lon, "label": row.dropoff_address},
                "createdAt": row.created_at.to_pydatetime(),
            })

        # 3b. Riders move and report
        for rider in service.riders.all():
            if rider.id in dropped_out or rider.status == RiderStatus.OFFLINE:
                continue
            if rider.status == RiderStatus.ONLINE and np.random.random() < DROPOUT_PROBABILITY:
                dropped_out.add(rider.id)
                print(f"[DROPOUT] {rider.id} stopped reporting at tick {tick_number}")
                continue

            if rider.current_order_id is not None:
                order = service.orders.get(rider.current_order_id)
                heading_to_pickup = order.status == OrderStatus.ASSIGNED
                target = order.pickup.coordinates if heading_to_pickup else order.dropoff.coordinates
                positions[rider.id], arrived = step_towards(positions[rider.id], target, KM_PER_TICK)
                if arrived:
                    new_status = "PICKED_UP" if heading_to_pickup else "DELIVERED"
                    service.on_delivery_progress({"orderId": order.id, "newStatus": new_status}, now=clock)

            lat, lng = positions[rider.id]
            service.on_rider_position({"riderId": rider.id, "lat": lat, "lng": lng, "timestamp": clock})

        # 3c. Heartbeat: stale sweep, then assignment tick
        result = scheduler.run_cycle(clock)
        for record in result.assignments:
            log.append({
                "tick": tick_number,
                "order_id": record.order_id,
                "rider_id": record.rider_id,
                "distance_km": round(record.distance_km, 3),
                "attempts": record.attempts,
                "wait_seconds": (record.assigned_at - service.orders.get(record.order_id).created_at).total_seconds(),
            })

    # 4. Report
    snapshot = service.snapshot(clock)
    stats = service.orders.stats()
    results = pd.DataFrame(log)

    output_path = output_path or os.path.join(BASE_DIR, "dispatch_results.csv")
    results.to_csv(output_path, index=False)

    print("\n=== SIMULATION COMPLETE ===")
    print(f"Riders: {snapshot.stats.online} online, {snapshot.stats.busy} busy, {snapshot.stats.offline} offline")
    print(f"Orders: {stats.delivered_count} delivered, {stats.assigned_count + stats.picked_up_count} in flight, "
          f"{stats.unassigned_count} waiting, {len(pending)} not yet created")
    if not results.empty:
        print(f"Assignments: {len(results)} (re-assigned after rider failure: "
              f"{results['order_id'].duplicated().sum()})")
        print(f"Pickup distance km: mean {results['distance_km'].mean():.2f}, p90 {results['distance_km'].quantile(0.9):.2f}")
        print(f"Wait before assignment s: mean {results['wait_seconds'].mean():.0f}")
    print(f"Results written to '{output_path}'.")
    return results


if __name__ == "__main__":
    run_simulation()
