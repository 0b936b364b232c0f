import json
import os
from datetime import datetime, timezone, timedelta

import numpy as np
import pandas as pd

# Center around Harare, Zimbabwe
CENTER_LAT = -17.824858
CENTER_LON = 31.053028

# Zones are a grid of squares around the center, this many degrees wide (~6.6km)
ZONE_SIZE_DEG = 0.06
ZONE_NAMES = ["Avondale", "Borrowdale", "CBD", "Eastlea"]


def generate_mock_zones(rows=2, cols=2, output_file="mock_zones.json"):
    """
    A rows x cols grid of square delivery zones centred on Harare.
    Adjacent squares share an edge, so the grid also exercises the
    "on the border belongs to no zone" convention.
    """
    origin_lat = CENTER_LAT - rows * ZONE_SIZE_DEG / 2
    origin_lon = CENTER_LON - cols * ZONE_SIZE_DEG / 2

    zones = []
    for row in range(rows):
        for col in range(cols):
            south = origin_lat + row * ZONE_SIZE_DEG
            west = origin_lon + col * ZONE_SIZE_DEG
            north, east = south + ZONE_SIZE_DEG, west + ZONE_SIZE_DEG
            index = row * cols + col
            zones.append({
                "id": f"z_{index + 1}",
                "name": ZONE_NAMES[index] if index < len(ZONE_NAMES) else f"Zone {index + 1}",
                "polygon": [[round(south, 6), round(west, 6)], [round(south, 6), round(east, 6)],
                            [round(north, 6), round(east, 6)], [round(north, 6), round(west, 6)]],
                "deliveryFee": float(np.round(np.random.uniform(1.0, 4.0), 2)),
                "isActive": True,
            })

    if output_file:
        with open(output_file, "w") as f:
            json.dump(zones, f, indent=2)
        print(f"✅ Generated {len(zones)} zones and saved to '{output_file}'")
    return zones


def generate_mock_riders(num_riders=40, output_file="mock_riders.csv"):
    """
    Riders scattered around the city center (roughly +/- 8km).
    80% come online, the rest stay offline.
    """
    data = []
    for rider_index in range(num_riders):
        data.append({
            "rider_id": f"RDR-{str(rider_index + 1).zfill(3)}",
            "name": f"Rider {rider_index + 1}",
            "vehicle": np.random.choice(["motorbike", "bicycle", "car"], p=[0.7, 0.2, 0.1]),
            "lat": np.round(CENTER_LAT + np.random.uniform(-0.075, 0.075), 6),
            "lon": np.round(CENTER_LON + np.random.uniform(-0.075, 0.075), 6),
            "status": np.random.choice(["ONLINE", "OFFLINE"], p=[0.8, 0.2]),
            "rating": np.round(np.random.uniform(3.5, 5.0), 1),
        })

    df = pd.DataFrame(data)
    if output_file:
        df.to_csv(output_file, index=False)
        print(f"✅ Generated {num_riders} riders and saved to '{output_file}'")
    return df


def generate_mock_orders(num_orders=200, num_merchants=30, output_file="mock_orders.csv"):
    """
    Delivery orders picked up from a fixed set of merchants, created over the
    last hour. A few merchants sit outside every zone on purpose, to exercise
    the "any ONLINE rider" fallback.
    """
    merchants = []
    for merchant_index in range(num_merchants):
        # Merchants placed within ~7km, slightly wider than the zone grid
        merchants.append({
            "name": f"Restaurant {merchant_index + 1}",
            "lat": CENTER_LAT + np.random.uniform(-0.065, 0.065),
            "lon": CENTER_LON + np.random.uniform(-0.065, 0.065),
        })

    data = []
    now = datetime.now(timezone.utc)

    for order_index in range(num_orders):
        merchant = merchants[np.random.randint(0, num_merchants)]

        # Dropoff placed within ~5km of the merchant
        dropoff_lat = merchant["lat"] + np.random.uniform(-0.045, 0.045)
        dropoff_lon = merchant["lon"] + np.random.uniform(-0.045, 0.045)

        data.append({
            "order_id": f"o_{str(order_index + 1).zfill(6)}",
            "created_at": (now - timedelta(seconds=int(np.random.randint(0, 3600)))).isoformat(),
            "pickup_lat": np.round(merchant["lat"], 6),
            "pickup_lon": np.round(merchant["lon"], 6),
            "pickup_address": merchant["name"],
            "dropoff_lat": np.round(dropoff_lat, 6),
            "dropoff_lon": np.round(dropoff_lon, 6),
            "dropoff_address": f"Customer {np.random.randint(1000, 9999)}",
        })

    df = pd.DataFrame(data).sort_values("created_at").reset_index(drop=True)
    if output_file:
        df.to_csv(output_file, index=False)
        print(f"✅ Generated {num_orders} orders and saved to '{output_file}'")

        print("\nTop 5 Merchants:")
        counts = df['pickup_address'].value_counts().head(5)
        for name, count in counts.items():
            print(f"  {name}: {count} orders")
    return df


if __name__ == "__main__":
    base_dir = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "sampledata")
    os.makedirs(base_dir, exist_ok=True)

    generate_mock_zones(output_file=os.path.join(base_dir, "zones.json"))
    generate_mock_riders(num_riders=40, output_file=os.path.join(base_dir, "riders.csv"))
    generate_mock_orders(num_orders=200, num_merchants=40, output_file=os.path.join(base_dir, "orders.csv"))
