#Purpose: Plane/sphere geometry used by zoning and dispatch ranking.
#Point-in-polygon via ray casting (lng = x, lat = y).
#Great-circle (haversine) distance for straight-line rider -> pickup ranking.
#No road network here: reachability is not modelled by the dispatch core.

from __future__ import annotations

import math
from typing import Sequence, Tuple

#internal coordinate type :(lat,lng)
LatLon = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0

# tolerance for "point lies on an edge" checks, in degrees
EDGE_EPSILON = 1e-12


def haversine_km(a: LatLon, b: LatLon) -> float:
    """Great-circle distance between two (lat, lng) points in kilometers."""
    lat1, lng1 = math.radians(a[0]), math.radians(a[1])
    lat2, lng2 = math.radians(b[0]), math.radians(b[1])

    delta_lat = lat2 - lat1
    delta_lng = lng2 - lng1

    h = math.sin(delta_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def point_on_segment(point: LatLon, start: LatLon, end: LatLon) -> bool:
    """
    True when `point` lies on the closed segment start-end (vertices included).
    """
    py, px = point
    ay, ax = start
    by, bx = end

    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > EDGE_EPSILON:
        return False

    return (
        min(ax, bx) - EDGE_EPSILON <= px <= max(ax, bx) + EDGE_EPSILON
        and min(ay, by) - EDGE_EPSILON <= py <= max(ay, by) + EDGE_EPSILON
    )


def point_in_polygon(point: LatLon, ring: Sequence[LatLon]) -> bool:
    """
    Ray-casting containment test against an implicitly closed ring.

    A horizontal ray is cast from the point towards +lng; an odd number of
    edge crossings means inside. Points on an edge or a vertex are treated
    as OUTSIDE so that resolution is deterministic across adjacent zones.
    """
    n = len(ring)
    if n < 3:
        return False

    py, px = point
    inside = False

    for i in range(n):
        start = ring[i]
        end = ring[(i + 1) % n]

        # boundary convention: on-edge is outside
        if point_on_segment(point, start, end):
            return False

        ay, ax = start
        by, bx = end

        # half-open rule on latitude so a vertex crossing is counted once
        if (ay > py) != (by > py):
            crossing_lng = ax + (py - ay) * (bx - ax) / (by - ay)
            if px < crossing_lng:
                inside = not inside

    return inside
