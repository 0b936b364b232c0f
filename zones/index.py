"""
Purpose: GeoZoneIndex - "which delivery zone (if any) contains point P".

Zones are few (tens), so the index is a plain ordered tuple of prepared
zones (zone + bounding box) swapped wholesale on every configuration change.
Configuration order is authoritative when zones overlap: first match wins.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Tuple, Any

from .geometry import LatLon, point_in_polygon
from .models import Zone, zones_from_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _PreparedZone:
    zone: Zone
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def may_contain(self, lat: float, lng: float) -> bool:
        # strict: the box edge can only be a polygon edge/vertex, which is outside anyway
        return self.min_lat < lat < self.max_lat and self.min_lng < lng < self.max_lng


class GeoZoneIndex:
    """
    Read-mostly zone lookup.

    Readers take the lock only long enough to grab the current tuple;
    `replace_zones` builds the new tuple first and swaps it under the lock.
    """

    def __init__(self, zones: Optional[Iterable[Mapping[str, Any] | Zone]] = None):
        self._lock = threading.Lock()
        self._prepared: Tuple[_PreparedZone, ...] = ()
        self._by_id: dict = {}
        self.generation = 0
        if zones is not None:
            self.replace_zones(zones)

    def replace_zones(self, zones: Iterable[Mapping[str, Any] | Zone]) -> List[Zone]:
        """
        Wholesale rebuild. Validation happens before the swap, so a
        ZoneConfigError leaves the previous zone set active.
        """
        parsed = zones_from_config(list(zones))

        prepared = []
        for zone in parsed:
            min_lat, min_lng, max_lat, max_lng = zone.bounding_box()
            prepared.append(_PreparedZone(zone, min_lat, min_lng, max_lat, max_lng))

        with self._lock:
            self._prepared = tuple(prepared)
            self._by_id = {zone.id: zone for zone in parsed}
            self.generation += 1

        logger.info(f"Zone index rebuilt: {len(parsed)} zones (generation {self.generation})")
        return parsed

    def resolve_zone(self, lat: float, lng: float) -> Optional[Zone]:
        with self._lock:
            prepared = self._prepared

        point: LatLon = (lat, lng)
        for entry in prepared:
            if not entry.zone.is_active:
                continue
            if not entry.may_contain(lat, lng):
                continue
            if point_in_polygon(point, entry.zone.polygon):
                return entry.zone
        return None

    def resolve_zone_id(self, lat: float, lng: float) -> Optional[str]:
        zone = self.resolve_zone(lat, lng)
        return zone.id if zone else None

    def get(self, zone_id: str) -> Optional[Zone]:
        with self._lock:
            return self._by_id.get(zone_id)

    def zones(self) -> List[Zone]:
        """All configured zones (active and inactive) in configuration order."""
        with self._lock:
            prepared = self._prepared
        return [entry.zone for entry in prepared]

    def __len__(self) -> int:
        with self._lock:
            return len(self._prepared)
