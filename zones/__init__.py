"""
Zones domain package.

Public API:
- Zone, ZoneConfigError
- GeoZoneIndex (point -> zone resolution)
- haversine_km, point_in_polygon
"""
from .geometry import LatLon, haversine_km, point_in_polygon
from .models import Zone, ZoneConfigError, zones_from_config
from .index import GeoZoneIndex

__all__ = [
    "LatLon",
    "haversine_km",
    "point_in_polygon",
    "Zone",
    "ZoneConfigError",
    "zones_from_config",
    "GeoZoneIndex",
]
