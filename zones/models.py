"""
Purpose: Domain models for delivery zones.
What it does:
- Defines the Zone record (id, name, polygon ring, delivery fee, active flag)
- Parses zone configuration as it arrives from the settings screens:
  either a plain list of (lat, lng) vertices or a GeoJSON Polygon
  ({"type": "Polygon", "coordinates": [[[lng, lat], ...]]})
- Rejects degenerate rings (fewer than 3 vertices, zero-length edges)

Rule: No point lookups here. Models only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .geometry import LatLon


class ZoneConfigError(ValueError):
    """Raised when a zone definition cannot be loaded."""
    pass


@dataclass(frozen=True)
class Zone:
    """
    A configured delivery zone. Never mutated by the dispatch core;
    edits arrive as a whole new zone list.
    """
    id: str
    polygon: Tuple[LatLon, ...]
    delivery_fee: float = 0.0
    name: str = ""
    is_active: bool = True

    def validate(self) -> None:
        if not self.id:
            raise ZoneConfigError("zone id is required")

        if len(self.polygon) < 3:
            raise ZoneConfigError(f"zone {self.id}: polygon needs at least 3 vertices, got {len(self.polygon)}")

        for index, vertex in enumerate(self.polygon):
            following = self.polygon[(index + 1) % len(self.polygon)]
            if vertex == following:
                raise ZoneConfigError(f"zone {self.id}: zero-length edge at vertex {index} {vertex}")

        if self.delivery_fee < 0:
            raise ZoneConfigError(f"zone {self.id}: delivery_fee must be >= 0")

    def bounding_box(self) -> Tuple[float, float, float, float]:
        """(min_lat, min_lng, max_lat, max_lng)"""
        lats = [lat for lat, _ in self.polygon]
        lngs = [lng for _, lng in self.polygon]
        return min(lats), min(lngs), max(lats), max(lngs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "polygon": [[lat, lng] for lat, lng in self.polygon],
            "deliveryFee": self.delivery_fee,
            "isActive": self.is_active,
        }

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> Zone:
        """
        Build and validate a Zone from a configuration mapping.

        Accepted keys: id, name, polygon, deliveryFee | delivery_fee,
        isActive | is_active.
        """
        if "id" not in data or "polygon" not in data:
            raise ZoneConfigError(f"zone definition needs 'id' and 'polygon': {dict(data)!r}")

        fee = data.get("deliveryFee", data.get("delivery_fee", 0.0))
        active = data.get("isActive", data.get("is_active", True))

        try:
            fee = float(fee)
        except (TypeError, ValueError) as exc:
            raise ZoneConfigError(f"zone {data['id']}: invalid delivery fee {fee!r}") from exc

        zone = cls(
            id=str(data["id"]),
            polygon=parse_polygon(data["polygon"]),
            delivery_fee=fee,
            name=str(data.get("name") or ""),
            is_active=bool(active),
        )
        zone.validate()
        return zone


def parse_polygon(raw: Any) -> Tuple[LatLon, ...]:
    """
    Normalise a polygon definition to a tuple of (lat, lng) vertices.

    GeoJSON rings are [lng, lat] ordered and usually repeat the first vertex
    at the end; that closing vertex is dropped since rings are implicitly closed.
    """
    if isinstance(raw, Mapping):
        if raw.get("type") != "Polygon":
            raise ZoneConfigError(f"unsupported geometry type {raw.get('type')!r}")
        rings = raw.get("coordinates") or []
        if not rings:
            raise ZoneConfigError("GeoJSON polygon has no rings")
        vertices = [_pair(point, geojson=True) for point in rings[0]]
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        vertices = [_pair(point, geojson=False) for point in raw]
    else:
        raise ZoneConfigError(f"polygon must be a vertex list or GeoJSON Polygon, got {type(raw).__name__}")

    if len(vertices) > 1 and vertices[0] == vertices[-1]:
        vertices = vertices[:-1]

    return tuple(vertices)


def _pair(point: Any, *, geojson: bool) -> LatLon:
    if isinstance(point, Mapping):
        try:
            return float(point["lat"]), float(point["lng"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ZoneConfigError(f"invalid vertex {point!r}") from exc

    try:
        first, second = point
        first, second = float(first), float(second)
    except (TypeError, ValueError) as exc:
        raise ZoneConfigError(f"invalid vertex {point!r}") from exc

    lat, lng = (second, first) if geojson else (first, second)

    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
        raise ZoneConfigError(f"vertex out of range: lat={lat}, lng={lng}")

    return lat, lng


def zones_from_config(items: Sequence[Mapping[str, Any] | Zone]) -> List[Zone]:
    """Parse a full zone list; the first invalid entry aborts the whole load."""
    zones: List[Zone] = []
    seen = set()
    for item in items:
        zone = item if isinstance(item, Zone) else Zone.from_config(item)
        if isinstance(item, Zone):
            zone.validate()
        if zone.id in seen:
            raise ZoneConfigError(f"duplicate zone id {zone.id}")
        seen.add(zone.id)
        zones.append(zone)
    return zones
