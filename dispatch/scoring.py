#Purpose: Ranking/selection model (the "who is best" layer).
#Takes candidates (already eligible) + the pickup point.
#Produces an ordered list, best first:
#straight-line (haversine) distance to pickup, ascending
#riders within tie_precision_m of the nearest rider still unranked count as equally close;
#among those: longest idle time first (spreads load among equally close riders)
#final tie-break: rider id, so the ranking is deterministic
#Optional hard cap on pickup distance from the policy.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from riders.models import RiderSnapshot, as_utc
from zones.geometry import LatLon, haversine_km


@dataclass(frozen=True)
class RankedCandidate:
    rider: RiderSnapshot
    distance_km: float
    idle_seconds: float

    def tie_break_key(self):
        return (-self.idle_seconds, self.rider.id)


def rank_candidates(
    pickup: LatLon,
    riders: Iterable[RiderSnapshot],
    now: datetime,
    *,
    tie_precision_m: float = 1.0,
    max_distance_km: Optional[float] = None,
) -> List[RankedCandidate]:
    """
    Rank eligible riders for one pickup. Riders without a known position
    are skipped; riders beyond `max_distance_km` are dropped.

    Ties are grouped greedily: the nearest remaining rider opens a group and
    every rider within `tie_precision_m` of it joins; the group is ordered by
    idle time, then the next group opens.
    """
    now = as_utc(now)
    tolerance_km = tie_precision_m / 1000.0

    by_distance: List[RankedCandidate] = []
    for rider in riders:
        if rider.location is None:
            continue
        distance = haversine_km(rider.location, pickup)
        if max_distance_km is not None and distance > max_distance_km:
            continue
        by_distance.append(RankedCandidate(rider=rider, distance_km=distance, idle_seconds=rider.idle_seconds(now)))

    by_distance.sort(key=lambda candidate: (candidate.distance_km, candidate.rider.id))

    ranked: List[RankedCandidate] = []
    start = 0
    while start < len(by_distance):
        anchor = by_distance[start].distance_km
        end = start + 1
        while end < len(by_distance) and by_distance[end].distance_km - anchor <= tolerance_km:
            end += 1
        ranked.extend(sorted(by_distance[start:end], key=RankedCandidate.tie_break_key))
        start = end
    return ranked
