"""Visiting order within a single day."""

from __future__ import annotations

from typing import List, Sequence

from local_explorer.api.models import Place


def squared_distance(a: Place, b: Place) -> float:
    """Planar squared distance in degrees; only used for relative ordering."""
    d_lat = a.lat - b.lat
    d_lon = a.lon - b.lon
    return d_lat * d_lat + d_lon * d_lon


def order_within_day(day_places: Sequence[Place]) -> List[Place]:
    """Order a day's places with a greedy nearest-neighbour walk.

    The walk starts at the first place with coordinates and always moves to
    the closest unvisited one; on equal distance the earlier place wins.
    Places without coordinates keep their relative order at the end.
    """
    pts = [p for p in day_places if p.has_coords]
    rest = [p for p in day_places if not p.has_coords]

    if len(pts) <= 2:
        return pts + rest

    remaining = list(range(1, len(pts)))
    current = pts[0]
    ordered = [current]

    while remaining:
        best_pos = 0
        best_d = squared_distance(current, pts[remaining[0]])
        for pos in range(1, len(remaining)):
            d = squared_distance(current, pts[remaining[pos]])
            if d < best_d:
                best_d = d
                best_pos = pos
        current = pts[remaining.pop(best_pos)]
        ordered.append(current)

    return ordered + rest


__all__ = ["order_within_day", "squared_distance"]
