"""Split saved places into day buckets.

When at least two places carry coordinates they are swept around their
centroid by polar angle and dealt out round-robin, so neighbouring places
end up on the same or adjacent days. Without coordinates the places are
dealt in ``(category, name)`` order instead.
"""

from __future__ import annotations

import logging
import math
from typing import List, Sequence

from local_explorer.api.errors import ValidationError
from local_explorer.api.models import DayBucket, Place

logger = logging.getLogger(__name__)


def _deal(places: Sequence[Place], buckets: List[DayBucket]) -> None:
    for i, place in enumerate(places):
        buckets[i % len(buckets)].append(place)


def centroid(places: Sequence[Place]) -> tuple[float, float]:
    """Arithmetic mean (lat, lon) of places that have coordinates."""
    mean_lat = sum(p.lat for p in places) / len(places)
    mean_lon = sum(p.lon for p in places) / len(places)
    return mean_lat, mean_lon


def category_sort_key(place: Place) -> tuple[str, str]:
    # Missing category sorts first
    return (place.category or "", place.name or "")


def assign_days(places: Sequence[Place], days_count: int) -> List[DayBucket]:
    """Return exactly ``days_count`` buckets holding every input place once."""
    if isinstance(days_count, bool) or not isinstance(days_count, int) or days_count < 1:
        raise ValidationError("days_count must be a positive integer")

    buckets: List[DayBucket] = [[] for _ in range(days_count)]

    with_coords = [p for p in places if p.has_coords]
    without_coords = [p for p in places if not p.has_coords]

    if len(with_coords) >= 2:
        mean_lat, mean_lon = centroid(with_coords)
        swept = sorted(
            with_coords,
            key=lambda p: math.atan2(p.lat - mean_lat, p.lon - mean_lon),
        )
        _deal(swept, buckets)
        _deal(without_coords, buckets)
        logger.debug(
            "Angular sweep of %d places around (%.5f, %.5f), %d without coords",
            len(swept), mean_lat, mean_lon, len(without_coords),
        )
        return buckets

    _deal(sorted(places, key=category_sort_key), buckets)
    logger.debug("Category ordering of %d places into %d days", len(places), days_count)
    return buckets


__all__ = ["assign_days", "centroid", "category_sort_key"]
