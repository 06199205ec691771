# local_explorer/api/services/itinerary_service.py
"""Service layer for itinerary generation and management."""

import logging
import math
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from local_explorer.api.cache import QueryCache, items_cache_key
from local_explorer.api.clustering import assign_days
from local_explorer.api.errors import ValidationError
from local_explorer.api.models import Itinerary, ItineraryItem, Place
from local_explorer.api.routing import order_within_day

logger = logging.getLogger(__name__)

DEFAULT_PER_DAY_CAP = 6
MAX_DAYS = 30


def _parse_day_index(value: Any) -> int:
    """Whole-number day index; integral strings such as "1" are accepted."""
    if value is None or isinstance(value, bool):
        raise ValidationError("dayIndex required")
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("dayIndex required")
    if not math.isfinite(number) or not number.is_integer():
        raise ValidationError("dayIndex required")
    return int(number)


class ItineraryGenerator:
    """Split candidate places into days, order each day and persist the result."""

    def __init__(self, store, per_day_cap: int = DEFAULT_PER_DAY_CAP, max_days: int = MAX_DAYS):
        if per_day_cap < 1:
            raise ValidationError("per_day_cap must be at least 1")
        self.store = store
        self.per_day_cap = per_day_cap
        self.max_days = max_days

    def plan(self, itinerary_id: str, candidate_places: Sequence[Place],
             days_count: int) -> List[ItineraryItem]:
        """Build the item rows without touching storage."""
        if isinstance(days_count, bool) or not isinstance(days_count, int):
            raise ValidationError("days_count must be an integer")
        if not 1 <= days_count <= self.max_days:
            raise ValidationError(f"days_count must be between 1 and {self.max_days}")

        # Global truncation keeps caller order (most recently saved first)
        picked = list(candidate_places)[:days_count * self.per_day_cap]

        missing = [p.name for p in picked if not p.id]
        if missing:
            raise ValidationError(f"Places must be stored before planning: {missing[:3]}")

        buckets = [order_within_day(day) for day in assign_days(picked, days_count)]

        return [
            ItineraryItem(
                itinerary_id=itinerary_id,
                place_id=place.id,
                day_index=day_index,
                order=order,
            )
            for day_index, day in enumerate(buckets)
            for order, place in enumerate(day)
        ]

    def generate(self, itinerary_id: str, candidate_places: Sequence[Place],
                 days_count: int) -> List[ItineraryItem]:
        """Replace the itinerary's items with a freshly generated plan.

        Args:
            itinerary_id: Itinerary whose items are replaced
            candidate_places: Stored places in caller-defined priority order
            days_count: Number of days, 1..max_days

        Returns:
            Persisted items ordered by (day_index, order)

        Raises:
            ValidationError: If days_count is out of range
            TransactionError: If the replace could not be committed
        """
        items = self.plan(itinerary_id, candidate_places, days_count)
        self.store.replace_items(itinerary_id, items)
        logger.info(
            f"Generated {len(items)} items over {days_count} days "
            f"for itinerary {itinerary_id} from {len(candidate_places)} candidates"
        )
        return self.store.list_items(itinerary_id)


class ItineraryService:
    """Handles itinerary CRUD, generation and the generated-items cache."""

    def __init__(self, store, generator: ItineraryGenerator, cache: QueryCache,
                 items_ttl_seconds: int = 300):
        self.store = store
        self.generator = generator
        self.cache = cache
        self.items_ttl_seconds = items_ttl_seconds

    def create_itinerary(self, user_id: str, title: Optional[str] = None,
                         days_count: Any = 3, start_date: Optional[str] = None) -> Itinerary:
        """Create an itinerary, clamping the day count to 1..max_days."""
        try:
            days = int(days_count if days_count is not None else 3)
        except (TypeError, ValueError, OverflowError):
            raise ValidationError("daysCount must be a number")

        parsed_start = None
        if start_date:
            try:
                parsed_start = date.fromisoformat(str(start_date)[:10])
            except ValueError:
                raise ValidationError("startDate must be an ISO date")

        return self.store.create_itinerary(
            user_id, title=str(title or "My Trip"), days_count=days, start_date=parsed_start
        )

    def list_itineraries(self, user_id: str) -> List[Itinerary]:
        return self.store.list_itineraries(user_id)

    def list_items(self, user_id: str, itinerary_id: str) -> List[Dict[str, Any]]:
        """Items of one itinerary, read through the items cache."""
        self.store.get_itinerary(user_id, itinerary_id)

        def load():
            return [item.to_dict() for item in self.store.list_items(itinerary_id)]

        items, hit = self.cache.lookup(
            items_cache_key(user_id, itinerary_id), self.items_ttl_seconds, load
        )
        logger.debug(f"Items for {itinerary_id} served from {'cache' if hit else 'store'}")
        return items

    def add_item(self, user_id: str, itinerary_id: str, place_id: Any,
                 day_index: Any, note: Any = None) -> ItineraryItem:
        itinerary = self.store.get_itinerary(user_id, itinerary_id)

        place_id = place_id.strip() if isinstance(place_id, str) else ""
        if not place_id:
            raise ValidationError("placeId required")
        day_index = _parse_day_index(day_index)

        item = self.store.add_item(itinerary, place_id, day_index, note)
        self.cache.invalidate(items_cache_key(user_id, itinerary_id))
        return item

    def delete_item(self, user_id: str, itinerary_id: str, item_id: Any) -> None:
        self.store.get_itinerary(user_id, itinerary_id)
        if not item_id or not isinstance(item_id, str):
            raise ValidationError("itemId required")
        self.store.delete_item(itinerary_id, item_id)
        self.cache.invalidate(items_cache_key(user_id, itinerary_id))

    def generate_for_user(self, user_id: str, itinerary_id: str) -> Dict[str, Any]:
        """Generate an itinerary from the user's saved places.

        Returns:
            Dictionary with ok flag, item count, the ordered items and the
            same items grouped per day
        """
        itinerary = self.store.get_itinerary(user_id, itinerary_id)
        candidates = self.store.saved_places(user_id)

        try:
            items = self.generator.generate(itinerary.id, candidates, itinerary.days_count)
        finally:
            # Drop the cached list even if the replace failed part way
            self.cache.invalidate(items_cache_key(user_id, itinerary_id))

        serialized = [item.to_dict() for item in items]
        return {
            "ok": True,
            "count": len(items),
            "items": serialized,
            "days": self.group_by_day(serialized, itinerary.days_count),
        }

    @staticmethod
    def group_by_day(items: List[Dict[str, Any]], days_count: int) -> List[List[Dict[str, Any]]]:
        """Group serialized items into one list per day."""
        days: List[List[Dict[str, Any]]] = [[] for _ in range(days_count)]
        for item in items:
            if 0 <= item["dayIndex"] < days_count:
                days[item["dayIndex"]].append(item)
        return days


__all__ = ["ItineraryGenerator", "ItineraryService", "DEFAULT_PER_DAY_CAP", "MAX_DAYS"]
