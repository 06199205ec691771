"""Shared data structures for place search and itinerary planning.

Both the resolver and the itinerary generator exchange these plain
dataclasses, so neither has to know about the ORM rows in ``api.db``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass
class Place:
    """A point of interest, resolved from a provider or loaded from storage."""

    name: str
    id: Optional[str] = None  # surrogate id once persisted
    provider: str = "osm"
    provider_id: Optional[str] = None  # e.g. "node/123"
    address: str = ""
    category: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None

    @property
    def has_coords(self) -> bool:
        """True only when both coordinates are present and numeric."""
        return _is_number(self.lat) and _is_number(self.lon)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "provider": self.provider,
            "providerId": self.provider_id,
            "name": self.name,
            "address": self.address,
        }
        # Optional fields are omitted rather than sent as null
        if self.category:
            data["category"] = self.category
        if self.lat is not None:
            data["lat"] = self.lat
        if self.lon is not None:
            data["lon"] = self.lon
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Place":
        if not isinstance(data, dict) or not data.get("name"):
            raise ValueError("place payload needs a name")
        return cls(
            name=data["name"],
            id=data.get("id"),
            provider=data.get("provider") or "osm",
            provider_id=data.get("providerId"),
            address=data.get("address") or "",
            category=data.get("category"),
            lat=data.get("lat"),
            lon=data.get("lon"),
        )


@dataclass
class ItineraryItem:
    """One place scheduled on one day of an itinerary."""

    itinerary_id: str
    place_id: str
    day_index: int  # 0-based
    order: int  # 0-based position within the day
    note: Optional[str] = None
    id: Optional[str] = None
    place: Optional[Place] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "itineraryId": self.itinerary_id,
            "placeId": self.place_id,
            "dayIndex": self.day_index,
            "order": self.order,
            "note": self.note,
            "place": self.place.to_dict() if self.place else None,
        }


# A day plan is the list of places assigned to one day; an itinerary layout
# is one such list per day.
DayBucket = list[Place]


@dataclass
class Itinerary:
    """A user's trip, split into ``days_count`` days."""

    id: str
    user_id: str
    title: str
    days_count: int
    start_date: Optional[date] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "daysCount": self.days_count,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
