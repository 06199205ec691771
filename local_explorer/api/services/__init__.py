"""Service layer: place search and itinerary planning."""

from .itinerary_service import ItineraryGenerator, ItineraryService
from .place_resolver import PlaceResolver, PlaceSearchService

__all__ = ["ItineraryGenerator", "ItineraryService", "PlaceResolver", "PlaceSearchService"]
