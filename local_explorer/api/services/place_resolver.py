# local_explorer/api/services/place_resolver.py
"""Service layer turning a free-text query into nearby places."""

import logging
import time
from typing import List, Optional, Sequence, Tuple

from local_explorer.api.cache import QueryCache, normalize_query, places_cache_key
from local_explorer.api.errors import ResolutionError
from local_explorer.api.geocoding import Geocoder
from local_explorer.api.models import Place
from local_explorer.api.poi import AttemptFailure, PoiProvider, normalize_elements

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 15
MAX_LIMIT = 25


class PlaceResolver:
    """Geocode a query, then search nearby POIs with failover.

    Providers are tried in order and, per provider, each radius from wide to
    narrow. Attempts run one at a time, each bounded by ``timeout``; a failed
    attempt only moves the search on to the next (provider, radius) pair.
    """

    def __init__(self, geocoder: Geocoder, providers: Sequence[PoiProvider],
                 radii: Sequence[int], timeout: float,
                 default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT):
        if not providers:
            raise ValueError("PlaceResolver needs at least one POI provider")
        if not radii:
            raise ValueError("PlaceResolver needs at least one search radius")
        self.geocoder = geocoder
        self.providers = list(providers)
        self.radii = sorted(radii, reverse=True)
        self.timeout = timeout
        self.default_limit = default_limit
        self.max_limit = max_limit

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.default_limit
        return max(1, min(int(limit), self.max_limit))

    def resolve(self, query: str, limit: Optional[int] = None) -> List[Place]:
        """Return normalized places near ``query``.

        Args:
            query: Free-text place name, e.g. "Lisbon"
            limit: Maximum number of results (clamped to ``max_limit``)

        Returns:
            List of places; empty for a blank query or an unknown place

        Raises:
            ResolutionError: If geocoding failed or every POI attempt failed
        """
        query = (query or "").strip()
        if not query:
            return []

        limit = self.clamp_limit(limit)
        start_time = time.time()

        coords = self.geocoder.geocode(query)
        if coords is None:
            logger.info(f"No location found for '{query}'")
            return []

        lat, lon = coords
        elements = self._search(lat, lon, limit)
        places = normalize_elements(elements, limit)

        duration = time.time() - start_time
        logger.info(
            f"Resolved '{query}' to {len(places)} places "
            f"({len(elements)} raw) in {duration:.2f}s"
        )
        return places

    def _search(self, lat: float, lon: float, limit: int) -> list:
        failures = []
        for provider in self.providers:
            for radius in self.radii:
                try:
                    elements = provider.search(lat, lon, radius, limit, self.timeout)
                except AttemptFailure as e:
                    reason = f"{provider.name} r={radius}: {e}"
                    logger.warning(f"POI search attempt failed - {reason}")
                    failures.append(reason)
                    continue
                logger.debug(f"POI search succeeded on {provider.name} r={radius}")
                return elements

        logger.error(f"All {len(failures)} POI search attempts failed")
        raise ResolutionError("Places query failed", attempts=failures)


class PlaceSearchService:
    """PlaceResolver behind the query cache."""

    def __init__(self, resolver: PlaceResolver, cache: QueryCache, ttl_seconds: int):
        self.resolver = resolver
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def cache_key(self, query: str, limit: int) -> str:
        return places_cache_key(query, limit, self.resolver.radii)

    def search(self, query: str, limit: Optional[int] = None) -> Tuple[List[Place], bool]:
        """Return ``(places, cache_hit)``."""
        if not normalize_query(query):
            return [], False

        limit = self.resolver.clamp_limit(limit)
        key = self.cache_key(query, limit)

        def resolve():
            return [p.to_dict() for p in self.resolver.resolve(query, limit)]

        value, hit = self.cache.lookup(key, self.ttl_seconds, resolve)
        try:
            return [Place.from_dict(item) for item in value], hit
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Cached places for {key} unusable ({e}), resolving again")
            self.cache.invalidate(key)
            value, _ = self.cache.lookup(key, self.ttl_seconds, resolve)
            return [Place.from_dict(item) for item in value], False


__all__ = ["PlaceResolver", "PlaceSearchService", "DEFAULT_LIMIT", "MAX_LIMIT"]
