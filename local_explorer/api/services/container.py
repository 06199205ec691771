"""Construction and teardown of the long-lived service objects."""

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from local_explorer.api.cache import (
    CacheBackend,
    MemoryCacheBackend,
    QueryCache,
    RedisCacheBackend,
    SqlCacheBackend,
)
from local_explorer.api.config import (
    get_cache_config,
    get_itinerary_config,
    get_redis_url,
    get_resolver_config,
)
from local_explorer.api.db import Store
from local_explorer.api.geocoding import build_geocoder
from local_explorer.api.poi import OverpassProvider
from local_explorer.api.services.itinerary_service import ItineraryGenerator, ItineraryService
from local_explorer.api.services.place_resolver import PlaceResolver, PlaceSearchService

logger = logging.getLogger(__name__)


def build_cache_backends(store: Store, backend: str = "",
                         redis_url: Optional[str] = None) -> List[CacheBackend]:
    """Backends in priority order for the configured mode.

    ``redis`` and the default with REDIS_URL set give Redis in front of the
    durable table; ``sql`` the table alone; ``memory`` a process-local dict.
    """
    if backend == "memory":
        return [MemoryCacheBackend()]
    if backend == "sql":
        return [SqlCacheBackend(store)]
    if backend == "redis" and not redis_url:
        raise ValueError("CACHE_BACKEND=redis needs REDIS_URL")
    if redis_url and backend in ("", "redis"):
        return [RedisCacheBackend.from_url(redis_url), SqlCacheBackend(store)]
    if backend:
        raise ValueError(f"Unknown CACHE_BACKEND '{backend}'")
    return [SqlCacheBackend(store)]


@dataclass
class Services:
    """Everything the routes need, built once per process."""

    store: Store
    cache: QueryCache
    places: PlaceSearchService
    itineraries: ItineraryService
    http: Optional[requests.Session] = None

    @classmethod
    def from_config(cls, database_url: Optional[str] = None) -> "Services":
        resolver_cfg = get_resolver_config()
        cache_cfg = get_cache_config()
        itinerary_cfg = get_itinerary_config()

        store = Store(database_url=database_url)
        store.create_all()

        cache = QueryCache(build_cache_backends(store, cache_cfg["backend"], get_redis_url()))
        logger.info(f"Cache backends: {[b.name for b in cache.backends]}")

        http = requests.Session()
        resolver = PlaceResolver(
            geocoder=build_geocoder(session=http),
            providers=[
                OverpassProvider(endpoint, resolver_cfg["user_agent"], session=http)
                for endpoint in resolver_cfg["overpass_endpoints"]
            ],
            radii=resolver_cfg["radii"],
            timeout=resolver_cfg["timeout_seconds"],
            default_limit=resolver_cfg["default_limit"],
            max_limit=resolver_cfg["max_limit"],
        )

        generator = ItineraryGenerator(
            store,
            per_day_cap=itinerary_cfg["per_day_cap"],
            max_days=itinerary_cfg["max_days"],
        )

        return cls(
            store=store,
            cache=cache,
            places=PlaceSearchService(resolver, cache, cache_cfg["places_ttl_seconds"]),
            itineraries=ItineraryService(
                store, generator, cache, cache_cfg["items_ttl_seconds"]
            ),
            http=http,
        )

    def close(self) -> None:
        logger.info("Shutting down services")
        self.cache.close()
        if self.http is not None:
            self.http.close()
        self.store.close()


__all__ = ["Services", "build_cache_backends"]
