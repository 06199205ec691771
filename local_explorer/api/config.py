# api/config.py
"""Configuration management for the local explorer API."""
import os
from dotenv import load_dotenv

load_dotenv()


def _split_list(raw):
    return [part.strip() for part in raw.split(",") if part.strip()]


def get_redis_url():
    """Get the Redis URL, or None when the key-value cache is disabled."""
    return os.getenv("REDIS_URL") or None


def get_database_url():
    """Get the SQLAlchemy database URL."""
    return os.getenv("DATABASE_URL", "sqlite:///local_explorer.db")


def get_google_maps_config():
    """Get Google Maps configuration."""
    return {
        "api_key": os.getenv("GOOGLE_MAPS_API_KEY", ""),
    }


def get_port():
    """Get port configuration."""
    return int(os.getenv("PORT", 3000))


def get_resolver_config():
    """Get geocoding and POI provider configuration."""
    return {
        "geocoder_url": os.getenv(
            "GEOCODER_URL", "https://nominatim.openstreetmap.org/search"
        ),
        "overpass_endpoints": _split_list(os.getenv(
            "OVERPASS_ENDPOINTS",
            "https://overpass-api.de/api/interpreter,"
            "https://overpass.kumi.systems/api/interpreter",
        )),
        # Searched wide to narrow
        "radii": sorted(
            (int(r) for r in _split_list(os.getenv("SEARCH_RADII", "5000,2500,1000"))),
            reverse=True,
        ),
        "timeout_seconds": float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
        "user_agent": os.getenv(
            "PROVIDER_USER_AGENT", "local-explorer-itinerary-planner (dev)"
        ),
        "default_limit": int(os.getenv("PLACES_DEFAULT_LIMIT", "15")),
        "max_limit": int(os.getenv("PLACES_MAX_LIMIT", "25")),
    }


def get_cache_config():
    """Get cache TTLs and backend selection."""
    return {
        # redis | sql | memory; empty picks redis when REDIS_URL is set
        "backend": os.getenv("CACHE_BACKEND", "").lower(),
        "places_ttl_seconds": int(os.getenv("PLACES_CACHE_TTL", str(6 * 60 * 60))),
        "items_ttl_seconds": int(os.getenv("ITEMS_CACHE_TTL", "300")),
    }


def get_itinerary_config():
    """Get itinerary generation limits."""
    return {
        "per_day_cap": int(os.getenv("ITINERARY_PER_DAY_CAP", "6")),
        "max_days": int(os.getenv("ITINERARY_MAX_DAYS", "30")),
    }


def validate_resolver_config():
    """Validate provider configuration is usable."""
    cfg = get_resolver_config()

    if not cfg["overpass_endpoints"]:
        raise ValueError("OVERPASS_ENDPOINTS must list at least one endpoint")

    if not cfg["radii"] or any(r <= 0 for r in cfg["radii"]):
        raise ValueError("SEARCH_RADII must be positive integers")

    if cfg["timeout_seconds"] <= 0:
        raise ValueError("PROVIDER_TIMEOUT_SECONDS must be positive")

    return True
