# local_explorer/api/geocoding.py
from __future__ import annotations

import logging
from typing import Optional, Tuple

import googlemaps
from googlemaps import exceptions as gmaps_exceptions
import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from local_explorer.api.config import get_google_maps_config, get_resolver_config
from local_explorer.api.errors import ResolutionError

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]

_TRANSIENT = (requests.ConnectionError, requests.Timeout)


class Geocoder:
    """Resolve a free-text query to a single (lat, lon).

    ``geocode`` returns None when the provider has no match, which is a
    normal outcome. Transport problems raise ResolutionError.
    """

    name = "geocoder"

    def geocode(self, query: str) -> Optional[Coordinates]:
        raise NotImplementedError


class NominatimGeocoder(Geocoder):
    """OpenStreetMap Nominatim search endpoint over HTTP."""

    name = "nominatim"

    def __init__(self, url: str, user_agent: str, timeout: float,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.user_agent = user_agent
        self.timeout = timeout
        self.session = session or requests.Session()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception_type(_TRANSIENT),
        reraise=True,
    )
    def _fetch(self, query: str) -> requests.Response:
        return self.session.get(
            self.url,
            params={"format": "json", "limit": 1, "q": query},
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )

    def geocode(self, query: str) -> Optional[Coordinates]:
        logger.debug(f"Geocoding query: {query}")
        try:
            response = self._fetch(query)
        except requests.RequestException as e:
            logger.error(f"Geocoding transport error for '{query}': {e}")
            raise ResolutionError(
                "Geocoding failed", attempts=[f"{self.name}: {type(e).__name__}: {e}"]
            ) from e

        if not response.ok:
            logger.error(f"Geocoding failed for '{query}': HTTP {response.status_code}")
            raise ResolutionError(
                "Geocoding failed", attempts=[f"{self.name}: HTTP {response.status_code}"]
            )

        try:
            results = response.json()
        except ValueError as e:
            raise ResolutionError(
                "Geocoding failed", attempts=[f"{self.name}: invalid JSON"]
            ) from e

        if not isinstance(results, list) or not results:
            logger.info(f"No geocoding results for '{query}'")
            return None

        try:
            lat = float(results[0]["lat"])
            lon = float(results[0]["lon"])
        except (KeyError, TypeError, ValueError) as e:
            raise ResolutionError(
                "Geocoding failed", attempts=[f"{self.name}: malformed result"]
            ) from e

        logger.debug(f"Geocoded '{query}' to {lat}, {lon}")
        return lat, lon


class GoogleGeocoder(Geocoder):
    """Google Geocoding API through the googlemaps client."""

    name = "google"

    def __init__(self, api_key: str, timeout: float,
                 client: Optional[googlemaps.Client] = None):
        self.client = client or googlemaps.Client(key=api_key, timeout=timeout)

    def geocode(self, query: str) -> Optional[Coordinates]:
        logger.debug(f"Geocoding query with Google: {query}")
        try:
            results = self.client.geocode(query, language="en")
        except (gmaps_exceptions.TransportError,
                gmaps_exceptions.ApiError,
                gmaps_exceptions.Timeout) as e:
            logger.error(f"Geocoding error for '{query}': {e}")
            raise ResolutionError(
                "Geocoding failed", attempts=[f"{self.name}: {type(e).__name__}: {e}"]
            ) from e

        if not results:
            logger.info(f"No geocoding results for '{query}'")
            return None

        loc = results[0]["geometry"]["location"]
        return loc["lat"], loc["lng"]


def build_geocoder(session: Optional[requests.Session] = None) -> Geocoder:
    """Pick Google when an API key is configured, Nominatim otherwise."""
    cfg = get_resolver_config()
    api_key = get_google_maps_config().get("api_key", "")
    if api_key:
        logger.info(f"Using Google geocoder with key: {api_key[:6]}...")
        return GoogleGeocoder(api_key, cfg["timeout_seconds"])
    return NominatimGeocoder(
        cfg["geocoder_url"], cfg["user_agent"], cfg["timeout_seconds"], session=session
    )


__all__ = [
    "Geocoder",
    "NominatimGeocoder",
    "GoogleGeocoder",
    "build_geocoder",
]
