"""Nearby point-of-interest providers and result normalisation."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from local_explorer.api.models import Place

logger = logging.getLogger(__name__)

# Checked in this order, first present tag wins
CATEGORY_TAG_KEYS = ("tourism", "amenity", "leisure")

CATEGORY_MAP = {
    "museum": "Museum",
    "attraction": "Attraction",
    "gallery": "Gallery",
    "park": "Park",
    "cafe": "Cafe",
    "restaurant": "Food",
}

ADDRESS_TAG_KEYS = ("addr:housenumber", "addr:street", "addr:city")


class AttemptFailure(Exception):
    """A single (endpoint, radius) search attempt failed softly."""


def category_from_tags(tags: Optional[Dict[str, str]]) -> Optional[str]:
    if not tags:
        return None
    value = next((tags[k] for k in CATEGORY_TAG_KEYS if tags.get(k)), None)
    if not value:
        return None
    return CATEGORY_MAP.get(value, value[0].upper() + value[1:])


def address_from_tags(tags: Optional[Dict[str, str]]) -> str:
    if not tags:
        return ""
    parts = [tags[k] for k in ADDRESS_TAG_KEYS if tags.get(k)]
    if parts:
        return " ".join(parts)
    return tags.get("addr:full", "")


def normalize_element(element: Dict[str, Any], provider: str = "osm") -> Optional[Place]:
    """Map one raw Overpass element to a Place, or None when it has no name."""
    tags = element.get("tags") or {}
    name = tags.get("name")
    if not name:
        return None

    center = element.get("center") or {}
    lat = element.get("lat")
    lon = element.get("lon")
    if not isinstance(lat, (int, float)):
        lat = center.get("lat")
    if not isinstance(lon, (int, float)):
        lon = center.get("lon")

    return Place(
        name=name,
        provider=provider,
        provider_id=f"{element.get('type')}/{element.get('id')}",
        address=address_from_tags(tags),
        category=category_from_tags(tags),
        lat=lat if isinstance(lat, (int, float)) else None,
        lon=lon if isinstance(lon, (int, float)) else None,
    )


def normalize_elements(elements: List[Dict[str, Any]], limit: int,
                       provider: str = "osm") -> List[Place]:
    places = []
    for element in elements:
        if not isinstance(element, dict):
            continue
        place = normalize_element(element, provider)
        if place is not None:
            places.append(place)
        if len(places) >= limit:
            break
    return places


class PoiProvider:
    """Something that can list raw POI elements around a coordinate.

    ``search`` raises AttemptFailure for any soft failure so the caller can
    move on to the next endpoint or radius.
    """

    name = "provider"

    def search(self, lat: float, lon: float, radius: int, limit: int,
               timeout: float) -> List[Dict[str, Any]]:
        raise NotImplementedError


class OverpassProvider(PoiProvider):
    """One Overpass API interpreter endpoint."""

    def __init__(self, endpoint: str, user_agent: str,
                 session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.name = endpoint
        self.user_agent = user_agent
        self.session = session or requests.Session()

    @staticmethod
    def build_query(lat: float, lon: float, radius: int, limit: int) -> str:
        around = f"(around:{radius},{lat},{lon})"
        return (
            "[out:json][timeout:25];\n"
            "(\n"
            f'  node["name"]["tourism"~"attraction|museum|gallery"]{around};\n'
            f'  way["name"]["tourism"~"attraction|museum|gallery"]{around};\n'
            f'  relation["name"]["tourism"~"attraction|museum|gallery"]{around};\n'
            f'  node["name"]["leisure"="park"]{around};\n'
            ");\n"
            f"out center {limit};\n"
        )

    def search(self, lat, lon, radius, limit, timeout):
        try:
            response = self.session.post(
                self.endpoint,
                data=self.build_query(lat, lon, radius, limit),
                headers={
                    "Content-Type": "text/plain",
                    "User-Agent": self.user_agent,
                },
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise AttemptFailure(f"timeout after {timeout}s") from e
        except requests.RequestException as e:
            raise AttemptFailure(f"{type(e).__name__}: {e}") from e

        if not response.ok:
            details = (response.text or "")[:200]
            raise AttemptFailure(f"HTTP {response.status_code} {details}".strip())

        content_type = response.headers.get("Content-Type", "")
        if "json" not in content_type.lower():
            raise AttemptFailure(f"unexpected content type '{content_type}'")

        try:
            payload = response.json()
        except ValueError as e:
            raise AttemptFailure("invalid JSON body") from e

        elements = payload.get("elements") if isinstance(payload, dict) else None
        if not isinstance(elements, list):
            raise AttemptFailure("response has no elements list")
        return elements


__all__ = [
    "AttemptFailure",
    "PoiProvider",
    "OverpassProvider",
    "category_from_tags",
    "address_from_tags",
    "normalize_element",
    "normalize_elements",
]
