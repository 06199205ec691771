# local_explorer/routes/explorer.py
"""Explorer routes and blueprint configuration."""

import logging
import math

from flask import Blueprint, jsonify, request, session

from local_explorer.api.errors import (
    LocalExplorerError,
    ResolutionError,
    UnauthorizedError,
    ValidationError,
)
from local_explorer.api.models import Place

logger = logging.getLogger(__name__)

CACHE_PROBE_KEY = "explorer:cache-check"


def _require_user_id():
    user_id = session.get("user_id") or request.headers.get("X-User-Id", "").strip()
    if not user_id:
        raise UnauthorizedError("Unauthorized")
    return user_id


def _json_body():
    """Parsed JSON object body; an empty body is an empty dict."""
    raw = request.get_data(cache=True, as_text=True)
    if not raw:
        return {}
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    return body


def _optional_float(value):
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("lat/lon must be numbers")
    if not math.isfinite(number):
        raise ValidationError("lat/lon must be numbers")
    return number


def create_explorer_blueprint(services):
    """Create and configure the explorer blueprint.

    Args:
        services: Services container built once at startup

    Returns:
        Configured Flask Blueprint
    """
    explorer_bp = Blueprint("explorer", __name__, url_prefix="/explorer")

    @explorer_bp.errorhandler(LocalExplorerError)
    def handle_service_error(error):
        body = {"error": str(error)}
        if isinstance(error, ResolutionError):
            body["attempts"] = error.attempts
        if error.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {error}")
        return jsonify(body), error.status_code

    @explorer_bp.route("/api/places")
    def api_places():
        """Resolve a free-text query into nearby places."""
        query = request.args.get("q", "")
        limit = request.args.get("limit", type=int)

        places, hit = services.places.search(query, limit)
        response = jsonify([p.to_dict() for p in places])
        response.headers["X-Cache"] = "HIT" if hit else "MISS"
        return response

    @explorer_bp.route("/api/saved", methods=["GET", "POST", "DELETE"])
    def api_saved():
        """List, save or unsave places for the current user."""
        user_id = _require_user_id()

        if request.method == "GET":
            return jsonify(services.store.list_saved(user_id))

        body = _json_body()

        if request.method == "POST":
            provider = body.get("provider")
            provider_id = body.get("providerId")
            name = body.get("name")
            if not provider or not provider_id or not name:
                raise ValidationError("provider, providerId, name required")

            place = services.store.save_place(user_id, Place(
                name=name,
                provider=provider,
                provider_id=str(provider_id),
                address=body.get("address") or "",
                category=body.get("category") or None,
                lat=_optional_float(body.get("lat")),
                lon=_optional_float(body.get("lon")),
            ))
            return jsonify({"ok": True, "placeId": place.id})

        place_id = body.get("placeId")
        if not place_id:
            raise ValidationError("placeId required")
        services.store.unsave_place(user_id, place_id)
        return jsonify({"ok": True})

    @explorer_bp.route("/api/itineraries", methods=["GET", "POST"])
    def api_itineraries():
        """List or create itineraries."""
        user_id = _require_user_id()

        if request.method == "GET":
            itineraries = services.itineraries.list_itineraries(user_id)
            return jsonify([i.to_dict() for i in itineraries])

        body = _json_body()
        itinerary = services.itineraries.create_itinerary(
            user_id,
            title=body.get("title"),
            days_count=body.get("daysCount", 3),
            start_date=body.get("startDate"),
        )
        return jsonify(itinerary.to_dict())

    @explorer_bp.route("/api/itineraries/<itinerary_id>/items", methods=["GET", "POST", "DELETE"])
    def api_itinerary_items(itinerary_id):
        """Read, append to or delete from an itinerary's items."""
        user_id = _require_user_id()

        if request.method == "GET":
            return jsonify(services.itineraries.list_items(user_id, itinerary_id))

        body = _json_body()

        if request.method == "POST":
            item = services.itineraries.add_item(
                user_id,
                itinerary_id,
                body.get("placeId"),
                body.get("dayIndex"),
                body.get("note"),
            )
            return jsonify(item.to_dict())

        services.itineraries.delete_item(user_id, itinerary_id, body.get("itemId"))
        return jsonify({"ok": True})

    @explorer_bp.route("/api/itineraries/<itinerary_id>/generate", methods=["POST"])
    def api_generate(itinerary_id):
        """Regenerate the itinerary from the user's saved places."""
        user_id = _require_user_id()
        return jsonify(services.itineraries.generate_for_user(user_id, itinerary_id))

    @explorer_bp.route("/api/cache-check")
    def api_cache_check():
        """Round-trip a probe value through the cache."""
        services.cache.set(CACHE_PROBE_KEY, [{"hello": "world"}], 60)
        value = services.cache.get(CACHE_PROBE_KEY)
        return jsonify({
            "ok": value is not None,
            "backends": [b.name for b in services.cache.backends],
            "reachable": services.cache.ping(),
            "value": value,
        })

    @explorer_bp.route("/health")
    def health():
        """Health check endpoint."""
        return jsonify({"status": "ok", "service": "explorer"})

    return explorer_bp


__all__ = ["create_explorer_blueprint"]
