"""
Local Explorer – main application entry point

* Flask app exposing place search, saved places and itinerary generation
  under `/explorer`.
* Long-lived services (database engine, cache backends, HTTP session) are
  built once in `create_app` and closed when the process exits.
"""

import atexit
import logging
import os

from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv

# --------------------------------------------------------------------------- #
# Environment & logging
# --------------------------------------------------------------------------- #
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

from local_explorer.api.config import get_port, validate_resolver_config  # noqa: E402
from local_explorer.api.services.container import Services  # noqa: E402
from local_explorer.routes import create_explorer_blueprint  # noqa: E402


def create_app(services=None):
    """Build the Flask app around a services container.

    Args:
        services: Prebuilt Services (tests pass their own); built from the
            environment when omitted

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    flask_secret_key = os.getenv("FLASK_SECRET_KEY") or os.urandom(32).hex()
    if "FLASK_SECRET_KEY" not in os.environ:
        logger.warning("No FLASK_SECRET_KEY found. Generated a temporary key.")
    app.secret_key = flask_secret_key

    app.config.update(
        SESSION_COOKIE_SECURE=False,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=86400,
    )

    # CORS for local dev / cross‑origin front‑end requests
    CORS(app, origins="*", supports_credentials=True)

    if services is None:
        validate_resolver_config()
        services = Services.from_config()
        atexit.register(services.close)
    app.extensions["local_explorer"] = services

    app.register_blueprint(create_explorer_blueprint(services))
    logger.info("Explorer blueprint registered")

    @app.route("/debug")
    def debug():
        """Simple JSON health endpoint."""
        return {
            "status": "ok",
            "cache_backends": [b.name for b in services.cache.backends],
            "endpoints": {
                "places": "/explorer/api/places?q=",
                "itineraries": "/explorer/api/itineraries",
                "health": "/explorer/health",
            },
        }

    return app


# --------------------------------------------------------------------------- #
# Local development runner ( `python main.py` )
# --------------------------------------------------------------------------- #
if __name__ == "__main__":
    port = get_port()
    logger.info("Starting explorer app on http://localhost:%d", port)
    create_app().run(host="0.0.0.0", port=port, debug=False)
