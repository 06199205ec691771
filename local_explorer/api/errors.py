"""Error types shared by the planner, resolver and store."""

from __future__ import annotations

from typing import List, Optional


class LocalExplorerError(Exception):
    """Base class for all service errors."""

    status_code = 500


class ValidationError(LocalExplorerError, ValueError):
    """Bad input such as an out of range day count or a missing field."""

    status_code = 400


class UnauthorizedError(LocalExplorerError):
    """No user identity on the request."""

    status_code = 401


class NotFoundError(LocalExplorerError):
    """Itinerary or item does not exist or belongs to another user."""

    status_code = 404


class ConflictError(LocalExplorerError):
    """A unique constraint was violated by a create request."""

    status_code = 409


class ResolutionError(LocalExplorerError):
    """Every geocoding / POI attempt failed.

    ``attempts`` holds one human readable diagnostic per attempt that was
    made, in the order they were tried.
    """

    status_code = 502

    def __init__(self, message: str, attempts: Optional[List[str]] = None):
        super().__init__(message)
        self.attempts = list(attempts or [])


class CacheError(LocalExplorerError):
    """A cache backend failed. Never propagated past QueryCache."""


class TransactionError(LocalExplorerError):
    """An atomic replace could not be committed and was rolled back."""

    status_code = 500


__all__ = [
    "LocalExplorerError",
    "ValidationError",
    "UnauthorizedError",
    "NotFoundError",
    "ConflictError",
    "ResolutionError",
    "CacheError",
    "TransactionError",
]
