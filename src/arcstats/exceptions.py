# src/arcstats/exceptions.py

"""Custom exception hierarchy for arcstats.

This module provides a structured exception hierarchy that enables:
1. Proper HTTP status code mapping in API endpoints
2. Detailed error context for logging and debugging
3. Clear distinction between rejected requests and failed recomputations

Match-level invalidity is NOT represented here: an invalid match is data
(``is_valid=False`` plus a reason), never an exception.
"""

from __future__ import annotations


class ArcStatsError(Exception):
    """Base exception for all arcstats errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional context for logging/debugging
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Authorization Errors (HTTP 403)
# =============================================================================


class AuthorizationError(ArcStatsError):
    """Base class for rejected recompute callers."""

    pass


class MissingTokenError(AuthorizationError):
    """Raised when the request carries no recompute token."""

    def __init__(self) -> None:
        super().__init__(message="Forbidden", details={"reason": "missing_token"})


class TokenNotConfiguredError(AuthorizationError):
    """Raised when the server-side secret row does not exist."""

    def __init__(self, key: str) -> None:
        super().__init__(
            message="Forbidden",
            details={"reason": "token_not_configured", "key": key},
        )


class InvalidTokenError(AuthorizationError):
    """Raised when the provided token does not match the stored secret."""

    def __init__(self) -> None:
        super().__init__(message="Forbidden", details={"reason": "token_mismatch"})


# =============================================================================
# Resource Not Found Errors (HTTP 404)
# =============================================================================


class ResourceNotFoundError(ArcStatsError):
    """Base class for resource not found errors."""

    pass


class PlayerRatingNotFoundError(ResourceNotFoundError):
    """Raised when no rating exists for an identity key."""

    def __init__(self, username_key: str) -> None:
        super().__init__(
            message=f"Rating for player '{username_key}' not found",
            details={"username_key": username_key},
        )


class MatchNotFoundError(ResourceNotFoundError):
    """Raised when a verified match does not exist."""

    def __init__(self, game_id: str) -> None:
        super().__init__(
            message=f"Match with game_id '{game_id}' not found",
            details={"game_id": game_id},
        )


# =============================================================================
# Rating Engine Errors (HTTP 500)
# =============================================================================


class RatingEngineError(ArcStatsError):
    """Base class for rating calculation errors."""

    pass


class RatingCalculationError(RatingEngineError):
    """Raised when the rating model rejects a match."""

    def __init__(self, message: str, game_id: str | None = None) -> None:
        details = {"game_id": game_id} if game_id else {}
        super().__init__(message=message, details=details)


# =============================================================================
# Recomputation Errors (HTTP 500)
# =============================================================================


class RecomputeError(ArcStatsError):
    """Base class for failed recomputation runs."""

    pass


class PersistenceError(RecomputeError):
    """Raised when the rebuild transaction fails and is rolled back."""

    def __init__(self, message: str, stage: str | None = None) -> None:
        details = {"stage": stage} if stage else {}
        super().__init__(message=message, details=details)
