# src/arcstats/schemas/__init__.py

"""Pydantic schemas for API validation and serialization."""

from .common import ErrorResponse, SkillInfo
from .match import VerifiedMatchPlayerRead, VerifiedMatchRead
from .pagination import MatchSortField, PaginatedResponse, SortOrder
from .rating import LeaderboardEntry, PlayerRatingRead, PlayerStats, RatingEventRead
from .recompute import RecomputeRequest, RecomputeSummary

__all__ = [
    # Common
    "ErrorResponse",
    "SkillInfo",
    # Match
    "VerifiedMatchPlayerRead",
    "VerifiedMatchRead",
    # Pagination
    "MatchSortField",
    "PaginatedResponse",
    "SortOrder",
    # Rating
    "LeaderboardEntry",
    "PlayerRatingRead",
    "PlayerStats",
    "RatingEventRead",
    # Recompute
    "RecomputeRequest",
    "RecomputeSummary",
]
