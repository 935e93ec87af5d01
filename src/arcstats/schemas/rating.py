# src/arcstats/schemas/rating.py

"""Pydantic schemas for player ratings and rating history."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .common import SkillInfo


class RatingEventRead(BaseModel):
    """One entry of a player's rating history."""

    game_id: str
    ended_at: datetime | None = None
    username_key: str
    username: str
    placement: int
    mu_before: float
    sigma_before: float
    mu_after: float
    sigma_after: float
    rating_version: int

    model_config = ConfigDict(from_attributes=True)


class PlayerStats(BaseModel):
    """Aggregates over a player's rated participations.

    Attributes:
        wins: Matches finished in first place
        win_rate: wins / games_played (None before the first game)
        avg_victory_points: Mean victory points per match
        avg_placement: Mean placement per match
    """

    wins: int = Field(0, ge=0)
    win_rate: float | None = Field(None, ge=0.0, le=1.0)
    avg_victory_points: float = 0.0
    avg_placement: float = 0.0


class PlayerRatingRead(BaseModel):
    """Current rating profile of one player."""

    username_key: str
    username: str
    skill: SkillInfo
    games_played: int = Field(..., ge=0)
    last_game_id: str | None = None
    last_game_at: datetime | None = None
    rating_version: int
    stats: PlayerStats = Field(default_factory=PlayerStats)


class LeaderboardEntry(PlayerRatingRead):
    """Single entry in the rating leaderboard.

    Attributes:
        rank: Position in leaderboard (1-indexed, by ordinal)
    """

    rank: int = Field(..., ge=1, description="Position in leaderboard (1-indexed)")
