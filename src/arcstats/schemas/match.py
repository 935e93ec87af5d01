# src/arcstats/schemas/match.py

"""Pydantic schemas for verified matches."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class VerifiedMatchPlayerRead(BaseModel):
    """A rated participant of a valid match."""

    player_color: str
    username: str
    username_key: str
    raw_username: str | None = None
    selected_character: str
    victory_points: int
    placement: int = Field(..., ge=1, description="Placement (1 = first place)")

    model_config = ConfigDict(from_attributes=True)


class VerifiedMatchRead(BaseModel):
    """A reconstructed match.

    Invalid matches are listed too, with their reason and no players, so
    operators can see why a game did not count.
    """

    game_id: str
    started_at: datetime | None = None
    ended_at: datetime | None = None
    navigation_count: int
    player_count_expected: int
    player_count_actual: int
    is_valid: bool
    invalid_reason: str | None = None
    stats_version: int

    players: list[VerifiedMatchPlayerRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
