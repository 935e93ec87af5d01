# src/arcstats/schemas/recompute.py

"""Request and response schemas for the recompute operation."""

import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class RecomputeRequest(BaseModel):
    """Optional knobs of a recomputation run (camelCase on the wire).

    Examples:
        {}
        {"minTurns": 12, "minVictoryPoints": 8, "ratingVersion": 2}
    """

    min_turns: int = Field(10, description="Games need more navigation steps than this")
    min_victory_points: int = Field(
        10, description="Players below this score are dropped from a match"
    )
    stats_version: int = Field(1, ge=0, description="Tag stored on every match row")
    rating_version: int = Field(1, ge=0, description="Tag stored on every rating row")

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    @field_validator(
        "min_turns", "min_victory_points", "stats_version", "rating_version",
        mode="before",
    )
    @classmethod
    def floor_numbers(cls, value: Any, info: ValidationInfo) -> Any:
        # null means "not given"
        if value is None:
            return cls.model_fields[info.field_name].default
        # Booleans are ints in Python but never a meaningful threshold
        if isinstance(value, bool):
            raise ValueError("must be a number")
        if isinstance(value, float) and math.isfinite(value):
            return math.floor(value)
        return value


class RecomputeSummary(BaseModel):
    """Scope of a committed recomputation run."""

    success: bool = True
    stats_version: int
    rating_version: int
    min_turns: int
    min_victory_points: int
    games_total: int = Field(..., ge=0)
    games_valid: int = Field(..., ge=0)
    players_total: int = Field(..., ge=0)
    players_valid: int = Field(..., ge=0)
    players_rated: int = Field(..., ge=0)
    timestamp: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
