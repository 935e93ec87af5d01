# src/arcstats/schemas/common.py

"""Common Pydantic schemas used across multiple resources."""

from pydantic import BaseModel, Field


class SkillInfo(BaseModel):
    """OpenSkill distribution of a player with its conservative ordinal.

    Attributes:
        mu: Estimated skill (prior: 25.0)
        sigma: Uncertainty of the estimate (prior: 8.333)
        ordinal: mu - z * sigma, the rating used for ranking
    """

    mu: float = Field(..., description="Estimated skill")
    sigma: float = Field(..., gt=0, description="Skill uncertainty")
    ordinal: float = Field(..., description="Conservative rating (mu - z*sigma)")


class ErrorResponse(BaseModel):
    """Envelope returned for every failed request."""

    success: bool = False
    error: str
    error_type: str | None = None
