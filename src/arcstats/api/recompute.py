# src/arcstats/api/recompute.py

"""API endpoint that triggers a full match and rating recomputation."""

from fastapi import APIRouter, Body, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from arcstats.db.session import get_db
from arcstats.schemas.common import ErrorResponse
from arcstats.schemas.recompute import RecomputeRequest, RecomputeSummary
from arcstats.services import recompute_service

router = APIRouter(tags=["Recompute"])


@router.post(
    "/recompute-stats",
    response_model=RecomputeSummary,
    responses={
        403: {"model": ErrorResponse, "description": "Missing or bad token"},
        405: {"model": ErrorResponse, "description": "Wrong HTTP verb"},
        422: {"model": ErrorResponse, "description": "Malformed body"},
        500: {"model": ErrorResponse, "description": "Database or rating failure"},
    },
)
async def recompute_stats(
    options: RecomputeRequest | None = Body(default=None),
    x_recompute_token: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> RecomputeSummary:
    """
    Rebuild verified matches, rating events and ratings from raw results.

    - **minTurns**: Only games with more navigation steps are loaded (default 10)
    - **minVictoryPoints**: Players below this score are dropped (default 10)
    - **statsVersion** / **ratingVersion**: Tags written to the rebuilt rows

    The shared secret goes in the `x-recompute-token` header. The run is
    all-or-nothing: on failure the previous derived data stays in place.

    Raises:
        403: If the token is missing or does not match
        500: If the rebuild fails and is rolled back
    """
    return await recompute_service.recompute_stats(db, x_recompute_token, options)
