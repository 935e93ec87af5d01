# src/arcstats/api/rating.py

"""API endpoints for the rating leaderboard and player rating history."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arcstats.db.models import PlayerRating, PlayerRatingEvent
from arcstats.db.session import get_db
from arcstats.exceptions import PlayerRatingNotFoundError
from arcstats.identity import username_key
from arcstats.schemas.pagination import PaginatedResponse
from arcstats.schemas.rating import LeaderboardEntry, PlayerRatingRead, RatingEventRead
from arcstats.services import leaderboard_service

router = APIRouter(prefix="/ratings", tags=["Ratings"])


@router.get("/", response_model=PaginatedResponse[LeaderboardEntry])
async def get_leaderboard(
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[LeaderboardEntry]:
    """
    Get rated players ranked by ordinal (mu - 3*sigma), highest first.

    - **skip**: Number of records to skip (for pagination)
    - **limit**: Maximum number of records to return (1-100)
    """
    entries, total = await leaderboard_service.get_leaderboard(db, skip, limit)
    return PaginatedResponse(
        items=entries,
        total=total,
        skip=skip,
        limit=limit,
        has_more=(skip + len(entries)) < total,
    )


@router.get("/{username}", response_model=PlayerRatingRead)
async def read_player_rating(
    username: str, db: AsyncSession = Depends(get_db)
) -> PlayerRatingRead:
    """
    Retrieve one player's current rating. Any casing or padding of the
    username resolves to the same player.
    """
    return await leaderboard_service.get_player_rating(db, username)


@router.get("/{username}/events", response_model=PaginatedResponse[RatingEventRead])
async def read_rating_events(
    username: str,
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[RatingEventRead]:
    """
    Retrieve a player's rating history, newest match first.
    """
    key = username_key(username)
    if key is None or await db.get(PlayerRating, key) is None:
        raise PlayerRatingNotFoundError(key or username)

    base_query = select(PlayerRatingEvent).where(PlayerRatingEvent.username_key == key)

    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    query = (
        base_query.order_by(
            PlayerRatingEvent.ended_at.desc(), PlayerRatingEvent.game_id.desc()
        )
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    items = list(result.scalars().all())

    return PaginatedResponse(
        items=items,  # type: ignore[arg-type]
        total=total,
        skip=skip,
        limit=limit,
        has_more=(skip + len(items)) < total,
    )
