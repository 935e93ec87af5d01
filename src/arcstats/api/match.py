# src/arcstats/api/match.py

"""API endpoints for browsing verified matches."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from arcstats.db.models import VerifiedMatch, VerifiedMatchPlayer
from arcstats.db.session import get_db
from arcstats.exceptions import MatchNotFoundError
from arcstats.identity import username_key
from arcstats.schemas import match as match_schema
from arcstats.schemas.pagination import MatchSortField, PaginatedResponse, SortOrder

router = APIRouter(prefix="/matches", tags=["Matches"])


@router.get("/", response_model=PaginatedResponse[match_schema.VerifiedMatchRead])
async def read_matches(
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    sort_by: MatchSortField = Query(MatchSortField.ENDED_AT, description="Sort field"),
    sort_order: SortOrder = Query(SortOrder.DESC, description="Sort direction"),
    is_valid: bool | None = Query(None, description="Filter by validity"),
    username: str | None = Query(None, description="Filter by rated participant"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[match_schema.VerifiedMatchRead]:
    """
    Retrieve a paginated list of verified matches.

    - **skip**: Number of records to skip (for pagination)
    - **limit**: Maximum number of records to return (1-100)
    - **sort_by**: Field to sort by (ended_at, game_id)
    - **sort_order**: Sort direction (asc, desc)
    - **is_valid**: Only valid (true) or only invalid (false) matches
    - **username**: Only matches this player was rated in
    """
    base_query = select(VerifiedMatch)

    if is_valid is not None:
        base_query = base_query.where(VerifiedMatch.is_valid == is_valid)

    if username is not None:
        # A player appears at most once per match, so no DISTINCT is needed
        base_query = base_query.join(VerifiedMatchPlayer).where(
            VerifiedMatchPlayer.username_key == username_key(username)
        )

    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    sort_column = getattr(VerifiedMatch, sort_by.value)
    if sort_order == SortOrder.DESC:
        sort_column = sort_column.desc()

    query = (
        base_query.order_by(sort_column, VerifiedMatch.game_id)
        .offset(skip)
        .limit(limit)
        .options(selectinload(VerifiedMatch.players))
    )
    result = await db.execute(query)
    items = list(result.scalars().unique().all())

    return PaginatedResponse(
        items=items,  # type: ignore[arg-type]
        total=total,
        skip=skip,
        limit=limit,
        has_more=(skip + len(items)) < total,
    )


@router.get("/{game_id}", response_model=match_schema.VerifiedMatchRead)
async def read_match(
    game_id: str, db: AsyncSession = Depends(get_db)
) -> VerifiedMatch:
    """
    Retrieve a single verified match with its rated players.
    """
    query = (
        select(VerifiedMatch)
        .where(VerifiedMatch.game_id == game_id)
        .options(selectinload(VerifiedMatch.players))
    )
    result = await db.execute(query)
    match = result.scalar_one_or_none()

    if not match:
        raise MatchNotFoundError(game_id)

    return match
