# src/arcstats/services/leaderboard_service.py

"""Read-side queries over the derived rating tables."""

from __future__ import annotations

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arcstats.db import models
from arcstats.exceptions import PlayerRatingNotFoundError
from arcstats.identity import username_key
from arcstats.rating.openskill_engine import OpenSkillParameters, ordinal
from arcstats.schemas.common import SkillInfo
from arcstats.schemas.rating import LeaderboardEntry, PlayerRatingRead, PlayerStats


async def player_stats(
    db: AsyncSession, keys: list[str] | None = None
) -> dict[str, PlayerStats]:
    """Aggregate wins, win rate and averages per identity key."""
    player = models.VerifiedMatchPlayer
    query = select(
        player.username_key,
        func.count(),
        func.sum(case((player.placement == 1, 1), else_=0)),
        func.avg(player.victory_points),
        func.avg(player.placement),
    ).group_by(player.username_key)
    if keys is not None:
        query = query.where(player.username_key.in_(keys))

    result = await db.execute(query)
    stats: dict[str, PlayerStats] = {}
    for key, games, wins, avg_vp, avg_placement in result.all():
        stats[key] = PlayerStats(
            wins=int(wins or 0),
            win_rate=(wins or 0) / games if games else None,
            avg_victory_points=float(avg_vp or 0.0),
            avg_placement=float(avg_placement or 0.0),
        )
    return stats


def _to_read(
    rating: models.PlayerRating, stats: PlayerStats | None, z: float
) -> dict:
    return {
        "username_key": rating.username_key,
        "username": rating.username,
        "skill": SkillInfo(
            mu=rating.mu, sigma=rating.sigma, ordinal=ordinal(rating.mu, rating.sigma, z)
        ),
        "games_played": rating.games_played,
        "last_game_id": rating.last_game_id,
        "last_game_at": rating.last_game_at,
        "rating_version": rating.rating_version,
        "stats": stats or PlayerStats(),
    }


async def get_leaderboard(
    db: AsyncSession, skip: int, limit: int
) -> tuple[list[LeaderboardEntry], int]:
    """
    Rank all rated players by ordinal, highest first.

    Returns the requested page and the total number of rated players.
    """
    z = OpenSkillParameters.from_env().ordinal_z
    rating = models.PlayerRating

    count_query = select(func.count()).select_from(rating)
    total = (await db.execute(count_query)).scalar_one()

    # Ties on ordinal fall back to the key
    query = (
        select(rating)
        .order_by((rating.mu - z * rating.sigma).desc(), rating.username_key)
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    page = list(result.scalars().all())

    stats = await player_stats(db, [r.username_key for r in page])
    entries = [
        LeaderboardEntry(
            rank=skip + i + 1, **_to_read(r, stats.get(r.username_key), z)
        )
        for i, r in enumerate(page)
    ]
    return entries, total


async def get_player_rating(db: AsyncSession, username: str) -> PlayerRatingRead:
    """Look up one player's rating by any spelling of their username.

    Raises:
        PlayerRatingNotFoundError: If the normalized key has no rating
    """
    key = username_key(username)
    rating = await db.get(models.PlayerRating, key) if key else None
    if rating is None:
        raise PlayerRatingNotFoundError(key or username)

    z = OpenSkillParameters.from_env().ordinal_z
    stats = await player_stats(db, [rating.username_key])
    return PlayerRatingRead(**_to_read(rating, stats.get(rating.username_key), z))
