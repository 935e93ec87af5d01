# src/arcstats/services/recompute_service.py

"""Full truncate-and-rebuild of matches and ratings from raw game results."""

from __future__ import annotations

import asyncio
import hmac
import logging
import weakref
from datetime import datetime, timezone

from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arcstats.db import models
from arcstats.exceptions import (
    InvalidTokenError,
    MissingTokenError,
    PersistenceError,
    TokenNotConfiguredError,
)
from arcstats.rating.openskill_engine import (
    OpenSkillEngine,
    OpenSkillParameters,
    RatingEvent,
    RatingSnapshot,
)
from arcstats.schemas.recompute import RecomputeRequest, RecomputeSummary
from arcstats.services.match_assembler import Match, RawResult, assemble

logger = logging.getLogger(__name__)

# One lock per event loop serializes runs inside this process; the advisory
# lock covers other processes.
_RECOMPUTE_LOCKS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)

# Two-key advisory lock id for PostgreSQL: (namespace, operation)
ADVISORY_LOCK_SCOPE = 48211
ADVISORY_LOCK_KEY = 1


def _recompute_lock() -> asyncio.Lock:
    """Return the run lock of the current event loop, creating it on first use."""
    loop = asyncio.get_running_loop()
    lock = _RECOMPUTE_LOCKS.get(loop)
    if lock is None:
        lock = _RECOMPUTE_LOCKS[loop] = asyncio.Lock()
    return lock


async def authorize(db: AsyncSession, provided_token: str | None) -> None:
    """
    Check the caller's token against the stored secret.

    A missing token is rejected without touching the database.

    Raises:
        MissingTokenError: If no token was sent
        TokenNotConfiguredError: If the secret row does not exist
        InvalidTokenError: If the token does not match
    """
    token = (provided_token or "").strip()
    if not token:
        raise MissingTokenError()

    expected = await models.InternalToken.get_value(db, models.RECOMPUTE_TOKEN_KEY)
    if not expected:
        raise TokenNotConfiguredError(models.RECOMPUTE_TOKEN_KEY)

    if not hmac.compare_digest(expected.encode("utf-8"), token.encode("utf-8")):
        raise InvalidTokenError()


async def _acquire_advisory_lock(db: AsyncSession) -> None:
    """Take a transaction-scoped advisory lock where the backend supports it."""
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(
        text("SELECT pg_advisory_xact_lock(:scope, :key)"),
        {"scope": ADVISORY_LOCK_SCOPE, "key": ADVISORY_LOCK_KEY},
    )
    logger.debug("Advisory lock acquired")


async def load_raw_results(db: AsyncSession, min_turns: int) -> list[RawResult]:
    """Load raw results of games with more than ``min_turns`` navigation steps.

    Rows come back by end time (missing last), game id, then score descending.
    """
    query = (
        select(models.GameResult)
        .where(models.GameResult.navigation_count > min_turns)
        .order_by(
            models.GameResult.ended_at.asc().nulls_last(),
            models.GameResult.game_id.asc(),
            models.GameResult.victory_points.desc(),
        )
    )
    result = await db.execute(query)
    return [
        RawResult(
            game_id=row.game_id,
            player_color=row.player_color,
            selected_character=row.selected_character,
            victory_points=row.victory_points,
            player_count=row.player_count,
            navigation_count=row.navigation_count,
            started_at=row.started_at,
            ended_at=row.ended_at,
            username=row.username,
            raw_username=row.raw_username,
        )
        for row in result.scalars().all()
    ]


async def _truncate_derived(db: AsyncSession) -> None:
    for model in models.DERIVED_MODELS:
        await db.execute(delete(model).execution_options(synchronize_session=False))


async def _persist_matches(
    db: AsyncSession, matches: list[Match], stats_version: int
) -> None:
    """Insert every match, plus the rated players of valid matches."""
    for match in matches:
        db.add(
            models.VerifiedMatch(
                game_id=match.game_id,
                started_at=match.started_at,
                ended_at=match.ended_at,
                navigation_count=match.navigation_count,
                player_count_expected=match.player_count_expected,
                player_count_actual=match.player_count_actual,
                is_valid=match.is_valid,
                invalid_reason=match.invalid_reason,
                stats_version=stats_version,
            )
        )
    await db.flush()

    for match in matches:
        if not match.is_valid:
            continue
        for p in match.players:
            db.add(
                models.VerifiedMatchPlayer(
                    game_id=match.game_id,
                    player_color=p.player_color,
                    username_key=p.username_key,
                    username=p.username,
                    raw_username=p.raw_username,
                    selected_character=p.selected_character,
                    victory_points=p.victory_points,
                    placement=p.placement,
                )
            )
    await db.flush()


async def _persist_rating_events(db: AsyncSession, events: list[RatingEvent]) -> None:
    for event in events:
        db.add(
            models.PlayerRatingEvent(
                game_id=event.game_id,
                ended_at=event.ended_at,
                username_key=event.username_key,
                username=event.username,
                placement=event.placement,
                mu_before=event.mu_before,
                sigma_before=event.sigma_before,
                mu_after=event.mu_after,
                sigma_after=event.sigma_after,
                rating_version=event.rating_version,
            )
        )
    await db.flush()


async def _persist_ratings(
    db: AsyncSession, ratings: dict[str, RatingSnapshot]
) -> None:
    for snapshot in ratings.values():
        db.add(
            models.PlayerRating(
                username_key=snapshot.username_key,
                username=snapshot.username,
                mu=snapshot.mu,
                sigma=snapshot.sigma,
                games_played=snapshot.games_played,
                last_game_id=snapshot.last_game_id,
                last_game_at=snapshot.last_game_at,
                rating_version=snapshot.rating_version,
            )
        )
    await db.flush()


async def recompute_stats(
    db: AsyncSession,
    token: str | None,
    options: RecomputeRequest | None = None,
    params: OpenSkillParameters | None = None,
) -> RecomputeSummary:
    """
    Rebuild every derived table from the raw game results.

    This service is responsible for:
    1. Authenticating the caller against the stored secret
    2. Loading raw results and assembling them into matches
    3. Replaying valid matches through the rating engine
    4. Replacing the derived tables (matches, match players, rating events,
       ratings) with the new results

    Steps 2-4 run in one transaction: the old derived rows are deleted and
    the new ones inserted before a single commit. If anything fails the
    transaction is rolled back and the derived tables are left as they were.

    Raises:
        AuthorizationError: If the token is missing, unknown or wrong
        RatingEngineError: If the rating model rejects a match
        PersistenceError: If any database statement fails
    """
    options = options or RecomputeRequest()
    stage = "authorize"

    try:
        await authorize(db, token)

        async with _recompute_lock():
            logger.info(
                "Starting recomputation",
                extra={
                    "min_turns": options.min_turns,
                    "min_victory_points": options.min_victory_points,
                    "stats_version": options.stats_version,
                    "rating_version": options.rating_version,
                },
            )

            stage = "lock"
            await _acquire_advisory_lock(db)

            stage = "load"
            rows = await load_raw_results(db, options.min_turns)
            matches = assemble(rows, options.min_victory_points)

            stage = "replay"
            engine = OpenSkillEngine(
                params or OpenSkillParameters.from_env(),
                rating_version=options.rating_version,
            )
            replay = engine.replay(matches)

            stage = "truncate"
            await _truncate_derived(db)

            stage = "matches"
            await _persist_matches(db, matches, options.stats_version)

            stage = "events"
            await _persist_rating_events(db, replay.events)

            stage = "ratings"
            await _persist_ratings(db, replay.ratings)

            stage = "commit"
            await db.commit()

    except SQLAlchemyError as e:
        logger.error(
            "Recomputation failed, rolling back",
            extra={"stage": stage, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise PersistenceError(str(e), stage=stage) from e

    except Exception as e:
        logger.warning(
            "Recomputation aborted",
            extra={"stage": stage, "error": str(e)},
        )
        await db.rollback()
        raise

    valid_matches = [m for m in matches if m.is_valid]
    summary = RecomputeSummary(
        stats_version=options.stats_version,
        rating_version=options.rating_version,
        min_turns=options.min_turns,
        min_victory_points=options.min_victory_points,
        games_total=len(matches),
        games_valid=len(valid_matches),
        players_total=sum(m.player_count_actual for m in matches),
        players_valid=sum(len(m.participants) for m in valid_matches),
        players_rated=len(replay.ratings),
        timestamp=datetime.now(timezone.utc),
    )
    logger.info("Recomputation committed", extra=summary.model_dump())
    return summary
