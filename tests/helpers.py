# tests/helpers.py

"""Shared builders for test data."""

from datetime import datetime, timedelta

from arcstats.db.models import GameResult
from arcstats.services.match_assembler import RawResult

RECOMPUTE_TOKEN = "test-recompute-secret"

# Reference time for seeded games; offsets keep the chronology readable
T0 = datetime(2025, 3, 1, 18, 0, 0)


def at(minutes: int) -> datetime:
    """Timestamp ``minutes`` after T0."""
    return T0 + timedelta(minutes=minutes)


def raw(
    game_id: str,
    player_color: str,
    victory_points: int,
    username: str | None = None,
    *,
    ended_at: datetime | None = T0,
    player_count: int = 3,
    navigation_count: int = 40,
    selected_character: str = "Wanderer",
) -> RawResult:
    """Build an in-memory raw result with sensible defaults."""
    return RawResult(
        game_id=game_id,
        player_color=player_color,
        selected_character=selected_character,
        victory_points=victory_points,
        player_count=player_count,
        navigation_count=navigation_count,
        started_at=ended_at - timedelta(hours=1) if ended_at else None,
        ended_at=ended_at,
        username=username,
        raw_username=username,
    )


def result_row(*args, **kwargs) -> GameResult:
    """Build a game_results_verified row; same arguments as ``raw``."""
    r = raw(*args, **kwargs)
    return GameResult(
        game_id=r.game_id,
        player_color=r.player_color,
        selected_character=r.selected_character,
        victory_points=r.victory_points,
        player_count=r.player_count,
        navigation_count=r.navigation_count,
        started_at=r.started_at,
        ended_at=r.ended_at,
        username=r.username,
        raw_username=r.raw_username,
    )
