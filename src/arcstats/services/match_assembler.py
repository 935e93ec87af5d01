# src/arcstats/services/match_assembler.py

"""Reconstruct validated matches from raw per-player game results."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from arcstats.identity import clean_username, username_key

logger = logging.getLogger(__name__)

MIN_PLAYERS = 2
MAX_PLAYERS = 6


@dataclass(frozen=True)
class RawResult:
    """One player's row of one finished game, as produced upstream."""

    game_id: str
    player_color: str
    selected_character: str
    victory_points: int
    player_count: int
    navigation_count: int = 0
    started_at: datetime | None = None
    ended_at: datetime | None = None
    username: str | None = None
    raw_username: str | None = None


@dataclass(frozen=True)
class MatchParticipant:
    """An eligible player of a valid match with its derived placement."""

    player_color: str
    username: str | None
    username_key: str | None
    raw_username: str | None
    selected_character: str
    victory_points: int
    placement: int

    @property
    def is_rated(self) -> bool:
        return self.username_key is not None


@dataclass(frozen=True)
class Match:
    """Aggregate of all raw results sharing one game id.

    A match is either valid (ranked participants, no ties, 2-6 players) or
    invalid with a reason and no participants at all.
    """

    game_id: str
    started_at: datetime | None
    ended_at: datetime | None
    navigation_count: int
    player_count_expected: int
    player_count_actual: int
    is_valid: bool
    invalid_reason: str | None = None
    participants: tuple[MatchParticipant, ...] = field(default_factory=tuple)

    @property
    def players(self) -> tuple[MatchParticipant, ...]:
        """Participants with an identity key; only these receive ratings."""
        return tuple(p for p in self.participants if p.is_rated)


def group_by_game(rows: Iterable[RawResult]) -> dict[str, list[RawResult]]:
    """Group raw rows by game id, preserving first-seen order."""
    grouped: dict[str, list[RawResult]] = {}
    for row in rows:
        grouped.setdefault(row.game_id, []).append(row)
    return grouped


def _placement_order(row: RawResult) -> tuple[int, str]:
    return (-row.victory_points, row.player_color)


def _find_invalid_reason(
    meta: RawResult, eligible: list[RawResult], min_victory_points: int
) -> str | None:
    """Apply the validity rules in order; the first failure wins."""
    if meta.ended_at is None:
        return "Missing ended_at on game result"

    expected = meta.player_count
    if expected < MIN_PLAYERS or expected > MAX_PLAYERS:
        return (
            f"Unsupported player_count={expected} "
            f"(expected {MIN_PLAYERS}-{MAX_PLAYERS})"
        )

    actual = len(eligible)
    if actual < MIN_PLAYERS:
        return f"Not enough players after filtering (<{min_victory_points} VP excluded)"
    if actual > MAX_PLAYERS:
        return (
            f"Unsupported filtered player_count={actual} "
            f"(expected {MIN_PLAYERS}-{MAX_PLAYERS})"
        )

    seen_keys: set[str] = set()
    for row in eligible:
        key = username_key(row.username)
        if key is None:
            continue
        if key in seen_keys:
            return f"Duplicate username_key in match: {key}"
        seen_keys.add(key)

    seen_scores: set[int] = set()
    for row in eligible:
        if row.victory_points in seen_scores:
            return "Duplicate victory_points detected (placement ties not supported)"
        seen_scores.add(row.victory_points)

    return None


def build_match(
    game_id: str, rows: list[RawResult], min_victory_points: int
) -> Match:
    """Build the Match aggregate for a single game's rows."""
    # Canonical row order makes the result independent of input order.
    ordered = sorted(rows, key=_placement_order)
    meta = ordered[0]

    eligible = [r for r in ordered if r.victory_points >= min_victory_points]
    invalid_reason = _find_invalid_reason(meta, eligible, min_victory_points)

    participants: tuple[MatchParticipant, ...] = ()
    if invalid_reason is None:
        participants = tuple(
            MatchParticipant(
                player_color=row.player_color,
                username=clean_username(row.username),
                username_key=username_key(row.username),
                raw_username=row.raw_username,
                selected_character=row.selected_character,
                victory_points=row.victory_points,
                placement=index + 1,
            )
            for index, row in enumerate(eligible)
        )
    else:
        logger.debug(
            "Match marked invalid",
            extra={"game_id": game_id, "invalid_reason": invalid_reason},
        )

    return Match(
        game_id=game_id,
        started_at=meta.started_at,
        ended_at=meta.ended_at,
        navigation_count=meta.navigation_count,
        player_count_expected=meta.player_count,
        player_count_actual=len(eligible),
        is_valid=invalid_reason is None,
        invalid_reason=invalid_reason,
        participants=participants,
    )


def chronological_key(match: Match) -> tuple[bool, datetime | None, str]:
    """Sort key for replay: ended_at ascending with missing last, then game id."""
    return (match.ended_at is None, match.ended_at, match.game_id)


def assemble(rows: Iterable[RawResult], min_victory_points: int) -> list[Match]:
    """
    Group raw results into matches and order them for rating replay.

    Returns one Match per distinct game id, valid or not, sorted by
    ``chronological_key``. The order is the authoritative chronology for the
    rating engine.
    """
    grouped = group_by_game(rows)
    matches = [
        build_match(game_id, game_rows, min_victory_points)
        for game_id, game_rows in grouped.items()
    ]
    matches.sort(key=chronological_key)

    logger.info(
        "Assembled matches",
        extra={
            "games_total": len(matches),
            "games_valid": sum(1 for m in matches if m.is_valid),
        },
    )
    return matches
