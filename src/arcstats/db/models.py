# src/arcstats/db/models.py

"""Database models for the arcstats application."""

from __future__ import annotations

from datetime import datetime
from typing import List

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import (
    Mapped,
    declarative_base,
    mapped_column,
    relationship,
)

Base = declarative_base()

# Secret row that gates the recompute operation
RECOMPUTE_TOKEN_KEY = "recompute_stats_token"


# ===============================================
# External Input: Raw Game Results (read-only)
# ===============================================


class GameResult(Base):
    """One player's result in one game, written by the ingestion pipeline.

    The recompute engine only ever reads this table.
    """

    __tablename__ = "game_results_verified"
    game_id: Mapped[str] = mapped_column(String, primary_key=True)
    player_color: Mapped[str] = mapped_column(String, primary_key=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True, index=True)

    # Turn/round counter, used as a proxy for a game being played to completion
    navigation_count: Mapped[int] = mapped_column(default=0, nullable=False)

    # Player count declared by the game itself
    player_count: Mapped[int] = mapped_column(nullable=False)

    username: Mapped[str | None] = mapped_column(String, nullable=True)
    raw_username: Mapped[str | None] = mapped_column(String, nullable=True)
    selected_character: Mapped[str] = mapped_column(String, nullable=False)
    victory_points: Mapped[int] = mapped_column(default=0, nullable=False)


class InternalToken(Base):
    """Server-held secrets, one row per key."""

    __tablename__ = "internal_tokens"
    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String, nullable=False)

    @classmethod
    async def get_value(cls, db: AsyncSession, key: str) -> str | None:
        """Return the stored secret for a key, or None if the row is absent."""
        token = await db.get(cls, key)
        return token.value if token is not None else None


# ===============================================
# Derived Tables (rebuilt on every recomputation)
# ===============================================


class VerifiedMatch(Base):
    """A reconstructed match, valid or invalid-with-reason."""

    __tablename__ = "verified_matches"
    game_id: Mapped[str] = mapped_column(String, primary_key=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True, index=True)
    navigation_count: Mapped[int] = mapped_column(nullable=False)
    player_count_expected: Mapped[int] = mapped_column(nullable=False)
    player_count_actual: Mapped[int] = mapped_column(nullable=False)
    is_valid: Mapped[bool] = mapped_column(nullable=False, index=True)
    invalid_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    stats_version: Mapped[int] = mapped_column(default=1, nullable=False)

    # Only valid matches have players; ordered by placement
    players: Mapped[List["VerifiedMatchPlayer"]] = relationship(
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="VerifiedMatchPlayer.placement",
    )


class VerifiedMatchPlayer(Base):
    """A rated participant of a valid match."""

    __tablename__ = "verified_match_players"
    game_id: Mapped[str] = mapped_column(
        ForeignKey("verified_matches.game_id"), primary_key=True
    )
    player_color: Mapped[str] = mapped_column(String, primary_key=True)
    username_key: Mapped[str] = mapped_column(String, nullable=False, index=True)
    username: Mapped[str] = mapped_column(String, nullable=False)
    raw_username: Mapped[str | None] = mapped_column(String, nullable=True)
    selected_character: Mapped[str] = mapped_column(String, nullable=False)
    victory_points: Mapped[int] = mapped_column(nullable=False)
    placement: Mapped[int] = mapped_column(nullable=False)

    match: Mapped["VerifiedMatch"] = relationship(back_populates="players")


class PlayerRatingEvent(Base):
    """Append-only before/after skill record for one player in one match."""

    __tablename__ = "player_rating_events"
    game_id: Mapped[str] = mapped_column(String, primary_key=True)
    username_key: Mapped[str] = mapped_column(String, primary_key=True)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    username: Mapped[str] = mapped_column(String, nullable=False)
    placement: Mapped[int] = mapped_column(nullable=False)
    mu_before: Mapped[float] = mapped_column(nullable=False)
    sigma_before: Mapped[float] = mapped_column(nullable=False)
    mu_after: Mapped[float] = mapped_column(nullable=False)
    sigma_after: Mapped[float] = mapped_column(nullable=False)
    rating_version: Mapped[int] = mapped_column(default=1, nullable=False)

    __table_args__ = (
        Index("ix_player_rating_events_key_ended", "username_key", "ended_at"),
    )


class PlayerRating(Base):
    """Current rating snapshot per identity key."""

    __tablename__ = "player_ratings"
    username_key: Mapped[str] = mapped_column(String, primary_key=True)
    username: Mapped[str] = mapped_column(String, nullable=False)
    mu: Mapped[float] = mapped_column(nullable=False)
    sigma: Mapped[float] = mapped_column(nullable=False)
    games_played: Mapped[int] = mapped_column(default=0, nullable=False)
    last_game_id: Mapped[str | None] = mapped_column(String, nullable=True)
    last_game_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rating_version: Mapped[int] = mapped_column(default=1, nullable=False)


# Deletion order respects the match -> player foreign key
DERIVED_MODELS = (PlayerRatingEvent, PlayerRating, VerifiedMatchPlayer, VerifiedMatch)
