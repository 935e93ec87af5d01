# src/arcstats/rating/openskill_engine.py

"""
Placement-only OpenSkill replay over the match history.

Every participant of a match is a team of one. Ranks are the match
placements, so the Plackett-Luce model sees a total order with no draws and
no margin of victory.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from openskill.models import PlackettLuce

from arcstats.exceptions import RatingCalculationError
from arcstats.services.match_assembler import Match

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return default if value is None else float(value)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass(frozen=True)
class OpenSkillParameters:
    initial_mu: float = 25.0
    initial_sigma: float = 25.0 / 3.0
    beta: float = 25.0 / 6.0
    kappa: float = 0.0001
    tau: float = 25.0 / 300.0
    # Keeps sigma from growing after a match, so uncertainty only shrinks.
    limit_sigma: bool = True
    balance: bool = False
    ordinal_z: float = 3.0

    @classmethod
    def from_env(cls) -> "OpenSkillParameters":
        """Read overrides from ARCSTATS_RATING_* environment variables."""
        defaults = cls()
        return cls(
            initial_mu=_env_float("ARCSTATS_RATING_MU", defaults.initial_mu),
            initial_sigma=_env_float("ARCSTATS_RATING_SIGMA", defaults.initial_sigma),
            beta=_env_float("ARCSTATS_RATING_BETA", defaults.beta),
            kappa=_env_float("ARCSTATS_RATING_KAPPA", defaults.kappa),
            tau=_env_float("ARCSTATS_RATING_TAU", defaults.tau),
            limit_sigma=_env_bool("ARCSTATS_RATING_LIMIT_SIGMA", defaults.limit_sigma),
            balance=_env_bool("ARCSTATS_RATING_BALANCE", defaults.balance),
            ordinal_z=_env_float("ARCSTATS_RATING_ORDINAL_Z", defaults.ordinal_z),
        )


# Only used to build ratings for ordinal(); parameters do not affect it.
_ORDINAL_MODEL = PlackettLuce()


def ordinal(mu: float, sigma: float, z: float = 3.0) -> float:
    """Conservative display rating: the skill we are fairly sure of."""
    return float(_ORDINAL_MODEL.rating(mu=mu, sigma=sigma).ordinal(z=z))


@dataclass(frozen=True)
class SkillRating:
    """A player's skill distribution on the OpenSkill scale."""

    mu: float
    sigma: float


@dataclass(frozen=True)
class RatingEvent:
    """Before/after skill snapshot for one rated participant of one match."""

    game_id: str
    ended_at: datetime | None
    username_key: str
    username: str
    placement: int
    mu_before: float
    sigma_before: float
    mu_after: float
    sigma_after: float
    rating_version: int


@dataclass
class RatingSnapshot:
    """Current rating of one identity; the fold of all its events."""

    username_key: str
    username: str
    mu: float
    sigma: float
    games_played: int = 0
    last_game_id: str | None = None
    last_game_at: datetime | None = None
    rating_version: int = 1


@dataclass
class ReplayResult:
    events: list[RatingEvent] = field(default_factory=list)
    ratings: dict[str, RatingSnapshot] = field(default_factory=dict)


class OpenSkillEngine:
    """Stateful chronological replay of valid matches."""

    def __init__(
        self, params: OpenSkillParameters | None = None, rating_version: int = 1
    ) -> None:
        self.params = params or OpenSkillParameters()
        self.rating_version = rating_version
        self._model = PlackettLuce(
            mu=self.params.initial_mu,
            sigma=self.params.initial_sigma,
            beta=self.params.beta,
            kappa=self.params.kappa,
            tau=self.params.tau,
            limit_sigma=self.params.limit_sigma,
            balance=self.params.balance,
        )
        self._ratings: dict[str, RatingSnapshot] = {}

    @property
    def prior(self) -> SkillRating:
        return SkillRating(mu=self.params.initial_mu, sigma=self.params.initial_sigma)

    def reset(self) -> None:
        self._ratings = {}

    def current(self, key: str) -> SkillRating:
        """Current distribution for a key, or the prior if it was never rated."""
        snapshot = self._ratings.get(key)
        if snapshot is None:
            return self.prior
        return SkillRating(mu=snapshot.mu, sigma=snapshot.sigma)

    def _model_rating(self, skill: SkillRating, name: str | None) -> Any:
        return self._model.rating(mu=skill.mu, sigma=skill.sigma, name=name)

    def process_match(self, match: Match) -> list[RatingEvent]:
        """
        Rate one valid match and fold the result into the current state.

        Participants without an identity key play from the prior and shape
        their opponents' updates, but nothing is recorded for them.
        """
        participants = match.participants
        before = [
            self.current(p.username_key) if p.username_key else self.prior
            for p in participants
        ]
        teams = [
            [self._model_rating(skill, p.username_key)]
            for p, skill in zip(participants, before)
        ]
        ranks = [float(p.placement) for p in participants]

        try:
            updated = self._model.rate(teams, ranks=ranks)
        except (ValueError, TypeError, ZeroDivisionError) as e:
            raise RatingCalculationError(
                f"OpenSkill update failed: {e}", game_id=match.game_id
            ) from e

        events: list[RatingEvent] = []
        for p, skill, team in zip(participants, before, updated):
            if p.username_key is None or p.username is None:
                continue

            after = team[0]
            event = RatingEvent(
                game_id=match.game_id,
                ended_at=match.ended_at,
                username_key=p.username_key,
                username=p.username,
                placement=p.placement,
                mu_before=skill.mu,
                sigma_before=skill.sigma,
                mu_after=float(after.mu),
                sigma_after=float(after.sigma),
                rating_version=self.rating_version,
            )
            events.append(event)

            snapshot = self._ratings.get(p.username_key)
            if snapshot is None:
                snapshot = RatingSnapshot(
                    username_key=p.username_key,
                    username=p.username,
                    mu=event.mu_after,
                    sigma=event.sigma_after,
                    rating_version=self.rating_version,
                )
                self._ratings[p.username_key] = snapshot
            snapshot.mu = event.mu_after
            snapshot.sigma = event.sigma_after
            snapshot.username = p.username
            snapshot.games_played += 1
            snapshot.last_game_id = match.game_id
            snapshot.last_game_at = match.ended_at

        return events

    def replay(self, matches: Iterable[Match]) -> ReplayResult:
        """
        Replay matches in the given order, starting from a fresh state.

        Invalid matches are skipped; they are not an error.
        """
        self.reset()
        result = ReplayResult()
        skipped = 0
        for match in matches:
            if not match.is_valid:
                skipped += 1
                continue
            result.events.extend(self.process_match(match))

        result.ratings = dict(self._ratings)
        logger.info(
            "Rating replay complete",
            extra={
                "events": len(result.events),
                "players_rated": len(result.ratings),
                "matches_skipped": skipped,
            },
        )
        return result
