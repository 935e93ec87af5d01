# tests/test_rating_engine.py

"""Unit tests for the OpenSkill replay engine."""

from unittest.mock import Mock, patch

import pytest
from arcstats.exceptions import RatingCalculationError
from arcstats.rating.openskill_engine import (
    OpenSkillEngine,
    OpenSkillParameters,
    ordinal,
)
from arcstats.services.match_assembler import Match, assemble
from helpers import at, raw
from openskill.models import PlackettLuce


def two_player(game_id: str, minute: int, winner: str | None, loser: str | None) -> list:
    return [
        raw(game_id, "red", 30, winner, ended_at=at(minute), player_count=2),
        raw(game_id, "blue", 15, loser, ended_at=at(minute), player_count=2),
    ]


def matches_from(*games: list) -> list[Match]:
    return assemble([row for game in games for row in game], min_victory_points=10)


# =============================================================================
# Event Emission
# =============================================================================


def test_every_rated_participant_gets_one_event():
    """A valid three-player match emits exactly one event per username."""
    # 1. ARRANGE
    matches = matches_from(
        [
            raw("G1", "red", 15, "Ann"),
            raw("G1", "blue", 22, "Ben"),
            raw("G1", "green", 18, "Cat"),
        ]
    )

    # 2. ACT
    result = OpenSkillEngine().replay(matches)

    # 3. ASSERT
    assert sorted(e.username_key for e in result.events) == ["ann", "ben", "cat"]
    by_key = {e.username_key: e for e in result.events}
    assert by_key["ben"].placement == 1
    assert by_key["ben"].mu_after > by_key["ben"].mu_before
    assert by_key["ann"].mu_after < by_key["ann"].mu_before
    assert set(result.ratings) == {"ann", "ben", "cat"}


def test_first_event_starts_from_the_prior():
    params = OpenSkillParameters()
    result = OpenSkillEngine(params).replay(matches_from(two_player("G", 0, "Ann", "Ben")))

    for event in result.events:
        assert event.mu_before == params.initial_mu
        assert event.sigma_before == params.initial_sigma


def test_invalid_matches_are_skipped():
    """Invalid matches produce no events and no ratings."""
    matches = matches_from(
        [
            raw("G2", "red", 20, "Ann", player_count=2),
            raw("G2", "blue", 20, "Ben", player_count=2),
        ]
    )
    assert not matches[0].is_valid

    result = OpenSkillEngine().replay(matches)

    assert result.events == []
    assert result.ratings == {}


def test_events_chain_across_matches():
    """Each event starts where the player's previous event ended."""
    matches = matches_from(
        two_player("G1", 0, "Ann", "Ben"),
        two_player("G2", 10, "Ben", "Ann"),
        two_player("G3", 20, "Ann", "Cat"),
    )

    result = OpenSkillEngine().replay(matches)

    ann_events = [e for e in result.events if e.username_key == "ann"]
    assert [e.game_id for e in ann_events] == ["G1", "G2", "G3"]
    for previous, current in zip(ann_events, ann_events[1:]):
        assert current.mu_before == previous.mu_after
        assert current.sigma_before == previous.sigma_after

    ann = result.ratings["ann"]
    assert ann.games_played == 3
    assert ann.last_game_id == "G3"
    assert ann.last_game_at == at(20)
    assert ann.mu == ann_events[-1].mu_after
    assert result.ratings["cat"].games_played == 1


def test_rating_version_is_stamped_on_output():
    result = OpenSkillEngine(rating_version=4).replay(
        matches_from(two_player("G", 0, "Ann", "Ben"))
    )

    assert {e.rating_version for e in result.events} == {4}
    assert {r.rating_version for r in result.ratings.values()} == {4}


# =============================================================================
# Unrated Participants
# =============================================================================


def test_unrated_participants_are_counted_but_not_remembered():
    """A guest without a username shapes opponents' updates but gets no rating."""
    # 1. ARRANGE: The same two rated players, with and without a guest between them.
    with_guest = matches_from(
        [
            raw("G", "red", 30, "Ann"),
            raw("G", "blue", 20, None),
            raw("G", "green", 12, "Ben"),
        ]
    )
    without_guest = matches_from(
        [
            raw("G", "red", 30, "Ann", player_count=2),
            raw("G", "green", 12, "Ben", player_count=2),
        ]
    )

    # 2. ACT
    guest_result = OpenSkillEngine().replay(with_guest)
    plain_result = OpenSkillEngine().replay(without_guest)

    # 3. ASSERT: No trace of the guest, but Ben's update differs.
    assert len(guest_result.events) == 2
    assert set(guest_result.ratings) == {"ann", "ben"}
    guest_ben = next(e for e in guest_result.events if e.username_key == "ben")
    plain_ben = next(e for e in plain_result.events if e.username_key == "ben")
    assert guest_ben.placement == 3
    assert guest_ben.mu_after != pytest.approx(plain_ben.mu_after)


def test_unrated_participants_always_play_from_the_prior():
    """Guests never accumulate skill between matches."""
    matches = matches_from(
        [
            raw("G1", "red", 30, None, ended_at=at(0), player_count=2),
            raw("G1", "blue", 12, "Ann", ended_at=at(0), player_count=2),
        ],
        [
            raw("G2", "red", 30, None, ended_at=at(10), player_count=2),
            raw("G2", "blue", 12, "Ben", ended_at=at(10), player_count=2),
        ],
    )

    result = OpenSkillEngine().replay(matches)

    ann, ben = result.events
    # Both lost to a guest rated at the prior, so the updates match
    assert ann.mu_after == pytest.approx(ben.mu_after)
    assert ann.sigma_after == pytest.approx(ben.sigma_after)


# =============================================================================
# Numeric Properties
# =============================================================================


def test_beating_a_stronger_field_gains_more():
    """A win over a high-rated opponent is worth more than one over a low-rated one."""
    # 1. ARRANGE: Champ beats Chump repeatedly, then two newcomers each win once.
    history = [two_player(f"H{i:02d}", i, "Champ", "Chump") for i in range(8)]
    matches = matches_from(
        *history,
        two_player("N1", 100, "Nova", "Champ"),
        two_player("N2", 101, "Neo", "Chump"),
    )

    # 2. ACT
    result = OpenSkillEngine().replay(matches)

    # 3. ASSERT
    nova = next(e for e in result.events if e.username_key == "nova")
    neo = next(e for e in result.events if e.username_key == "neo")
    assert nova.mu_before == neo.mu_before
    assert (nova.mu_after - nova.mu_before) > (neo.mu_after - neo.mu_before)


def test_deviation_shrinks_with_each_game():
    matches = matches_from(
        *[two_player(f"G{i}", i, "Ann" if i % 2 else "Ben", "Ben" if i % 2 else "Ann")
          for i in range(6)]
    )

    result = OpenSkillEngine().replay(matches)

    for event in result.events:
        assert event.sigma_after < event.sigma_before


def test_deviation_never_grows_even_for_upsets():
    """An upset against a settled player must not widen uncertainty."""
    history = [two_player(f"H{i:02d}", i, "Champ", "Chump") for i in range(20)]
    matches = matches_from(*history, two_player("U", 100, "Chump", "Champ"))

    result = OpenSkillEngine().replay(matches)

    for event in result.events:
        assert event.sigma_after <= event.sigma_before


# =============================================================================
# Determinism and State
# =============================================================================


def test_replay_is_deterministic():
    games = [
        [
            raw(f"G{i}", "red", 10 + (i * 7) % 13, "Ann", ended_at=at(i)),
            raw(f"G{i}", "blue", 24 + i % 5, "Ben", ended_at=at(i)),
            raw(f"G{i}", "green", 40 - i, "Cat" if i % 3 else None, ended_at=at(i)),
        ]
        for i in range(10)
    ]

    first = OpenSkillEngine().replay(matches_from(*games))
    second = OpenSkillEngine().replay(matches_from(*games))

    assert first.events == second.events
    assert first.ratings == second.ratings


def test_replay_starts_from_a_fresh_state():
    """Replaying twice on one engine does not carry ratings over."""
    engine = OpenSkillEngine()
    matches = matches_from(two_player("G", 0, "Ann", "Ben"))

    first = engine.replay(matches)
    second = engine.replay(matches)

    assert first.events == second.events
    assert second.ratings["ann"].games_played == 1


def test_model_failure_raises_rating_error():
    engine = OpenSkillEngine()
    matches = matches_from(two_player("G", 0, "Ann", "Ben"))

    # Model methods are read-only, so the whole model is swapped
    failing_model = Mock(
        rate=Mock(side_effect=ValueError("bad ranks")), rating=engine._model.rating
    )

    with patch.object(engine, "_model", failing_model):
        with pytest.raises(RatingCalculationError) as exc_info:
            engine.replay(matches)

    assert exc_info.value.details == {"game_id": "G"}


# =============================================================================
# Parameters
# =============================================================================


def test_parameters_from_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ARCSTATS_RATING_MU", "1000")
    monkeypatch.setenv("ARCSTATS_RATING_SIGMA", "100")
    monkeypatch.setenv("ARCSTATS_RATING_LIMIT_SIGMA", "false")

    params = OpenSkillParameters.from_env()

    assert params.initial_mu == 1000.0
    assert params.initial_sigma == 100.0
    assert params.limit_sigma is False
    assert params.ordinal_z == 3.0


def test_ordinal_is_conservative():
    assert ordinal(25.0, 25.0 / 3.0) == pytest.approx(0.0)
    assert ordinal(30.0, 2.0, z=2.0) == pytest.approx(26.0)


def test_ordinal_agrees_with_openskill_rating():
    """The display rating is the library's own ordinal for the distribution."""
    rating = PlackettLuce().rating(mu=31.2, sigma=4.5)

    assert ordinal(31.2, 4.5) == pytest.approx(rating.ordinal())
    assert ordinal(31.2, 4.5, z=1.5) == pytest.approx(rating.ordinal(z=1.5))
