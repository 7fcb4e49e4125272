"""
Tests for ballot validation and tallying.

Verifies:
1. Choice sets are checked against the poll mode
2. Ranked polls use Borda points over the option count
3. Ties are reported, never broken
4. Anonymous polls do not expose voters
"""

from uuid import uuid4

import pytest

from consent_engine.schemas.tools import VotingMode, VotingTool
from consent_engine.services.errors import InvalidChoiceSetError
from consent_engine.services.tally import compute_tally, validate_choices


# =============================================================================
# FIXTURES
# =============================================================================


def make_poll(mode: VotingMode, is_anonymous: bool = False) -> VotingTool:
    return VotingTool(
        question="Where do we meet?",
        options=[
            {"id": "A", "label": "Office"},
            {"id": "B", "label": "Park"},
            {"id": "C", "label": "Online"},
        ],
        mode=mode,
        is_anonymous=is_anonymous,
    )


# =============================================================================
# TEST: CHOICE VALIDATION
# =============================================================================


class TestValidateChoices:
    """Cardinality and option ids per mode."""

    def test_single_requires_exactly_one(self):
        with pytest.raises(InvalidChoiceSetError):
            validate_choices(["A", "B"], VotingMode.SINGLE, ["A", "B", "C"])
        validate_choices(["A"], VotingMode.SINGLE, ["A", "B", "C"])

    def test_empty_ballot_rejected(self):
        with pytest.raises(InvalidChoiceSetError):
            validate_choices([], VotingMode.APPROVAL, ["A", "B"])

    def test_unknown_option_rejected(self):
        with pytest.raises(InvalidChoiceSetError):
            validate_choices(["Z"], VotingMode.APPROVAL, ["A", "B"])

    def test_duplicates_rejected(self):
        with pytest.raises(InvalidChoiceSetError):
            validate_choices(["A", "A"], VotingMode.RANKED, ["A", "B"])

    def test_ranked_subset_allowed(self):
        validate_choices(["C", "A"], VotingMode.RANKED, ["A", "B", "C"])


# =============================================================================
# TEST: TALLY
# =============================================================================


class TestComputeTally:
    """Results of closed polls."""

    def test_ranked_borda_points(self):
        poll = make_poll(VotingMode.RANKED)

        tally = compute_tally(poll, [(uuid4(), ["A", "B", "C"])])

        scores = {r.option_id: r.score for r in tally.results}
        assert scores == {"A": 2, "B": 1, "C": 0}
        assert tally.winners == ["A"]
        assert not tally.is_tie

    def test_ranked_partial_ballot(self):
        poll = make_poll(VotingMode.RANKED)

        tally = compute_tally(poll, [(uuid4(), ["C"]), (uuid4(), ["B", "C"])])

        scores = {r.option_id: r.score for r in tally.results}
        assert scores == {"A": 0, "B": 2, "C": 2 + 1}
        assert tally.winners == ["C"]

    def test_approval_tie_reported(self):
        poll = make_poll(VotingMode.APPROVAL)
        alice, bob, carol = uuid4(), uuid4(), uuid4()
        ballots = [
            (alice, ["A", "B"]),
            (bob, ["A"]),
            (carol, ["B", "C"]),
        ]

        tally = compute_tally(poll, ballots)

        counts = {r.option_id: r.count for r in tally.results}
        assert counts == {"A": 2, "B": 2, "C": 1}
        assert tally.winners == ["A", "B"]
        assert tally.is_tie
        assert tally.total_ballots == 3

    def test_single_counts_and_voters(self):
        poll = make_poll(VotingMode.SINGLE)
        alice, bob = uuid4(), uuid4()

        tally = compute_tally(poll, [(alice, ["B"]), (bob, ["B"])])

        b = next(r for r in tally.results if r.option_id == "B")
        assert b.count == 2
        assert set(b.voters) == {alice, bob}
        assert tally.winners == ["B"]

    def test_anonymous_hides_voters(self):
        poll = make_poll(VotingMode.SINGLE, is_anonymous=True)

        tally = compute_tally(poll, [(uuid4(), ["A"])])

        assert all(r.voters is None for r in tally.results)
        assert tally.results[0].count == 1

    def test_no_ballots_no_winner(self):
        tally = compute_tally(make_poll(VotingMode.APPROVAL), [])
        assert tally.total_ballots == 0
        assert tally.winners == []
        assert not tally.is_tie
