"""
tests/test_tally.py — Pure election tally
==========================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from townsquare.engine.tally import Ballot, resolve_winner

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _ballot(vote_id: int, candidate: str, offset_s: int) -> Ballot:
    return Ballot(vote_id=vote_id, candidate_id=candidate, created_at=T0 + timedelta(seconds=offset_s))


class TestResolveWinner:
    def test_no_ballots_no_winner(self):
        result = resolve_winner([])
        assert result.winner_id is None
        assert result.total_votes == 0
        assert result.as_dict() == {}

    def test_most_votes_wins(self):
        result = resolve_winner([
            _ballot(1, "marge", 0),
            _ballot(2, "homer", 1),
            _ballot(3, "homer", 2),
        ])
        assert result.winner_id == "homer"
        assert result.as_dict() == {"homer": 2, "marge": 1}
        assert [t.candidate_id for t in result.tallies] == ["homer", "marge"]

    def test_tie_goes_to_earliest_first_vote(self):
        # {X: 2, Y: 2}; Y's first vote came first
        ballots = [
            _ballot(1, "Y", 0),
            _ballot(2, "X", 5),
            _ballot(3, "X", 6),
            _ballot(4, "Y", 7),
        ]
        assert resolve_winner(ballots).winner_id == "Y"

    def test_tie_break_is_independent_of_ballot_order(self):
        ballots = [
            _ballot(1, "Y", 0),
            _ballot(2, "X", 5),
            _ballot(3, "X", 6),
            _ballot(4, "Y", 7),
        ]
        assert resolve_winner(reversed(ballots)).winner_id == "Y"

    def test_identical_timestamps_fall_back_to_vote_id(self):
        result = resolve_winner([
            _ballot(9, "late-id", 0),
            _ballot(4, "early-id", 0),
        ])
        assert result.winner_id == "early-id"
        first = result.tallies[0]
        assert (first.first_vote_id, first.first_vote_at) == (4, T0)
