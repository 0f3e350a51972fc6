"""
townsquare.engine.tally — Election tally & tie-break
=====================================================

Pure function over ballots; the election service feeds it the rows of a
closing round.

Resolution:
    * The candidate with the most votes wins.
    * Ties go to the tied candidate whose **first** vote arrived earliest
      (``created_at``), then the lowest vote ``id`` when timestamps match
      exactly.  The result is deterministic for any ballot order.
    * No ballots → no winner.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

__all__ = ["Ballot", "CandidateTally", "TallyResult", "resolve_winner"]


@dataclass(frozen=True, slots=True)
class Ballot:
    vote_id: int
    candidate_id: str
    created_at: datetime


@dataclass(slots=True)
class CandidateTally:
    candidate_id: str
    votes: int
    first_vote_at: datetime
    first_vote_id: int

    def sort_key(self) -> tuple[int, datetime, int]:
        # More votes first, then earliest first vote, then lowest id
        return (-self.votes, self.first_vote_at, self.first_vote_id)


@dataclass(frozen=True, slots=True)
class TallyResult:
    winner_id: str | None
    tallies: list[CandidateTally] = field(default_factory=list)

    @property
    def total_votes(self) -> int:
        return sum(t.votes for t in self.tallies)

    def as_dict(self) -> dict[str, int]:
        return {t.candidate_id: t.votes for t in self.tallies}


def resolve_winner(ballots: Iterable[Ballot]) -> TallyResult:
    """Tally *ballots* and pick the winner.

    Returns a :class:`TallyResult` whose ``tallies`` are ordered from
    winner downwards.
    """
    by_candidate: dict[str, CandidateTally] = {}
    for ballot in ballots:
        entry = by_candidate.get(ballot.candidate_id)
        if entry is None:
            by_candidate[ballot.candidate_id] = CandidateTally(
                candidate_id=ballot.candidate_id,
                votes=1,
                first_vote_at=ballot.created_at,
                first_vote_id=ballot.vote_id,
            )
            continue
        entry.votes += 1
        if (ballot.created_at, ballot.vote_id) < (entry.first_vote_at, entry.first_vote_id):
            entry.first_vote_at = ballot.created_at
            entry.first_vote_id = ballot.vote_id

    ranked = sorted(by_candidate.values(), key=CandidateTally.sort_key)
    return TallyResult(
        winner_id=ranked[0].candidate_id if ranked else None,
        tallies=ranked,
    )
