"""
townsquare.services.election_service — ElectionEngine
======================================================

Moderator elections, one community at a time::

    NoActiveRound ──open_round──▶ RoundOpen ──close_round / expiry──▶ RoundClosed

Rules:
    * Only a moderator of the community may open or close a round.
    * At most one active round per community (service check, backed by the
      partial unique index ``uq_election_rounds_one_active``).
    * Voters must be members of the community; candidates are not
      validated.
    * One ballot per voter per round, enforced by ``uq_votes_round_voter``.
      There is no way to change a ballot.
    * A round past its ``end_time`` takes no votes even while
      ``is_active`` is still set; the maintenance sweep resolves it later.
    * Resolution: most votes wins; ties go to the candidate whose first
      vote came earliest (see :mod:`townsquare.engine.tally`).  The winner
      joins the moderator set through the privileged path.

Every operation accepts ``now`` so callers (and tests) control the clock.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from townsquare.constants import DEFAULT_ROUND_HOURS, MAX_ROUND_HOURS
from townsquare.database.engine import get_session
from townsquare.database.models import ElectionRound, ModeratorSource, Vote
from townsquare.engine.events import DomainEvent, EventType
from townsquare.engine.tally import Ballot, TallyResult, resolve_winner
from townsquare.errors import (
    DuplicateVote,
    NotAuthorized,
    RoundAlreadyActive,
    RoundNotActive,
    RoundNotFound,
)
from townsquare.services import event_bus, moderation_service
from townsquare.services.community_service import require_community
from townsquare.services.membership_service import is_member
from townsquare.services.moderation_service import SYSTEM

logger = logging.getLogger(__name__)


def _as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _resolve_now(now: datetime | None) -> datetime:
    return _as_utc(now) if now is not None else datetime.now(UTC)


def is_open(election_round: ElectionRound, now: datetime | None = None) -> bool:
    """True iff the round still accepts votes at *now*."""
    return election_round.is_active and _resolve_now(now) < _as_utc(election_round.end_time)


def _require_round(session: Session, round_id: int, *, lock: bool = False) -> ElectionRound:
    if lock:
        election_round = session.get(
            ElectionRound, round_id, with_for_update={"read": True}
        )
    else:
        election_round = session.get(ElectionRound, round_id)
    if election_round is None:
        raise RoundNotFound(round_id)
    return election_round


def _tally(session: Session, round_id: int) -> TallyResult:
    rows = session.execute(
        select(Vote.id, Vote.candidate_id, Vote.created_at).where(Vote.round_id == round_id)
    ).all()
    return resolve_winner(
        Ballot(vote_id=row.id, candidate_id=row.candidate_id, created_at=_as_utc(row.created_at))
        for row in rows
    )


def _close(
    session: Session, election_round: ElectionRound, now: datetime, actor_id: str | None,
) -> TallyResult | None:
    """Deactivate, tally and resolve *election_round* on *session*.

    Returns None if another transaction closed it first.
    """
    result = session.execute(
        update(ElectionRound)
        .where(ElectionRound.id == election_round.id, ElectionRound.is_active.is_(True))
        .values(is_active=False, closed_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    session.expire(election_round, ["is_active", "closed_at"])

    tally = _tally(session, election_round.id)
    election_round.winner_id = tally.winner_id
    session.flush()

    if tally.winner_id is not None:
        moderation_service.appoint_moderator(
            session,
            election_round.community_id,
            tally.winner_id,
            source=ModeratorSource.ELECTION,
            actor=SYSTEM,
        )

    event_bus.publish(session, DomainEvent(
        EventType.ROUND_CLOSED,
        actor_id=actor_id,
        community_id=election_round.community_id,
        payload={
            "round_id": election_round.id,
            "winner_id": tally.winner_id,
            "tally": tally.as_dict(),
        },
    ))
    logger.info(
        "Election round %s closed: community=%s winner=%s votes=%d",
        election_round.id, election_round.community_id, tally.winner_id, tally.total_votes,
    )
    return tally


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def open_round(
    engine: Engine,
    community_id: int,
    *,
    actor_id: str,
    duration: timedelta | None = None,
    now: datetime | None = None,
) -> ElectionRound:
    """Open a voting round running from *now* to ``now + duration``.

    An active round that has already expired is resolved first.

    Raises
    ------
    NotAuthorized
        If *actor_id* is not a moderator of the community.
    RoundAlreadyActive
        If a round is still open (including a concurrent opener).
    ValueError
        If *duration* is not positive or exceeds the allowed maximum.
    """
    now = _resolve_now(now)
    if duration is None:
        duration = timedelta(hours=DEFAULT_ROUND_HOURS)
    if duration <= timedelta(0) or duration > timedelta(hours=MAX_ROUND_HOURS):
        raise ValueError(f"round duration must be within (0, {MAX_ROUND_HOURS}h], got {duration}")

    try:
        with get_session(engine) as session:
            require_community(session, community_id)
            if not moderation_service.is_moderator(session, community_id, actor_id):
                raise NotAuthorized("Only moderators may open an election.")

            active = session.scalars(
                select(ElectionRound).where(
                    ElectionRound.community_id == community_id,
                    ElectionRound.is_active.is_(True),
                )
            ).first()
            if active is not None:
                if is_open(active, now):
                    raise RoundAlreadyActive()
                _close(session, active, now, actor_id=None)

            election_round = ElectionRound(
                community_id=community_id,
                opened_by=actor_id,
                start_time=now,
                end_time=now + duration,
                is_active=True,
            )
            session.add(election_round)
            session.flush()
            logger.info(
                "Election round %s opened: community=%s by=%s ends=%s",
                election_round.id, community_id, actor_id, election_round.end_time,
            )
            return election_round
    except IntegrityError:
        raise RoundAlreadyActive() from None


def cast_vote(
    engine: Engine,
    round_id: int,
    voter_id: str,
    candidate_id: str,
    *,
    now: datetime | None = None,
) -> Vote:
    """Record *voter_id*'s ballot for *candidate_id*.

    Raises
    ------
    RoundNotFound
        If the round does not exist.
    RoundNotActive
        If the round is closed or its ``end_time`` has passed.
    NotAuthorized
        If *voter_id* is not a member of the round's community.
    DuplicateVote
        If *voter_id* already voted in this round.
    """
    now = _resolve_now(now)
    try:
        with get_session(engine) as session:
            # FOR SHARE: a concurrent close waits until this ballot commits
            election_round = _require_round(session, round_id, lock=True)
            if not is_open(election_round, now):
                raise RoundNotActive()
            if not is_member(session, voter_id, election_round.community_id):
                raise NotAuthorized("Only community members may vote.")

            vote = Vote(
                round_id=round_id,
                voter_id=voter_id,
                candidate_id=candidate_id,
                created_at=now,
            )
            session.add(vote)
            session.flush()
            return vote
    except IntegrityError:
        raise DuplicateVote() from None


def close_round(
    engine: Engine,
    round_id: int,
    *,
    actor_id: str,
    now: datetime | None = None,
) -> TallyResult:
    """Close *round_id* and seat the winner as moderator.

    Raises
    ------
    RoundNotFound
        If the round does not exist.
    NotAuthorized
        If *actor_id* is not a moderator of the round's community.
    RoundNotActive
        If the round was already closed.
    """
    now = _resolve_now(now)
    with get_session(engine) as session:
        election_round = _require_round(session, round_id)
        if not moderation_service.is_moderator(session, election_round.community_id, actor_id):
            raise NotAuthorized("Only moderators may close an election.")
        if not election_round.is_active:
            raise RoundNotActive()

        tally = _close(session, election_round, now, actor_id=actor_id)
        if tally is None:
            raise RoundNotActive()
        return tally


def close_expired_rounds(engine: Engine, now: datetime | None = None) -> list[int]:
    """System sweep: resolve every active round whose ``end_time`` has passed.

    Each round closes in its own transaction so one failure does not hold
    back the rest.  Returns the ids of the rounds this call closed.
    """
    now = _resolve_now(now)
    with get_session(engine) as session:
        candidates = list(session.scalars(
            select(ElectionRound.id).where(
                ElectionRound.is_active.is_(True),
                ElectionRound.end_time <= now,
            )
        ).all())

    closed: list[int] = []
    for round_id in candidates:
        with get_session(engine) as session:
            election_round = _require_round(session, round_id)
            if _close(session, election_round, now, actor_id=None) is not None:
                closed.append(round_id)

    if closed:
        logger.info("Expired-round sweep closed %d round(s): %s", len(closed), closed)
    return closed


def get_round(engine: Engine, round_id: int) -> ElectionRound:
    with get_session(engine) as session:
        return _require_round(session, round_id)


def get_round_results(engine: Engine, round_id: int) -> dict:
    """Per-candidate tallies, winner first.  Works on open rounds too."""
    with get_session(engine) as session:
        election_round = _require_round(session, round_id)
        tally = _tally(session, round_id)
        return {
            "round_id": election_round.id,
            "community_id": election_round.community_id,
            "is_active": election_round.is_active,
            "start_time": _as_utc(election_round.start_time).isoformat(),
            "end_time": _as_utc(election_round.end_time).isoformat(),
            "winner_id": election_round.winner_id,
            "total_votes": tally.total_votes,
            "tallies": [
                {"candidate_id": t.candidate_id, "votes": t.votes} for t in tally.tallies
            ],
        }
