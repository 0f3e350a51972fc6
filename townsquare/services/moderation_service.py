"""
townsquare.services.moderation_service — Moderator set & privileged path
=========================================================================

The moderator set is written only by system-initiated actions: the
founding moderator on community creation, election resolution, and
administrative appointment.  :func:`appoint_moderator` demands the
:data:`SYSTEM` sentinel, which no caller-supplied identifier can produce;
ordinary request paths can only *read* the set.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from townsquare.database.engine import get_session
from townsquare.database.models import Community, Moderator, ModeratorSource
from townsquare.errors import CommunityNotFound

logger = logging.getLogger(__name__)


class SystemActor:
    """Marker for system-initiated writes.  Only :data:`SYSTEM` exists."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<SystemActor>"


SYSTEM = SystemActor()


def is_moderator(session: Session, community_id: int, user_id: str) -> bool:
    return session.get(Moderator, (community_id, user_id)) is not None


def appoint_moderator(
    session: Session,
    community_id: int,
    user_id: str,
    *,
    source: ModeratorSource,
    actor: SystemActor,
) -> bool:
    """Insert *user_id* into the moderator set of *community_id*.

    Returns True if the user was added, False if already a moderator.

    Raises
    ------
    TypeError
        If *actor* is not the system sentinel.
    CommunityNotFound
        If the community does not exist.
    """
    if actor is not SYSTEM:
        raise TypeError("appoint_moderator is reserved for system-initiated actions")
    if session.get(Community, community_id) is None:
        raise CommunityNotFound(community_id)

    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(Moderator(community_id=community_id, user_id=user_id, source=source))
            session.flush()
    except IntegrityError:
        # Already in the set; only the SAVEPOINT rolled back.
        return False

    logger.info(
        "Moderator appointed: community=%s user=%s source=%s",
        community_id, user_id, source,
    )
    return True


def grant_moderator(engine: Engine, community_id: int, user_id: str) -> bool:
    """Administrative appointment (admin-JWT route only)."""
    with get_session(engine) as session:
        return appoint_moderator(
            session, community_id, user_id, source=ModeratorSource.ADMIN, actor=SYSTEM,
        )


def list_moderators(engine: Engine, community_id: int) -> list[Moderator]:
    with get_session(engine) as session:
        if session.get(Community, community_id) is None:
            raise CommunityNotFound(community_id)
        return list(session.scalars(
            select(Moderator)
            .where(Moderator.community_id == community_id)
            .order_by(Moderator.appointed_at.asc())
        ).all())
