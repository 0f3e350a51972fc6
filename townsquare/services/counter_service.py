"""
townsquare.services.counter_service — CounterMaintainer
========================================================

Keeps the cached counters equal to the cardinality of their backing sets:

=====================  ===============================  ===================
Event                  Counter                           Delta
=====================  ===============================  ===================
MembershipAdded        ``communities.member_count``      +1
MembershipRemoved      ``communities.member_count``      -1
LikeAdded              ``posts.likes_count``             +1
LikeRemoved            ``posts.likes_count``             -1
CommentCreated         ``posts.comments_count``          +1
CommentDeleted         ``posts.comments_count``          -1
=====================  ===============================  ===================

Each adjustment is one ``UPDATE … SET col = col ± 1`` issued on the
caller's session, so it commits or rolls back together with the edge
mutation that triggered it.  Decrements are guarded with ``col > 0``; a
guard miss means the counter and its edge set already disagree, which is
raised as :class:`~townsquare.errors.ConsistencyFault` and never silently
clamped.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from townsquare.database.models import Comment, Community, Like, Membership, Post
from townsquare.engine.events import DomainEvent, EventType
from townsquare.errors import ConsistencyFault

logger = logging.getLogger(__name__)

# event type → (model, counter column name, owner attribute on the event, delta)
_COUNTER_RULES: dict[EventType, tuple[type, str, str, int]] = {
    EventType.MEMBERSHIP_ADDED: (Community, "member_count", "community_id", +1),
    EventType.MEMBERSHIP_REMOVED: (Community, "member_count", "community_id", -1),
    EventType.LIKE_ADDED: (Post, "likes_count", "post_id", +1),
    EventType.LIKE_REMOVED: (Post, "likes_count", "post_id", -1),
    EventType.COMMENT_CREATED: (Post, "comments_count", "post_id", +1),
    EventType.COMMENT_DELETED: (Post, "comments_count", "post_id", -1),
}


def affects_counters(event_type: EventType) -> bool:
    return event_type in _COUNTER_RULES


def apply(session: Session, event: DomainEvent) -> None:
    """Apply the counter adjustment for *event*, if it carries one.

    Raises
    ------
    ConsistencyFault
        If the owner row is missing or a decrement would go below zero.
    """
    rule = _COUNTER_RULES.get(event.event_type)
    if rule is None:
        return

    model, column_name, owner_attr, delta = rule
    owner_id = getattr(event, owner_attr)
    column = getattr(model, column_name)

    stmt = update(model).where(model.id == owner_id)
    if delta < 0:
        stmt = stmt.where(column > 0)
    stmt = stmt.values({column_name: column + delta}).execution_options(
        synchronize_session=False
    )

    result = session.execute(stmt)
    if result.rowcount != 1:
        logger.critical(
            "Counter fault: %s.%s for id=%s could not apply %+d (event=%s)",
            model.__tablename__, column_name, owner_id, delta, event.event_type,
        )
        raise ConsistencyFault(
            f"{model.__tablename__}.{column_name} for id={owner_id} "
            f"cannot apply {delta:+d}"
        )

    # Keep any already-loaded instance in step with the row
    cached = session.identity_map.get(identity_key(model, owner_id))
    if cached is not None:
        session.expire(cached, [column_name])


# ---------------------------------------------------------------------------
# Ground-truth recounts
# ---------------------------------------------------------------------------
def recount_community(session: Session, community_id: int) -> int:
    """Return the true number of membership edges targeting *community_id*."""
    return session.scalar(
        select(func.count())
        .select_from(Membership)
        .where(Membership.community_id == community_id)
    ) or 0


def recount_post(session: Session, post_id: int) -> tuple[int, int]:
    """Return the true ``(likes, comments)`` cardinalities for *post_id*."""
    likes = session.scalar(
        select(func.count()).select_from(Like).where(Like.post_id == post_id)
    ) or 0
    comments = session.scalar(
        select(func.count()).select_from(Comment).where(Comment.post_id == post_id)
    ) or 0
    return likes, comments
