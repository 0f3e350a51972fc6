"""
townsquare.services.membership_service — MembershipStore
=========================================================

Source of truth for "who follows what":

  memberships   user → community edges; drive ``member_count``
  user_follows  user → user edges; drive messaging consent, no counters

State rules:
  follow:    uniqueness is enforced by the primary key — the insert is
             attempted first and a conflict becomes ``AlreadyExists``
  unfollow:  the delete reports whether a row went away; none → ``NotFound``
  self-follow (user → user) is rejected unless the policy allows it
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from townsquare.config import DEFAULT_POLICY, AccessPolicy
from townsquare.database.engine import get_session
from townsquare.database.models import Community, Membership, UserFollow
from townsquare.engine.events import DomainEvent, EventType
from townsquare.errors import (
    AlreadyFollowing,
    AlreadyMember,
    CannotFollowSelf,
    FollowNotFound,
    MembershipNotFound,
)
from townsquare.services import event_bus
from townsquare.services.community_service import require_community

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Predicates (session-level, used inside other services' transactions)
# ---------------------------------------------------------------------------
def is_member(session: Session, user_id: str, community_id: int) -> bool:
    return bool(session.scalar(
        select(exists().where(
            Membership.user_id == user_id,
            Membership.community_id == community_id,
        ))
    ))


def is_member_of_any(session: Session, user_id: str, community_ids: set[int] | frozenset[int]) -> bool:
    if not community_ids:
        return False
    return bool(session.scalar(
        select(exists().where(
            Membership.user_id == user_id,
            Membership.community_id.in_(community_ids),
        ))
    ))


def follows(session: Session, follower_id: str, followee_id: str) -> bool:
    """True iff the edge ``follower_id → followee_id`` exists."""
    return bool(session.scalar(
        select(exists().where(
            UserFollow.follower_id == follower_id,
            UserFollow.followee_id == followee_id,
        ))
    ))


def is_mutual_follow(session: Session, a: str, b: str) -> bool:
    return follows(session, a, b) and follows(session, b, a)


# ---------------------------------------------------------------------------
# Community membership
# ---------------------------------------------------------------------------
def follow_community(engine: Engine, user_id: str, community_id: int) -> Membership:
    """Create the membership edge and bump ``member_count`` atomically.

    Raises
    ------
    CommunityNotFound
        If the community does not exist.
    AlreadyMember
        If the edge already exists (including a concurrent duplicate).
    """
    try:
        with get_session(engine) as session:
            require_community(session, community_id)
            edge = Membership(user_id=user_id, community_id=community_id)
            session.add(edge)
            session.flush()
            event_bus.publish(session, DomainEvent(
                EventType.MEMBERSHIP_ADDED, actor_id=user_id, community_id=community_id,
            ))
            return edge
    except IntegrityError:
        raise AlreadyMember() from None


def unfollow_community(engine: Engine, user_id: str, community_id: int) -> None:
    """Remove the membership edge and decrement ``member_count`` atomically.

    Raises
    ------
    CommunityNotFound
        If the community does not exist.
    MembershipNotFound
        If there is no edge to remove.
    """
    with get_session(engine) as session:
        require_community(session, community_id)
        result = session.execute(
            delete(Membership).where(
                Membership.user_id == user_id,
                Membership.community_id == community_id,
            )
        )
        if result.rowcount == 0:
            raise MembershipNotFound()
        event_bus.publish(session, DomainEvent(
            EventType.MEMBERSHIP_REMOVED, actor_id=user_id, community_id=community_id,
        ))


def list_memberships(engine: Engine, user_id: str) -> list[Community]:
    """Communities *user_id* follows, most recent first."""
    with get_session(engine) as session:
        return list(session.scalars(
            select(Community)
            .join(Membership, Membership.community_id == Community.id)
            .where(Membership.user_id == user_id)
            .order_by(Membership.created_at.desc())
        ).all())


# ---------------------------------------------------------------------------
# User follows
# ---------------------------------------------------------------------------
def follow_user(
    engine: Engine,
    follower_id: str,
    followee_id: str,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> UserFollow:
    """Create the edge ``follower_id → followee_id``.

    Raises
    ------
    CannotFollowSelf
        If both ids match and the policy forbids self-follow.
    AlreadyFollowing
        If the edge already exists.
    """
    if follower_id == followee_id and not policy.allow_self_follow:
        raise CannotFollowSelf()
    try:
        with get_session(engine) as session:
            edge = UserFollow(follower_id=follower_id, followee_id=followee_id)
            session.add(edge)
            session.flush()
            return edge
    except IntegrityError:
        raise AlreadyFollowing() from None


def unfollow_user(engine: Engine, follower_id: str, followee_id: str) -> None:
    with get_session(engine) as session:
        result = session.execute(
            delete(UserFollow).where(
                UserFollow.follower_id == follower_id,
                UserFollow.followee_id == followee_id,
            )
        )
        if result.rowcount == 0:
            raise FollowNotFound()


def list_followers(engine: Engine, user_id: str) -> list[str]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(UserFollow.follower_id)
            .where(UserFollow.followee_id == user_id)
            .order_by(UserFollow.created_at.desc())
        ).all())


def list_following(engine: Engine, user_id: str) -> list[str]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(UserFollow.followee_id)
            .where(UserFollow.follower_id == user_id)
            .order_by(UserFollow.created_at.desc())
        ).all())
