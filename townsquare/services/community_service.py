"""
townsquare.services.community_service — CommunityGraph
=======================================================

Owns ``communities`` rows and answers hierarchy questions.

Invariants:
    * Parent chains are acyclic and terminate.  Tier ordering
      (city → municipality → local) is conventional, not enforced.
    * Re-parenting is unsupported; the cycle check on create guards the
      invariant should a re-parenting path ever appear.
    * Ancestor walks are bounded by ``AccessPolicy.max_hierarchy_depth``
      and stop on a revisited node, so corrupted data cannot loop.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from townsquare.config import DEFAULT_POLICY, AccessPolicy
from townsquare.database.engine import get_session
from townsquare.database.models import Community, CommunityType, ModeratorSource
from townsquare.errors import CommunityNotFound, ConsistencyFault, CycleDetected, NotAuthorized
from townsquare.services import moderation_service
from townsquare.services.moderation_service import SYSTEM

logger = logging.getLogger(__name__)

_UNSET = object()


# ---------------------------------------------------------------------------
# Session-level helpers (used by other services inside their transactions)
# ---------------------------------------------------------------------------
def require_community(session: Session, community_id: int) -> Community:
    community = session.get(Community, community_id)
    if community is None:
        raise CommunityNotFound(community_id)
    return community


def ancestor_ids(
    session: Session,
    community_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> list[int]:
    """Return ancestor ids of *community_id*, immediate parent first.

    Raises
    ------
    ConsistencyFault
        If the chain revisits a node or exceeds the configured depth.
    """
    chain: list[int] = []
    seen = {community_id}
    current = require_community(session, community_id)
    while current.parent_id is not None:
        if current.parent_id in seen or len(chain) >= policy.max_hierarchy_depth:
            logger.critical(
                "Community hierarchy fault at %s (chain=%s, next=%s)",
                community_id, chain, current.parent_id,
            )
            raise ConsistencyFault(f"Ancestor chain of community {community_id} does not terminate")
        chain.append(current.parent_id)
        seen.add(current.parent_id)
        current = require_community(session, current.parent_id)
    return chain


def _is_descendant(
    session: Session,
    descendant_id: int,
    ancestor_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> bool:
    return ancestor_id in ancestor_ids(session, descendant_id, policy)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def create_community(
    engine: Engine,
    *,
    name: str,
    community_type: CommunityType,
    created_by: str,
    parent_id: int | None = None,
    description: str | None = None,
    cover_url: str | None = None,
) -> Community:
    """Create a community under *parent_id* (or as a root).

    The creator becomes the founding moderator.

    Raises
    ------
    CommunityNotFound
        If *parent_id* does not exist.
    """
    with get_session(engine) as session:
        if parent_id is not None:
            require_community(session, parent_id)

        community = Community(
            name=name,
            type=CommunityType(community_type),
            parent_id=parent_id,
            description=description,
            cover_url=cover_url,
            created_by=created_by,
            member_count=0,
        )
        session.add(community)
        session.flush()

        if parent_id is not None and _is_descendant(session, parent_id, community.id):
            raise CycleDetected()

        moderation_service.appoint_moderator(
            session, community.id, created_by, source=ModeratorSource.FOUNDER, actor=SYSTEM,
        )
        logger.info(
            "Community created: id=%s name=%r type=%s parent=%s",
            community.id, name, community.type, parent_id,
        )
        return community


def get_community(engine: Engine, community_id: int) -> Community:
    with get_session(engine) as session:
        return require_community(session, community_id)


def ancestors_of(
    engine: Engine,
    community_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> list[Community]:
    """Return the ancestor chain from immediate parent to root."""
    with get_session(engine) as session:
        return [
            require_community(session, cid)
            for cid in ancestor_ids(session, community_id, policy)
        ]


def is_descendant(
    engine: Engine,
    descendant_id: int,
    ancestor_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> bool:
    """True iff *ancestor_id* lies on *descendant_id*'s ancestor chain."""
    with get_session(engine) as session:
        require_community(session, ancestor_id)
        return _is_descendant(session, descendant_id, ancestor_id, policy)


def update_community(
    engine: Engine,
    community_id: int,
    *,
    actor_id: str,
    name: str | None = None,
    description: str | None | object = _UNSET,
    cover_url: str | None | object = _UNSET,
) -> Community:
    """Update community metadata.  Moderators only.

    ``description`` / ``cover_url`` accept ``None`` to clear the field;
    omit them to leave the field untouched.
    """
    with get_session(engine) as session:
        community = require_community(session, community_id)
        if not moderation_service.is_moderator(session, community_id, actor_id):
            raise NotAuthorized("Only moderators may update this community.")

        if name is not None:
            community.name = name
        if description is not _UNSET:
            community.description = description
        if cover_url is not _UNSET:
            community.cover_url = cover_url
        session.flush()
        return community
