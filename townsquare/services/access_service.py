"""
townsquare.services.access_service — VisibilityEvaluator
=========================================================

DB-backed read/write authorization.  The tier rules themselves live in
:mod:`townsquare.engine.visibility`; this module resolves the principal's
memberships against the audience they produce.

Decisions are evaluated on every read and never cached, because
membership can change at any moment.  Cost per check:

* ``public``: no query.
* ``local`` / ``city`` (exact): one EXISTS query.
* ``city`` with ancestors: one lookup per hierarchy level plus one EXISTS.

Feeds resolve the readable tiers once per community with
:func:`readable_tiers` instead of checking post by post.
"""

from __future__ import annotations

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from townsquare.config import DEFAULT_POLICY, AccessPolicy
from townsquare.database.engine import get_session
from townsquare.database.models import Comment, Post, PostVisibility
from townsquare.engine.visibility import audience_for, needs_ancestors
from townsquare.errors import PostNotFound
from townsquare.services import moderation_service
from townsquare.services.community_service import ancestor_ids
from townsquare.services.membership_service import is_member_of_any


def can_read_post(
    session: Session,
    principal: str | None,
    post: Post,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> bool:
    """Decide whether *principal* may read *post*.

    ``principal=None`` models an anonymous reader: only ``public`` posts.
    """
    ancestors: list[int] = []
    if needs_ancestors(post.visibility, policy):
        ancestors = ancestor_ids(session, post.community_id, policy)

    audience = audience_for(post.visibility, post.community_id, ancestors, policy)
    if audience.everyone:
        return True
    if principal is None:
        return False
    return is_member_of_any(session, principal, audience.community_ids)


def readable_tiers(
    session: Session,
    principal: str | None,
    community_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> list[PostVisibility]:
    """Visibility tiers *principal* may read among posts owned by *community_id*.

    Every post of one community shares the same audience per tier, so a
    feed can filter on ``Post.visibility IN (...)`` in SQL.
    """
    ancestors: list[int] = []
    if any(needs_ancestors(tier, policy) for tier in PostVisibility):
        ancestors = ancestor_ids(session, community_id, policy)

    tiers: list[PostVisibility] = []
    for tier in PostVisibility:
        audience = audience_for(tier, community_id, ancestors, policy)
        if audience.everyone or (
            principal is not None
            and is_member_of_any(session, principal, audience.community_ids)
        ):
            tiers.append(tier)
    return tiers


def can_read_comment(
    session: Session,
    principal: str | None,
    comment: Comment,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> bool:
    """Comments carry no visibility of their own; defer to the parent post."""
    post = session.get(Post, comment.post_id)
    if post is None:
        raise PostNotFound(comment.post_id)
    return can_read_post(session, principal, post, policy)


def can_write_post(principal: str, post: Post) -> bool:
    """Update/delete is reserved for the author."""
    return principal == post.author_id


def can_moderate_community(session: Session, principal: str, community_id: int) -> bool:
    return moderation_service.is_moderator(session, community_id, principal)


# ---------------------------------------------------------------------------
# Engine-level entry point
# ---------------------------------------------------------------------------
def check_read_post(
    engine: Engine,
    principal: str | None,
    post_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> bool:
    """Answer "may *principal* read post *post_id*" without fetching content."""
    with get_session(engine) as session:
        post = session.get(Post, post_id)
        if post is None:
            raise PostNotFound(post_id)
        return can_read_post(session, principal, post, policy)
