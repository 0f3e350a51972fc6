"""
townsquare.services.content_service — Posts, comments & likes
==============================================================

Every read passes through the VisibilityEvaluator; every write passes an
ownership check.  Like and comment lifecycle changes publish their event
on the same session, so ``likes_count`` / ``comments_count`` move in the
same transaction as the row that justifies them.

Access rules:
  read post / list comments   visibility tier (access_service)
  create post                 any authenticated principal
  update / delete post        author only
  comment / like              principal must be able to read the post
  delete comment              comment author only
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from townsquare.config import DEFAULT_POLICY, AccessPolicy
from townsquare.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from townsquare.database.engine import get_session
from townsquare.database.models import Comment, Like, Post, PostType, PostVisibility
from townsquare.engine.events import DomainEvent, EventType
from townsquare.errors import (
    AlreadyLiked,
    CommentNotFound,
    LikeNotFound,
    NotAuthorized,
    PostNotFound,
)
from townsquare.services import access_service, event_bus
from townsquare.services.community_service import require_community

logger = logging.getLogger(__name__)

_UNSET = object()


def _clamp(limit: int) -> int:
    return max(1, min(limit, MAX_PAGE_SIZE))


def _require_post(session: Session, post_id: int) -> Post:
    post = session.get(Post, post_id)
    if post is None:
        raise PostNotFound(post_id)
    return post


def _require_readable_post(
    session: Session, principal: str | None, post_id: int, policy: AccessPolicy,
) -> Post:
    post = _require_post(session, post_id)
    if not access_service.can_read_post(session, principal, post, policy):
        raise NotAuthorized("You cannot read this post.")
    return post


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
def create_post(
    engine: Engine,
    *,
    author_id: str,
    community_id: int,
    visibility: PostVisibility,
    content: str,
    post_type: PostType = PostType.TEXT,
    attachment_url: str | None = None,
) -> Post:
    """Publish a post owned by *community_id*.

    The attachment is a URL from the blob store; it is stored as-is.
    """
    with get_session(engine) as session:
        require_community(session, community_id)
        post = Post(
            author_id=author_id,
            community_id=community_id,
            visibility=PostVisibility(visibility),
            post_type=PostType(post_type),
            content=content,
            attachment_url=attachment_url,
            likes_count=0,
            comments_count=0,
        )
        session.add(post)
        session.flush()
        event_bus.publish(session, DomainEvent(
            EventType.POST_CREATED,
            actor_id=author_id,
            community_id=community_id,
            post_id=post.id,
            payload={"visibility": post.visibility.value},
        ))
        return post


def get_post(
    engine: Engine,
    principal: str | None,
    post_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> Post:
    """Return the post if *principal* may read it, else ``NotAuthorized``."""
    with get_session(engine) as session:
        return _require_readable_post(session, principal, post_id, policy)


def update_post(
    engine: Engine,
    principal: str,
    post_id: int,
    *,
    content: str | None = None,
    attachment_url: str | None | object = _UNSET,
) -> Post:
    with get_session(engine) as session:
        post = _require_post(session, post_id)
        if not access_service.can_write_post(principal, post):
            raise NotAuthorized("Only the author may edit this post.")
        if content is not None:
            post.content = content
        if attachment_url is not _UNSET:
            post.attachment_url = attachment_url
        session.flush()
        return post


def delete_post(engine: Engine, principal: str, post_id: int) -> None:
    """Delete a post; its comments and likes go with it (FK cascade)."""
    with get_session(engine) as session:
        post = _require_post(session, post_id)
        if not access_service.can_write_post(principal, post):
            raise NotAuthorized("Only the author may delete this post.")
        session.delete(post)
        logger.info("Post %s deleted by author %s", post_id, principal)


def list_community_feed(
    engine: Engine,
    principal: str | None,
    community_id: int,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    before_id: int | None = None,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> list[Post]:
    """Newest-first posts of *community_id* that *principal* may read.

    This is filtering only; no ranking.  A short page means there are no
    older readable posts.
    """
    with get_session(engine) as session:
        require_community(session, community_id)
        tiers = access_service.readable_tiers(session, principal, community_id, policy)
        stmt = select(Post).where(
            Post.community_id == community_id,
            Post.visibility.in_(tiers),
        )
        if before_id is not None:
            stmt = stmt.where(Post.id < before_id)
        return list(session.scalars(stmt.order_by(Post.id.desc()).limit(_clamp(limit))).all())


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
def create_comment(
    engine: Engine,
    principal: str,
    post_id: int,
    content: str,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> Comment:
    with get_session(engine) as session:
        post = _require_readable_post(session, principal, post_id, policy)
        comment = Comment(post_id=post.id, author_id=principal, content=content)
        session.add(comment)
        session.flush()
        event_bus.publish(session, DomainEvent(
            EventType.COMMENT_CREATED,
            actor_id=principal,
            community_id=post.community_id,
            post_id=post.id,
            payload={"comment_id": comment.id, "post_author_id": post.author_id},
        ))
        return comment


def delete_comment(engine: Engine, principal: str, comment_id: int) -> None:
    """Delete a comment.  Only the transaction that actually removed the row
    decrements ``comments_count``; a concurrent loser gets ``CommentNotFound``.
    """
    with get_session(engine) as session:
        comment = session.get(Comment, comment_id)
        if comment is None:
            raise CommentNotFound(comment_id)
        if comment.author_id != principal:
            raise NotAuthorized("Only the author may delete this comment.")
        post_id = comment.post_id
        session.expunge(comment)

        result = session.execute(
            delete(Comment).where(Comment.id == comment_id, Comment.author_id == principal)
        )
        if result.rowcount != 1:
            raise CommentNotFound(comment_id)
        event_bus.publish(session, DomainEvent(
            EventType.COMMENT_DELETED,
            actor_id=principal,
            post_id=post_id,
            payload={"comment_id": comment_id},
        ))


def get_comment(
    engine: Engine,
    principal: str | None,
    comment_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> Comment:
    with get_session(engine) as session:
        comment = session.get(Comment, comment_id)
        if comment is None:
            raise CommentNotFound(comment_id)
        if not access_service.can_read_comment(session, principal, comment, policy):
            raise NotAuthorized("You cannot read this comment.")
        return comment


def list_comments(
    engine: Engine,
    principal: str | None,
    post_id: int,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> list[Comment]:
    """Comments of a readable post, oldest first."""
    with get_session(engine) as session:
        _require_readable_post(session, principal, post_id, policy)
        return list(session.scalars(
            select(Comment)
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at.asc(), Comment.id.asc())
            .offset(max(0, offset))
            .limit(_clamp(limit))
        ).all())


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
def like_post(
    engine: Engine,
    principal: str,
    post_id: int,
    policy: AccessPolicy = DEFAULT_POLICY,
) -> Like:
    """Like a readable post.  Raises ``AlreadyLiked`` on a duplicate."""
    try:
        with get_session(engine) as session:
            post = _require_readable_post(session, principal, post_id, policy)
            like = Like(post_id=post.id, user_id=principal)
            session.add(like)
            session.flush()
            event_bus.publish(session, DomainEvent(
                EventType.LIKE_ADDED,
                actor_id=principal,
                community_id=post.community_id,
                post_id=post.id,
                payload={"post_author_id": post.author_id},
            ))
            return like
    except IntegrityError:
        raise AlreadyLiked() from None


def unlike_post(engine: Engine, principal: str, post_id: int) -> None:
    """Remove a like.  Raises ``LikeNotFound`` if there is none."""
    with get_session(engine) as session:
        _require_post(session, post_id)
        result = session.execute(
            delete(Like).where(Like.post_id == post_id, Like.user_id == principal)
        )
        if result.rowcount == 0:
            raise LikeNotFound()
        event_bus.publish(session, DomainEvent(
            EventType.LIKE_REMOVED, actor_id=principal, post_id=post_id,
        ))
