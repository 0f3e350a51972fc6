"""
townsquare.services.reconciliation_service — Counter Reconciliation
====================================================================

Periodic job that validates the cached counters against their edge and
child tables and corrects drift if found.

How it works:
    1. ``COUNT(*)`` memberships grouped by community, likes and comments
       grouped by post.
    2. Compare against ``communities.member_count``,
       ``posts.likes_count`` and ``posts.comments_count``.
    3. On a mismatch, issue one compare-and-set statement per counter::

           UPDATE communities
              SET member_count = (SELECT count(*) FROM memberships WHERE ...)
            WHERE id = :id AND member_count = :stored

       A writer that moved the counter since step 2 makes the guard miss;
       that counter is skipped and left for the next run, so a live
       increment is never overwritten with a stale count.
    4. Log every correction for audit.

Normal operation never produces drift: counters move in the same
transaction as their edges.  A correction here means something bypassed
the services (manual SQL, a restored backup) and is worth a look.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from townsquare.database.engine import get_session
from townsquare.database.models import Comment, Community, Like, Membership, Post

logger = logging.getLogger(__name__)


def _live_count(edge_model: type, fk_column: str, owner_id: int):
    """Scalar subquery counting *edge_model* rows that point at *owner_id*."""
    return (
        select(func.count())
        .select_from(edge_model)
        .where(getattr(edge_model, fk_column) == owner_id)
        .scalar_subquery()
    )


def _correct(
    session: Session,
    model: type,
    counter: str,
    owner_id: int,
    stored: int,
    truth,
) -> int | None:
    """Set *counter* to *truth* only if it still holds *stored*.

    Returns the value written, or None if a concurrent writer got there first.
    """
    column = getattr(model, counter)
    return session.execute(
        update(model)
        .where(model.id == owner_id, column == stored)
        .values({counter: truth})
        .returning(column)
        .execution_options(synchronize_session=False)
    ).scalar_one_or_none()


def reconcile_counters(engine: Engine) -> dict:
    """Validate every cached counter against ground truth and fix drift.

    Returns ``{"checked": N, "corrected": M, "skipped": K, "corrections": [...],
    "timestamp": ...}``.  ``skipped`` counts mismatches that a concurrent
    writer touched before they could be corrected.
    """
    corrections: list[dict] = []
    checked = 0
    skipped = 0

    with get_session(engine) as session:
        # (model, id, counter, stored, edge model, fk column)
        mismatches: list[tuple] = []

        # Ground truth: memberships per community
        member_truth: dict[int, int] = dict(session.execute(
            select(Membership.community_id, func.count())
            .group_by(Membership.community_id)
        ).all())

        for community_id, stored in session.execute(
            select(Community.id, Community.member_count)
        ).all():
            checked += 1
            actual = member_truth.get(community_id, 0)
            if stored != actual:
                mismatches.append((
                    Community, community_id, "member_count", stored,
                    Membership, "community_id",
                ))

        # Ground truth: likes and comments per post
        like_truth: dict[int, int] = dict(session.execute(
            select(Like.post_id, func.count()).group_by(Like.post_id)
        ).all())
        comment_truth: dict[int, int] = dict(session.execute(
            select(Comment.post_id, func.count()).group_by(Comment.post_id)
        ).all())

        for post_id, stored_likes, stored_comments in session.execute(
            select(Post.id, Post.likes_count, Post.comments_count)
        ).all():
            for counter, stored, actual, edge_model in (
                ("likes_count", stored_likes, like_truth.get(post_id, 0), Like),
                ("comments_count", stored_comments, comment_truth.get(post_id, 0), Comment),
            ):
                checked += 1
                if stored != actual:
                    mismatches.append((Post, post_id, counter, stored, edge_model, "post_id"))

        for model, owner_id, counter, stored, edge_model, fk_column in mismatches:
            written = _correct(
                session, model, counter, owner_id, stored,
                _live_count(edge_model, fk_column, owner_id),
            )
            if written is None:
                skipped += 1
                logger.info(
                    "Counter reconciliation: %s.%s id=%s changed concurrently, skipped",
                    model.__tablename__, counter, owner_id,
                )
                continue
            if written == stored:
                continue
            corrections.append({
                "table": model.__tablename__,
                "id": owner_id,
                "counter": counter,
                "stored": stored,
                "actual": written,
                "diff": written - stored,
            })

    if corrections:
        logger.warning(
            "Counter reconciliation: corrected %d/%d counters: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Counter reconciliation: all %d counters match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "skipped": skipped,
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
