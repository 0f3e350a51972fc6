"""
townsquare.api.serializers — ORM row → JSON dict helpers
==========================================================
"""

from __future__ import annotations

from datetime import datetime

from townsquare.database.models import (
    Comment,
    Community,
    DomainEventRecord,
    ElectionRound,
    Message,
    Moderator,
    Post,
    Vote,
)


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def community_dict(c: Community) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "type": c.type.value,
        "parent_id": c.parent_id,
        "description": c.description,
        "cover_url": c.cover_url,
        "member_count": c.member_count,
        "created_by": c.created_by,
        "created_at": _iso(c.created_at),
    }


def post_dict(p: Post) -> dict:
    return {
        "id": p.id,
        "author_id": p.author_id,
        "community_id": p.community_id,
        "visibility": p.visibility.value,
        "post_type": p.post_type.value,
        "content": p.content,
        "attachment_url": p.attachment_url,
        "likes_count": p.likes_count,
        "comments_count": p.comments_count,
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
    }


def comment_dict(c: Comment) -> dict:
    return {
        "id": c.id,
        "post_id": c.post_id,
        "author_id": c.author_id,
        "content": c.content,
        "created_at": _iso(c.created_at),
    }


def message_dict(m: Message) -> dict:
    return {
        "id": m.id,
        "sender_id": m.sender_id,
        "receiver_id": m.receiver_id,
        "content": m.content,
        "created_at": _iso(m.created_at),
    }


def moderator_dict(m: Moderator) -> dict:
    return {
        "community_id": m.community_id,
        "user_id": m.user_id,
        "source": m.source.value,
        "appointed_at": _iso(m.appointed_at),
    }


def round_dict(r: ElectionRound) -> dict:
    return {
        "id": r.id,
        "community_id": r.community_id,
        "opened_by": r.opened_by,
        "start_time": _iso(r.start_time),
        "end_time": _iso(r.end_time),
        "is_active": r.is_active,
        "winner_id": r.winner_id,
    }


def vote_dict(v: Vote) -> dict:
    return {
        "id": v.id,
        "round_id": v.round_id,
        "voter_id": v.voter_id,
        "candidate_id": v.candidate_id,
        "created_at": _iso(v.created_at),
    }


def event_dict(e: DomainEventRecord) -> dict:
    return {
        "id": e.id,
        "event_type": e.event_type,
        "actor_id": e.actor_id,
        "community_id": e.community_id,
        "post_id": e.post_id,
        "payload": e.payload or {},
        "created_at": _iso(e.created_at),
    }
