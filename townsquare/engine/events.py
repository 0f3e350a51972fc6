"""
townsquare.engine.events — DomainEvent and EventType
=====================================================

The event envelope emitted by every lifecycle mutation.  Events are
dispatched synchronously inside the mutating transaction: the
CounterMaintainer consumes the counter-bearing ones, and every event is
appended to the ``domain_events`` outbox for external notification
delivery.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

__all__ = ["DomainEvent", "EventType"]


class EventType(enum.StrEnum):
    """Every domain event this core emits."""
    MEMBERSHIP_ADDED = "MembershipAdded"
    MEMBERSHIP_REMOVED = "MembershipRemoved"
    POST_CREATED = "PostCreated"
    COMMENT_CREATED = "CommentCreated"
    COMMENT_DELETED = "CommentDeleted"
    LIKE_ADDED = "LikeAdded"
    LIKE_REMOVED = "LikeRemoved"
    MESSAGE_SENT = "MessageSent"
    ROUND_CLOSED = "RoundClosed"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Normalized lifecycle event.

    ``community_id`` / ``post_id`` identify the counter owner for the
    counter-bearing event types; everything else goes in ``payload``.
    """

    event_type: EventType
    actor_id: str | None = None
    community_id: int | None = None
    post_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
