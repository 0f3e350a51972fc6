"""
townsquare.services.messaging_service — MessagingGate
======================================================

A sender may message a receiver only if the **receiver follows the
sender**.  The relation is asymmetric: A following B lets B message A,
not the reverse.  Consent is re-checked on every send, so unfollowing
revokes it immediately for future messages.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, and_, or_, select
from sqlalchemy.orm import Session

from townsquare.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from townsquare.database.engine import get_session
from townsquare.database.models import Message
from townsquare.engine.events import DomainEvent, EventType
from townsquare.errors import NotAuthorized
from townsquare.services import event_bus
from townsquare.services.membership_service import follows

logger = logging.getLogger(__name__)


def can_message(session: Session, sender_id: str, receiver_id: str) -> bool:
    """True iff *receiver_id* follows *sender_id*."""
    return follows(session, receiver_id, sender_id)


def check_can_message(engine: Engine, sender_id: str, receiver_id: str) -> bool:
    with get_session(engine) as session:
        return can_message(session, sender_id, receiver_id)


def send_message(engine: Engine, sender_id: str, receiver_id: str, content: str) -> Message:
    """Store a message from *sender_id* to *receiver_id*.

    Raises
    ------
    NotAuthorized
        If the receiver does not follow the sender.
    """
    with get_session(engine) as session:
        if not can_message(session, sender_id, receiver_id):
            logger.info("Message refused: %s does not follow %s", receiver_id, sender_id)
            raise NotAuthorized("The recipient does not follow you.")

        message = Message(sender_id=sender_id, receiver_id=receiver_id, content=content)
        session.add(message)
        session.flush()
        event_bus.publish(session, DomainEvent(
            EventType.MESSAGE_SENT,
            actor_id=sender_id,
            payload={"message_id": message.id, "receiver_id": receiver_id},
        ))
        return message


def list_inbox(
    engine: Engine,
    user_id: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    before_id: int | None = None,
) -> list[Message]:
    """Messages received by *user_id*, newest first."""
    stmt = select(Message).where(Message.receiver_id == user_id)
    if before_id is not None:
        stmt = stmt.where(Message.id < before_id)
    stmt = stmt.order_by(Message.id.desc()).limit(max(1, min(limit, MAX_PAGE_SIZE)))
    with get_session(engine) as session:
        return list(session.scalars(stmt).all())


def list_conversation(
    engine: Engine,
    user_id: str,
    other_id: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    before_id: int | None = None,
) -> list[Message]:
    """Both directions between *user_id* and *other_id*, newest first."""
    stmt = select(Message).where(or_(
        and_(Message.sender_id == user_id, Message.receiver_id == other_id),
        and_(Message.sender_id == other_id, Message.receiver_id == user_id),
    ))
    if before_id is not None:
        stmt = stmt.where(Message.id < before_id)
    stmt = stmt.order_by(Message.id.desc()).limit(max(1, min(limit, MAX_PAGE_SIZE)))
    with get_session(engine) as session:
        return list(session.scalars(stmt).all())
