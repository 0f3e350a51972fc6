"""
townsquare.services.event_bus — Synchronous dispatch + outbox
==============================================================

Every lifecycle mutation calls :func:`publish` on its own session:

1. The CounterMaintainer adjusts the counter the event carries (if any).
2. The event is appended to ``domain_events`` for the external
   notification subscriber.

Both happen inside the caller's transaction; nothing is emitted for a
mutation that rolls back.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from townsquare.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from townsquare.database.engine import get_session
from townsquare.database.models import DomainEventRecord
from townsquare.engine.events import DomainEvent, EventType
from townsquare.services import counter_service

logger = logging.getLogger(__name__)


def publish(session: Session, event: DomainEvent) -> None:
    """Dispatch *event* to the counter maintainer and the outbox."""
    if counter_service.affects_counters(event.event_type):
        counter_service.apply(session, event)
    session.add(DomainEventRecord(
        event_type=event.event_type.value,
        actor_id=event.actor_id,
        community_id=event.community_id,
        post_id=event.post_id,
        payload=event.payload or None,
        created_at=event.timestamp,
    ))
    logger.debug("Published %s (actor=%s)", event.event_type, event.actor_id)


def list_events(
    engine: Engine,
    *,
    after_id: int = 0,
    limit: int = DEFAULT_PAGE_SIZE,
    event_type: EventType | None = None,
) -> list[DomainEventRecord]:
    """Return outbox rows with ``id > after_id`` in ascending order.

    Subscribers resume from the last id they processed.
    """
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    stmt = select(DomainEventRecord).where(DomainEventRecord.id > after_id)
    if event_type is not None:
        stmt = stmt.where(DomainEventRecord.event_type == event_type.value)
    stmt = stmt.order_by(DomainEventRecord.id.asc()).limit(limit)

    with get_session(engine) as session:
        return list(session.scalars(stmt).all())
