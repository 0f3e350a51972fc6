"""
townsquare.api.routes.admin — Operator endpoints (JWT‑protected, ``is_admin``)
================================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from townsquare.api.deps import get_current_admin, get_engine
from townsquare.api.serializers import event_dict
from townsquare.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, MAX_PRINCIPAL_LENGTH
from townsquare.engine.events import EventType
from townsquare.services import (
    election_service,
    event_bus,
    moderation_service,
    reconciliation_service,
)

router = APIRouter(prefix="/admin", tags=["admin"])


class ModeratorGrant(BaseModel):
    user_id: str = Field(min_length=1, max_length=MAX_PRINCIPAL_LENGTH)


@router.post("/reconcile")
def reconcile(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Recount every cached counter and fix drift."""
    return reconciliation_service.reconcile_counters(engine)


@router.post("/elections/sweep")
def sweep_elections(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    return {"closed": election_service.close_expired_rounds(engine)}


@router.post("/communities/{community_id}/moderators", status_code=201)
def grant_moderator(
    community_id: int,
    body: ModeratorGrant,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    added = moderation_service.grant_moderator(engine, community_id, body.user_id)
    return {"community_id": community_id, "user_id": body.user_id, "added": added}


@router.get("/events")
def list_events(
    after_id: int = Query(0, ge=0),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    event_type: EventType | None = Query(None),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Outbox feed for the notification subscriber, oldest first."""
    events = event_bus.list_events(
        engine, after_id=after_id, limit=limit, event_type=event_type,
    )
    return {
        "events": [event_dict(e) for e in events],
        "last_id": events[-1].id if events else after_id,
    }
