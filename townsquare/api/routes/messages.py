"""
townsquare.api.routes.messages — Direct messages
==================================================

``POST`` is gated: the recipient must follow the sender.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from townsquare.api.deps import get_engine, get_principal
from townsquare.api.serializers import message_dict
from townsquare.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_MESSAGE_LENGTH,
    MAX_PAGE_SIZE,
    MAX_PRINCIPAL_LENGTH,
)
from townsquare.services import messaging_service

router = APIRouter(prefix="/messages", tags=["messages"])


class MessageCreate(BaseModel):
    receiver_id: str = Field(min_length=1, max_length=MAX_PRINCIPAL_LENGTH)
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


@router.post("", status_code=201)
def send_message(
    body: MessageCreate,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    message = messaging_service.send_message(engine, principal, body.receiver_id, body.content)
    return message_dict(message)


@router.get("")
def list_messages(
    with_user: str | None = Query(None, max_length=MAX_PRINCIPAL_LENGTH),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    before_id: int | None = Query(None),
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    """Inbox, or the two-way conversation with ``with_user``."""
    if with_user is None:
        messages = messaging_service.list_inbox(
            engine, principal, limit=limit, before_id=before_id,
        )
    else:
        messages = messaging_service.list_conversation(
            engine, principal, with_user, limit=limit, before_id=before_id,
        )
    return {"messages": [message_dict(m) for m in messages]}


@router.get("/can-send/{receiver_id}")
def can_send(
    receiver_id: str,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    allowed = messaging_service.check_can_message(engine, principal, receiver_id)
    return {"receiver_id": receiver_id, "can_send": allowed}
