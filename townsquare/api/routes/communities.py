"""
townsquare.api.routes.communities — Community graph & membership endpoints
===========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from townsquare.api.deps import (
    get_engine,
    get_optional_principal,
    get_policy,
    get_principal,
)
from townsquare.api.serializers import community_dict, moderator_dict, post_dict
from townsquare.config import AccessPolicy
from townsquare.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_COMMUNITY_NAME_LENGTH,
    MAX_PAGE_SIZE,
    MAX_URL_LENGTH,
)
from townsquare.database.models import CommunityType
from townsquare.services import (
    community_service,
    content_service,
    membership_service,
    moderation_service,
)

router = APIRouter(prefix="/communities", tags=["communities"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CommunityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=MAX_COMMUNITY_NAME_LENGTH)
    type: CommunityType
    parent_id: int | None = None
    description: str | None = None
    cover_url: str | None = Field(default=None, max_length=MAX_URL_LENGTH)


class CommunityUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=MAX_COMMUNITY_NAME_LENGTH)
    description: str | None = None
    cover_url: str | None = Field(default=None, max_length=MAX_URL_LENGTH)


# ---------------------------------------------------------------------------
# Communities
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_community(
    body: CommunityCreate,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    community = community_service.create_community(
        engine,
        name=body.name,
        community_type=body.type,
        created_by=principal,
        parent_id=body.parent_id,
        description=body.description,
        cover_url=body.cover_url,
    )
    return community_dict(community)


@router.get("/{community_id}")
def get_community(community_id: int, engine=Depends(get_engine)):
    return community_dict(community_service.get_community(engine, community_id))


@router.patch("/{community_id}")
def update_community(
    community_id: int,
    body: CommunityUpdate,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    # Only fields present in the request body are touched; explicit null clears
    changes = {
        key: getattr(body, key)
        for key in ("description", "cover_url")
        if key in body.model_fields_set
    }
    community = community_service.update_community(
        engine, community_id, actor_id=principal, name=body.name, **changes,
    )
    return community_dict(community)


@router.get("/{community_id}/ancestors")
def get_ancestors(
    community_id: int,
    engine=Depends(get_engine),
    policy: AccessPolicy = Depends(get_policy),
):
    chain = community_service.ancestors_of(engine, community_id, policy)
    return {"community_id": community_id, "ancestors": [community_dict(c) for c in chain]}


@router.get("/{community_id}/moderators")
def get_moderators(community_id: int, engine=Depends(get_engine)):
    moderators = moderation_service.list_moderators(engine, community_id)
    return {"moderators": [moderator_dict(m) for m in moderators]}


@router.get("/{community_id}/posts")
def get_feed(
    community_id: int,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    before_id: int | None = Query(None),
    principal: str | None = Depends(get_optional_principal),
    engine=Depends(get_engine),
    policy: AccessPolicy = Depends(get_policy),
):
    posts = content_service.list_community_feed(
        engine, principal, community_id, limit=limit, before_id=before_id, policy=policy,
    )
    return {"posts": [post_dict(p) for p in posts]}


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
@router.post("/{community_id}/membership", status_code=201)
def follow_community(
    community_id: int,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    membership_service.follow_community(engine, principal, community_id)
    community = community_service.get_community(engine, community_id)
    return {"community_id": community_id, "member_count": community.member_count}


@router.delete("/{community_id}/membership")
def unfollow_community(
    community_id: int,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    membership_service.unfollow_community(engine, principal, community_id)
    community = community_service.get_community(engine, community_id)
    return {"community_id": community_id, "member_count": community.member_count}
