"""
townsquare.api.routes.users — User follow endpoints
=====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from townsquare.api.deps import get_engine, get_policy, get_principal
from townsquare.config import AccessPolicy
from townsquare.services import membership_service

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/{user_id}/follow", status_code=201)
def follow_user(
    user_id: str,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
    policy: AccessPolicy = Depends(get_policy),
):
    membership_service.follow_user(engine, principal, user_id, policy)
    return {"follower_id": principal, "followee_id": user_id}


@router.delete("/{user_id}/follow")
def unfollow_user(
    user_id: str,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    membership_service.unfollow_user(engine, principal, user_id)
    return {"follower_id": principal, "followee_id": user_id, "removed": True}


@router.get("/{user_id}/followers")
def get_followers(user_id: str, engine=Depends(get_engine)):
    return {"user_id": user_id, "followers": membership_service.list_followers(engine, user_id)}


@router.get("/{user_id}/following")
def get_following(user_id: str, engine=Depends(get_engine)):
    return {"user_id": user_id, "following": membership_service.list_following(engine, user_id)}


@router.get("/me/communities")
def get_my_communities(
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    communities = membership_service.list_memberships(engine, principal)
    return {"communities": [
        {"id": c.id, "name": c.name, "type": c.type.value} for c in communities
    ]}
