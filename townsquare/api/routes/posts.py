"""
townsquare.api.routes.posts — Posts, comments & likes
=======================================================

Read routes accept anonymous callers (public posts only); writes need a
bearer token.
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
from townsquare.api.serializers import comment_dict, post_dict
from townsquare.config import AccessPolicy
from townsquare.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_COMMENT_LENGTH,
    MAX_PAGE_SIZE,
    MAX_POST_LENGTH,
    MAX_URL_LENGTH,
)
from townsquare.database.models import PostType, PostVisibility
from townsquare.services import access_service, content_service

router = APIRouter(tags=["posts"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class PostCreate(BaseModel):
    community_id: int
    visibility: PostVisibility
    content: str = Field(min_length=1, max_length=MAX_POST_LENGTH)
    post_type: PostType = PostType.TEXT
    attachment_url: str | None = Field(default=None, max_length=MAX_URL_LENGTH)


class PostUpdate(BaseModel):
    content: str | None = Field(default=None, min_length=1, max_length=MAX_POST_LENGTH)
    attachment_url: str | None = Field(default=None, max_length=MAX_URL_LENGTH)


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=MAX_COMMENT_LENGTH)


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
@router.post("/posts", status_code=201)
def create_post(
    body: PostCreate,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    post = content_service.create_post(
        engine,
        author_id=principal,
        community_id=body.community_id,
        visibility=body.visibility,
        content=body.content,
        post_type=body.post_type,
        attachment_url=body.attachment_url,
    )
    return post_dict(post)


@router.get("/posts/{post_id}")
def get_post(
    post_id: int,
    principal: str | None = Depends(get_optional_principal),
    engine=Depends(get_engine),
    policy: AccessPolicy = Depends(get_policy),
):
    return post_dict(content_service.get_post(engine, principal, post_id, policy))


@router.get("/posts/{post_id}/can-read")
def can_read_post(
    post_id: int,
    principal: str | None = Depends(get_optional_principal),
    engine=Depends(get_engine),
    policy: AccessPolicy = Depends(get_policy),
):
    allowed = access_service.check_read_post(engine, principal, post_id, policy)
    return {"post_id": post_id, "principal": principal, "can_read": allowed}


@router.patch("/posts/{post_id}")
def update_post(
    post_id: int,
    body: PostUpdate,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    changes = {}
    if "attachment_url" in body.model_fields_set:
        changes["attachment_url"] = body.attachment_url
    post = content_service.update_post(
        engine, principal, post_id, content=body.content, **changes,
    )
    return post_dict(post)


@router.delete("/posts/{post_id}")
def delete_post(
    post_id: int,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    content_service.delete_post(engine, principal, post_id)
    return {"id": post_id, "deleted": True}


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
@router.get("/posts/{post_id}/comments")
def list_comments(
    post_id: int,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    principal: str | None = Depends(get_optional_principal),
    engine=Depends(get_engine),
    policy: AccessPolicy = Depends(get_policy),
):
    comments = content_service.list_comments(
        engine, principal, post_id, limit=limit, offset=offset, policy=policy,
    )
    return {"comments": [comment_dict(c) for c in comments]}


@router.post("/posts/{post_id}/comments", status_code=201)
def create_comment(
    post_id: int,
    body: CommentCreate,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
    policy: AccessPolicy = Depends(get_policy),
):
    comment = content_service.create_comment(engine, principal, post_id, body.content, policy)
    return comment_dict(comment)


@router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: int,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    content_service.delete_comment(engine, principal, comment_id)
    return {"id": comment_id, "deleted": True}


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
@router.post("/posts/{post_id}/like", status_code=201)
def like_post(
    post_id: int,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
    policy: AccessPolicy = Depends(get_policy),
):
    content_service.like_post(engine, principal, post_id, policy)
    post = content_service.get_post(engine, principal, post_id, policy)
    return {"post_id": post_id, "likes_count": post.likes_count}


@router.delete("/posts/{post_id}/like")
def unlike_post(
    post_id: int,
    principal: str = Depends(get_principal),
    engine=Depends(get_engine),
):
    content_service.unlike_post(engine, principal, post_id)
    return {"post_id": post_id, "liked": False}
