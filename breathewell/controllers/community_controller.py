# breathewell/controllers/community_controller.py
from __future__ import annotations

from typing import List

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorCollection

from ..db import paths
from ..db.store import DocumentStore
from ..models.auth import Principal
from ..schemas.community_schema import (
    CommentCreateRequest,
    CreatedResponse,
    LikeToggleResponse,
    LikedStatusResponse,
    PostCreateRequest,
)
from ..services import mutations
from ..services.identity import IdentityResolver, effective_avatar, effective_display_name
from ..services.like_reconciler import LikeReconciler, comment_item_paths, post_item_paths
from ..utils.errors import (
    CommunityError,
    NotAuthorized,
    NotFound,
    Unauthenticated,
    ValidationEmpty,
)


# ---------------------------
# Helpers
# ---------------------------

def to_http_error(error: CommunityError) -> HTTPException:
    if isinstance(error, Unauthenticated):
        return HTTPException(status_code=401, detail=f"❌ {error.message}")
    if isinstance(error, ValidationEmpty):
        return HTTPException(status_code=400, detail=f"❌ {error.message}")
    if isinstance(error, NotAuthorized):
        return HTTPException(status_code=403, detail=f"❌ {error.message}")
    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail=f"❌ {error.message}")
    # RemoteFailure (and anything else from the store)
    return HTTPException(status_code=502, detail=error.message)


async def _author_for(profiles: AsyncIOMotorCollection, principal: Principal) -> mutations.Author:
    profile = await IdentityResolver(profiles).ensure_profile(principal)
    return mutations.Author(
        id=principal.uid,
        name=effective_display_name(profile, principal),
        avatar=effective_avatar(profile),
    )


# ---------------------------
# Create
# ---------------------------

async def create_post(
    store: DocumentStore,
    profiles: AsyncIOMotorCollection,
    principal: Principal,
    data: PostCreateRequest,
) -> CreatedResponse:
    try:
        author = await _author_for(profiles, principal)
        post_id = await mutations.create_post(store, principal, author, data.title, data.body)
    except CommunityError as e:
        raise to_http_error(e)
    return CreatedResponse(id=post_id)


async def add_comment(
    store: DocumentStore,
    profiles: AsyncIOMotorCollection,
    principal: Principal,
    post_id: str,
    data: CommentCreateRequest,
) -> CreatedResponse:
    try:
        author = await _author_for(profiles, principal)
        comment_id = await mutations.create_comment(store, principal, author, post_id, data.body)
    except CommunityError as e:
        raise to_http_error(e)
    return CreatedResponse(id=comment_id)


# ---------------------------
# Delete
# ---------------------------

async def remove_post(
    store: DocumentStore,
    profiles: AsyncIOMotorCollection,
    principal: Principal,
    post_id: str,
) -> dict:
    try:
        author = await _author_for(profiles, principal)
        await mutations.delete_post(store, principal, author.name, post_id)
    except CommunityError as e:
        raise to_http_error(e)
    return {"message": "✅ Post deleted successfully"}


async def remove_comment(
    store: DocumentStore,
    profiles: AsyncIOMotorCollection,
    principal: Principal,
    post_id: str,
    comment_id: str,
) -> dict:
    try:
        author = await _author_for(profiles, principal)
        await mutations.delete_comment(store, principal, author.name, post_id, comment_id)
    except CommunityError as e:
        raise to_http_error(e)
    return {"message": "✅ Comment deleted successfully"}


# ---------------------------
# Like / Unlike
# ---------------------------

async def toggle_post_like(store: DocumentStore, principal: Principal, post_id: str) -> LikeToggleResponse:
    try:
        outcome = await LikeReconciler(store).toggle(paths.post_path(post_id), principal.uid)
    except CommunityError as e:
        raise to_http_error(e)
    return LikeToggleResponse(liked=outcome.liked, like_count=outcome.like_count)


async def toggle_comment_like(
    store: DocumentStore, principal: Principal, post_id: str, comment_id: str
) -> LikeToggleResponse:
    try:
        outcome = await LikeReconciler(store).toggle(paths.comment_path(post_id, comment_id), principal.uid)
    except CommunityError as e:
        raise to_http_error(e)
    return LikeToggleResponse(liked=outcome.liked, like_count=outcome.like_count)


async def liked_posts(store: DocumentStore, principal: Principal, post_ids: List[str]) -> LikedStatusResponse:
    try:
        found = await LikeReconciler(store).fetch_liked(post_item_paths(post_ids), principal.uid)
    except CommunityError as e:
        raise to_http_error(e)
    return LikedStatusResponse(liked=sorted(found))


async def liked_comments(
    store: DocumentStore, principal: Principal, post_id: str, comment_ids: List[str]
) -> LikedStatusResponse:
    try:
        found = await LikeReconciler(store).fetch_liked(comment_item_paths(post_id, comment_ids), principal.uid)
    except CommunityError as e:
        raise to_http_error(e)
    return LikedStatusResponse(liked=sorted(found))
