# breathewell/routes/community.py
from fastapi import APIRouter, Depends, Query
from typing import List

from motor.motor_asyncio import AsyncIOMotorCollection

from ..db.mongo import get_document_store, get_profiles_collection
from ..db.store import DocumentStore
from ..models.auth import Principal
from ..schemas.community_schema import (
    CommentCreateRequest,
    CreatedResponse,
    LikeToggleResponse,
    LikedStatusResponse,
    PostCreateRequest,
)
from ..controllers.community_controller import (
    create_post,
    add_comment,
    remove_post,
    remove_comment,
    toggle_post_like,
    toggle_comment_like,
    liked_posts,
    liked_comments,
)
from ..utils.auth_utils import get_current_principal

router = APIRouter(prefix="/community", tags=["Community"])


# ✅ Create a new forum post
@router.post("/posts", response_model=CreatedResponse, summary="Create a new forum post")
async def create_forum_post(
    post_data: PostCreateRequest,
    store: DocumentStore = Depends(get_document_store),
    profiles: AsyncIOMotorCollection = Depends(get_profiles_collection),
    current_user: Principal = Depends(get_current_principal),
):
    return await create_post(store, profiles, current_user, post_data)


# ✅ Delete a post (author only, cascades to comments and likes)
@router.delete("/posts/{post_id}", summary="Delete a post by ID")
async def delete_forum_post(
    post_id: str,
    store: DocumentStore = Depends(get_document_store),
    profiles: AsyncIOMotorCollection = Depends(get_profiles_collection),
    current_user: Principal = Depends(get_current_principal),
):
    return await remove_post(store, profiles, current_user, post_id)


# ✅ Add a comment
@router.post("/posts/{post_id}/comments", response_model=CreatedResponse, summary="Add a comment to a post")
async def add_forum_comment(
    post_id: str,
    comment_data: CommentCreateRequest,
    store: DocumentStore = Depends(get_document_store),
    profiles: AsyncIOMotorCollection = Depends(get_profiles_collection),
    current_user: Principal = Depends(get_current_principal),
):
    return await add_comment(store, profiles, current_user, post_id, comment_data)


# ✅ Delete a specific comment
@router.delete("/posts/{post_id}/comments/{comment_id}", summary="Delete a specific comment from a post")
async def delete_forum_comment(
    post_id: str,
    comment_id: str,
    store: DocumentStore = Depends(get_document_store),
    profiles: AsyncIOMotorCollection = Depends(get_profiles_collection),
    current_user: Principal = Depends(get_current_principal),
):
    return await remove_comment(store, profiles, current_user, post_id, comment_id)


# ✅ Like / unlike a post
@router.post("/posts/{post_id}/like", response_model=LikeToggleResponse, summary="Toggle like on a post")
async def like_forum_post(
    post_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_principal),
):
    return await toggle_post_like(store, current_user, post_id)


# ✅ Like / unlike a comment
@router.post(
    "/posts/{post_id}/comments/{comment_id}/like",
    response_model=LikeToggleResponse,
    summary="Toggle like on a comment",
)
async def like_forum_comment(
    post_id: str,
    comment_id: str,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_principal),
):
    return await toggle_comment_like(store, current_user, post_id, comment_id)


# ✅ Which of these posts did I like?
@router.get("/likes", response_model=LikedStatusResponse, summary="Liked-by-me status for posts")
async def get_liked_posts(
    post_ids: List[str] = Query(default=[]),
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_principal),
):
    return await liked_posts(store, current_user, post_ids)


# ✅ Which of these comments did I like? (keys come back as "postId#commentId")
@router.get(
    "/posts/{post_id}/comments/likes",
    response_model=LikedStatusResponse,
    summary="Liked-by-me status for comments of a post",
)
async def get_liked_comments(
    post_id: str,
    comment_ids: List[str] = Query(default=[]),
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_principal),
):
    return await liked_comments(store, current_user, post_id, comment_ids)
