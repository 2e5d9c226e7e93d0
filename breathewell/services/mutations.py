# breathewell/services/mutations.py
"""
Create/delete operations against the shared store.

These never touch screen state: screens call them, clear their drafts on
success and otherwise wait for the next snapshot to show the change. Posts,
comments and messages carry SERVER_TIMESTAMP, so inserting locally before the
server assigns a time would order them inconsistently.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from pydantic import BaseModel

from ..db import paths
from ..db.store import SERVER_TIMESTAMP, DocumentStore
from ..models.auth import Principal
from ..models.community_model import Authorship
from ..utils.errors import NotAuthorized, NotFound, Unauthenticated, ValidationEmpty, remote_call
from ..utils.moderation import clean_text
from .ownership import can_delete

logger = logging.getLogger(__name__)


class Author(BaseModel):
    id: str
    name: str
    avatar: str

    model_config = {"frozen": True}


def require_principal(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise Unauthenticated()
    return principal


def require_text(*values: Optional[str]) -> Tuple[str, ...]:
    trimmed = tuple((v or "").strip() for v in values)
    if any(not v for v in trimmed):
        raise ValidationEmpty()
    return trimmed


def _authored_fields(author: Author) -> dict:
    return {
        "author_id": author.id,
        "author_name": author.name,
        "author_avatar": author.avatar,
        "created_at": SERVER_TIMESTAMP,
        "like_count": 0,
    }


# ---------------------------
# Create
# ---------------------------

async def create_post(
    store: DocumentStore,
    principal: Optional[Principal],
    author: Author,
    title: str,
    body: str,
) -> str:
    require_principal(principal)
    title, body = require_text(title, body)

    data = {"title": clean_text(title), "body": clean_text(body), **_authored_fields(author)}
    post_id = await remote_call(store.create(paths.POSTS, data), "create the post")
    logger.info("Post %s created by %s", post_id, author.id)
    return post_id


async def create_comment(
    store: DocumentStore,
    principal: Optional[Principal],
    author: Author,
    post_id: str,
    body: str,
) -> str:
    require_principal(principal)
    (body,) = require_text(body)

    data = {"body": clean_text(body), **_authored_fields(author)}
    comment_id = await remote_call(store.create(paths.comments_path(post_id), data), "add the comment")
    logger.info("Comment %s added to post %s by %s", comment_id, post_id, author.id)
    return comment_id


async def send_message(
    store: DocumentStore,
    principal: Optional[Principal],
    sender_name: str,
    text: str,
) -> str:
    principal = require_principal(principal)
    (text,) = require_text(text)

    data = {
        "sender_id": principal.uid,
        "sender_name": sender_name,
        "text": clean_text(text),
        "timestamp": SERVER_TIMESTAMP,
    }
    return await remote_call(store.create(paths.MESSAGES, data), "send the message")


# ---------------------------
# Delete
# ---------------------------

async def _authorize_delete(
    store: DocumentStore,
    principal: Principal,
    display_name: str,
    item_path: str,
) -> None:
    snap = await remote_call(store.get(item_path), "load the item")
    if not snap.exists:
        raise NotFound()
    authorship = Authorship(
        author_id=str(snap.get("author_id") or ""),
        author_name=snap.get("author_name") or "",
    )
    if not can_delete(authorship, principal.uid, display_name):
        raise NotAuthorized()


async def _delete_collection(store: DocumentStore, collection_path: str, what: str) -> None:
    docs = await remote_call(store.query(collection_path), f"list {what}")
    for doc in docs:
        await remote_call(store.delete(doc.path), f"delete {what}")


async def delete_comment(
    store: DocumentStore,
    principal: Optional[Principal],
    display_name: str,
    post_id: str,
    comment_id: str,
) -> None:
    principal = require_principal(principal)
    item_path = paths.comment_path(post_id, comment_id)
    await _authorize_delete(store, principal, display_name, item_path)

    await _delete_collection(store, paths.likes_path(item_path), "comment likes")
    await remote_call(store.delete(item_path), "delete the comment")
    logger.info("Comment %s on post %s deleted by %s", comment_id, post_id, principal.uid)


async def delete_post(
    store: DocumentStore,
    principal: Optional[Principal],
    display_name: str,
    post_id: str,
) -> None:
    """
    Hard cascade: comment likes, comments and post likes go first, the post
    itself last. A failure part-way leaves the post in place so the author
    can simply delete again.
    """
    principal = require_principal(principal)
    item_path = paths.post_path(post_id)
    await _authorize_delete(store, principal, display_name, item_path)

    comments = await remote_call(store.query(paths.comments_path(post_id)), "list comments")
    for comment in comments:
        await _delete_collection(store, paths.likes_path(comment.path), "comment likes")
        await remote_call(store.delete(comment.path), "delete comments")
    await _delete_collection(store, paths.likes_path(item_path), "post likes")
    await remote_call(store.delete(item_path), "delete the post")
    logger.info("Post %s deleted by %s (%d comments)", post_id, principal.uid, len(comments))
