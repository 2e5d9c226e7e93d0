# breathewell/controllers/forum_controller.py
"""
Per-client forum screen: owns the post list, the open thread's comments, the
liked-by-me sets and the composer drafts. All writes to that state happen on
the event loop between awaits; views only ever see frozen ForumState copies.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Set, Union

from ..db import paths
from ..db.store import DocumentSnapshot, DocumentStore, Ordering
from ..models.auth import Principal, Profile
from ..models.community_model import ForumComment, ForumPost
from ..schemas.community_schema import ForumState
from ..services import mutations
from ..services.auth_session import AuthSession
from ..services.collection_stream import CollectionStream
from ..services.identity import effective_avatar, effective_display_name
from ..services.like_reconciler import (
    LikeReconciler,
    RefreshSequencer,
    apply_like_outcome,
    comment_item_paths,
    like_key_for,
    post_item_paths,
)
from ..services.notify import run_bg
from ..services.ownership import can_delete
from ..utils.errors import CommunityError, Unauthenticated, ValidationEmpty

logger = logging.getLogger(__name__)

StateListener = Callable[[ForumState], None]

POSTS_ORDER = Ordering("created_at", descending=True)
COMMENTS_ORDER = Ordering("created_at")


class ForumScreen:
    def __init__(self, store: DocumentStore, auth: AuthSession, profile: Optional[Profile] = None):
        self._store = store
        self._auth = auth
        self._likes = LikeReconciler(store)
        self.profile = profile

        self._posts: List[ForumPost] = []
        self._comments: List[ForumComment] = []
        self._liked_posts: Set[str] = set()
        self._liked_comments: Set[str] = set()
        self._current_post_id: Optional[str] = None
        self._new_post_title = ""
        self._new_post_body = ""
        self._new_comment_body = ""
        self._error_message: Optional[str] = None

        # bumped on every snapshot; lets a finished toggle tell whether one landed mid-flight
        self._posts_generation = 0
        self._comments_generation = 0
        self._posts_refresh = RefreshSequencer()
        self._comments_refresh = RefreshSequencer()

        self._posts_stream: Optional[CollectionStream] = None
        self._comments_stream: Optional[CollectionStream] = None
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[StateListener] = []
        self._unbind_auth = auth.on_auth_state_change(self._on_auth_change)

    # ---------------------------
    # State publishing
    # ---------------------------

    @property
    def state(self) -> ForumState:
        return ForumState(
            posts=tuple(self._posts),
            comments=tuple(self._comments),
            liked_posts=frozenset(self._liked_posts),
            liked_comments=frozenset(self._liked_comments),
            current_post_id=self._current_post_id,
            new_post_title=self._new_post_title,
            new_post_body=self._new_post_body,
            new_comment_body=self._new_comment_body,
            error_message=self._error_message,
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _publish(self) -> None:
        if not self._listeners:
            return
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Forum state listener failed")

    def _fail(self, error: CommunityError, prefix: Optional[str] = None) -> None:
        self._error_message = f"{prefix}: {error.message}" if prefix else error.message
        self._publish()

    def clear_error(self) -> None:
        self._error_message = None
        self._publish()

    # ---------------------------
    # Identity helpers
    # ---------------------------

    @property
    def display_name(self) -> str:
        return effective_display_name(self.profile, self._auth.current_principal())

    def _author(self, principal: Principal) -> mutations.Author:
        return mutations.Author(id=principal.uid, name=self.display_name, avatar=effective_avatar(self.profile))

    def can_delete(self, item: Union[ForumPost, ForumComment]) -> bool:
        return can_delete(item.authorship, self._auth.uid, self.display_name)

    def _on_auth_change(self, principal: Optional[Principal]) -> None:
        # liked-by-me belongs to whoever is signed in
        self._liked_posts.clear()
        self._liked_comments.clear()
        self._posts_refresh.reset()
        self._comments_refresh.reset()
        self._publish()
        if principal is None:
            return
        self._spawn(self.refresh_liked_posts([p.id for p in self._posts if p.id]))
        if self._current_post_id:
            self._spawn(
                self.refresh_liked_comments(self._current_post_id, [c.id for c in self._comments if c.id])
            )

    # ---------------------------
    # Drafts
    # ---------------------------

    def set_post_draft(self, title: Optional[str] = None, body: Optional[str] = None) -> None:
        if title is not None:
            self._new_post_title = title
        if body is not None:
            self._new_post_body = body
        self._publish()

    def set_comment_draft(self, body: str) -> None:
        self._new_comment_body = body
        self._publish()

    # ---------------------------
    # Live streams
    # ---------------------------

    async def start_listening_posts(self) -> None:
        stream = CollectionStream(
            self._store, paths.POSTS, POSTS_ORDER,
            on_snapshot=self._on_posts_snapshot,
            on_error=self._fail,
        )
        await self._swap_stream("_posts_stream", stream)

    async def start_listening_comments(self, post_id: str) -> None:
        if post_id != self._current_post_id:
            # a different thread: the old comments mean nothing here
            self._comments = []
            self._current_post_id = post_id
            self._publish()
        stream = CollectionStream(
            self._store, paths.comments_path(post_id), COMMENTS_ORDER,
            on_snapshot=lambda docs: self._on_comments_snapshot(post_id, docs),
            on_error=self._fail,
        )
        await self._swap_stream("_comments_stream", stream)

    async def stop_listening_comments(self) -> None:
        previous, self._comments_stream = self._comments_stream, None
        if previous is not None:
            await previous.aclose()
        self._current_post_id = None
        self._comments = []
        self._publish()

    async def _swap_stream(self, attr: str, stream: CollectionStream) -> None:
        # cancel first so the old listener can never deliver into the new state
        previous: Optional[CollectionStream] = getattr(self, attr)
        if previous is not None:
            previous.cancel()
        setattr(self, attr, stream.start())
        if previous is not None:
            await previous.aclose()

    def _on_posts_snapshot(self, docs: List[DocumentSnapshot]) -> None:
        self._posts = [p for p in (ForumPost.from_snapshot(d) for d in docs) if p is not None]
        self._posts_generation += 1
        self._publish()
        self._spawn(self.refresh_liked_posts([d.id for d in docs]))

    def _on_comments_snapshot(self, post_id: str, docs: List[DocumentSnapshot]) -> None:
        if post_id != self._current_post_id:
            return
        self._comments = [c for c in (ForumComment.from_snapshot(d) for d in docs) if c is not None]
        self._comments_generation += 1
        self._publish()
        self._spawn(self.refresh_liked_comments(post_id, [d.id for d in docs]))

    def _spawn(self, coro) -> None:
        task = run_bg(coro, name="forum-refresh")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        self._unbind_auth()
        streams = [s for s in (self._posts_stream, self._comments_stream) if s is not None]
        self._posts_stream = self._comments_stream = None
        for task in list(self._tasks):
            task.cancel()
        for stream in streams:
            await stream.aclose()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._listeners.clear()

    # ---------------------------
    # Create
    # ---------------------------

    async def create_post(self) -> Optional[str]:
        principal = self._auth.current_principal()
        if principal is None:
            self._fail(Unauthenticated())
            return None
        try:
            post_id = await mutations.create_post(
                self._store,
                principal,
                self._author(principal),
                self._new_post_title,
                self._new_post_body,
            )
        except ValidationEmpty:
            return None
        except CommunityError as e:
            self._fail(e)
            return None
        self._new_post_title = ""
        self._new_post_body = ""
        self._publish()
        return post_id

    async def add_comment(self, post_id: str, body: Optional[str] = None) -> Optional[str]:
        principal = self._auth.current_principal()
        if principal is None:
            self._fail(Unauthenticated())
            return None
        text = self._new_comment_body if body is None else body
        try:
            comment_id = await mutations.create_comment(
                self._store,
                principal,
                self._author(principal),
                post_id,
                text,
            )
        except ValidationEmpty:
            return None
        except CommunityError as e:
            self._fail(e)
            return None
        self._new_comment_body = ""
        self._publish()
        return comment_id

    # ---------------------------
    # Delete
    # ---------------------------

    async def delete_post(self, post_id: str) -> bool:
        try:
            await mutations.delete_post(self._store, self._auth.current_principal(), self.display_name, post_id)
        except CommunityError as e:
            self._fail(e)
            return False
        return True

    async def delete_comment(self, post_id: str, comment_id: str) -> bool:
        try:
            await mutations.delete_comment(
                self._store, self._auth.current_principal(), self.display_name, post_id, comment_id
            )
        except CommunityError as e:
            self._fail(e)
            return False
        return True

    # ---------------------------
    # Likes
    # ---------------------------

    async def refresh_liked_posts(self, post_ids: List[str]) -> None:
        uid = self._auth.uid
        if not uid or not post_ids:
            return
        item_paths = post_item_paths(post_ids)
        ticket = self._posts_refresh.begin()
        try:
            found = await self._likes.fetch_liked(item_paths, uid)
        except CommunityError as e:
            self._fail(e)
            return
        if self._auth.uid != uid:
            return
        merged = self._posts_refresh.accept(ticket, self._liked_posts, set(item_paths), found)
        if merged is None:
            return
        self._liked_posts = merged
        self._publish()

    async def refresh_liked_comments(self, post_id: str, comment_ids: List[str]) -> None:
        uid = self._auth.uid
        if not uid or not comment_ids:
            return
        item_paths = comment_item_paths(post_id, comment_ids)
        ticket = self._comments_refresh.begin()
        try:
            found = await self._likes.fetch_liked(item_paths, uid)
        except CommunityError as e:
            self._fail(e)
            return
        if self._auth.uid != uid:
            return
        merged = self._comments_refresh.accept(ticket, self._liked_comments, set(item_paths), found)
        if merged is None:
            return
        self._liked_comments = merged
        self._publish()

    async def toggle_post_like(self, post_id: str) -> Optional[bool]:
        uid = self._auth.uid
        if not uid:
            self._fail(Unauthenticated())
            return None
        generation = self._posts_generation
        try:
            outcome = await self._likes.toggle(paths.post_path(post_id), uid)
        except CommunityError as e:
            self._fail(e, prefix="Failed to toggle like")
            return None
        self._posts_refresh.toggled(like_key_for(post_id))
        self._posts, self._liked_posts = apply_like_outcome(
            self._posts, self._liked_posts, like_key_for(post_id), post_id, outcome,
            snapshot_arrived=generation != self._posts_generation,
        )
        self._publish()
        return outcome.liked

    async def toggle_comment_like(self, post_id: str, comment_id: str) -> Optional[bool]:
        uid = self._auth.uid
        if not uid:
            self._fail(Unauthenticated())
            return None
        generation = self._comments_generation
        try:
            outcome = await self._likes.toggle(paths.comment_path(post_id, comment_id), uid)
        except CommunityError as e:
            self._fail(e, prefix="Failed to toggle like")
            return None
        self._comments_refresh.toggled(like_key_for(post_id, comment_id))
        comments = self._comments if post_id == self._current_post_id else []
        updated, self._liked_comments = apply_like_outcome(
            comments, self._liked_comments, like_key_for(post_id, comment_id), comment_id, outcome,
            snapshot_arrived=generation != self._comments_generation,
        )
        if post_id == self._current_post_id:
            self._comments = updated
        self._publish()
        return outcome.liked
