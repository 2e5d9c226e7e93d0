# breathewell/services/like_reconciler.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, NamedTuple, Optional, Set, Tuple, TypeVar, Union

from ..db import paths
from ..db.store import DocumentStore, Transaction
from ..models.community_model import ForumComment, ForumPost
from ..utils.errors import NotFound, remote_call

logger = logging.getLogger(__name__)

Item = TypeVar("Item", ForumPost, ForumComment)


class LikeOutcome(NamedTuple):
    liked: bool        # membership after the committed toggle
    like_count: int    # counter value the transaction wrote


class LikeReconciler:
    """Server-side half of like state: batched membership reads and atomic toggles."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def fetch_liked(self, item_paths: Mapping[str, str], uid: str) -> Set[str]:
        """
        Which of the given like keys (key -> item path) has `uid` liked?
        One existence read per key, all issued concurrently.
        """
        if not item_paths:
            return set()

        async def _check(key: str, item_path: str) -> Tuple[str, bool]:
            snap = await self._store.get(paths.like_path(item_path, uid))
            return key, snap.exists

        results = await remote_call(
            asyncio.gather(*(_check(k, p) for k, p in item_paths.items())),
            "load likes",
        )
        return {key for key, exists in results if exists}

    async def toggle(self, item_path: str, uid: str) -> LikeOutcome:
        """Flip `uid`'s like on the item and keep like_count in step, in one transaction."""
        like_ref = paths.like_path(item_path, uid)

        async def _toggle(tx: Transaction) -> LikeOutcome:
            like_snap = await tx.get(like_ref)
            item_snap = await tx.get(item_path)
            if not item_snap.exists:
                raise NotFound()

            like_count = _as_count(item_snap.get("like_count"))
            if like_snap.exists:
                tx.delete(like_ref)
                like_count = max(0, like_count - 1)
                liked = False
            else:
                tx.set(like_ref, {})
                like_count += 1
                liked = True
            tx.update(item_path, {"like_count": like_count})
            return LikeOutcome(liked=liked, like_count=like_count)

        outcome = await remote_call(self._store.run_transaction(_toggle), "toggle like")
        logger.debug("Toggled like on %s for %s -> %s", item_path, uid, outcome)
        return outcome


def _as_count(value: Union[int, float, str, None]) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def merge_liked(current: Set[str], checked_keys: Set[str], found: Set[str]) -> Set[str]:
    """Resync only the keys that were checked; everything else keeps its cached state."""
    return (current - checked_keys) | (found & checked_keys)


class RefreshSequencer:
    """
    Orders liked-by-me refreshes for one liked set.

    Only the most recently started refresh may write its result, and even then
    it leaves alone any key whose like was toggled after it began reading.
    """

    def __init__(self) -> None:
        self._seq = 0
        self._toggled: Dict[str, int] = {}

    def begin(self) -> int:
        self._seq += 1
        return self._seq

    def toggled(self, key: str) -> None:
        self._toggled[key] = self._seq

    def accept(
        self, ticket: int, current: Set[str], checked_keys: Set[str], found: Set[str]
    ) -> Optional[Set[str]]:
        """Merged liked set for a finished refresh, or None when it has been superseded."""
        if ticket != self._seq:
            return None
        fresh = {k for k in checked_keys if self._toggled.get(k, 0) < ticket}
        # later refreshes get higher tickets, so older marks can't matter to them
        self._toggled = {k: s for k, s in self._toggled.items() if s >= ticket}
        return merge_liked(current, fresh, found & fresh)

    def reset(self) -> None:
        self._seq += 1
        self._toggled.clear()


def apply_like_outcome(
    items: List[Item],
    liked: Set[str],
    key: str,
    item_id: str,
    outcome: LikeOutcome,
    snapshot_arrived: bool,
) -> Tuple[List[Item], Set[str]]:
    """
    Provisional local overlay after a committed toggle.

    Membership follows the transaction's result; the cached counter moves by one
    (floored at zero) unless a snapshot that already carries the committed count
    arrived while the toggle was in flight. The next snapshot overwrites all of it.
    """
    new_liked = set(liked)
    if outcome.liked:
        new_liked.add(key)
    else:
        new_liked.discard(key)

    updated: List[Item] = []
    for item in items:
        if item.id == item_id and not (snapshot_arrived and item.like_count == outcome.like_count):
            delta = 1 if outcome.liked else -1
            item = item.model_copy(update={"like_count": max(0, item.like_count + delta)})
        updated.append(item)
    return updated, new_liked


def like_key_for(post_id: str, comment_id: Optional[str] = None) -> str:
    return post_id if comment_id is None else paths.comment_like_key(post_id, comment_id)


def comment_item_paths(post_id: str, comment_ids: List[str]) -> Dict[str, str]:
    return {paths.comment_like_key(post_id, cid): paths.comment_path(post_id, cid) for cid in comment_ids}


def post_item_paths(post_ids: List[str]) -> Dict[str, str]:
    return {pid: paths.post_path(pid) for pid in post_ids}
