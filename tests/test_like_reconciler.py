import asyncio
from datetime import datetime, timezone

import pytest

from breathewell.db import paths
from breathewell.models.community_model import ForumPost
from breathewell.services.like_reconciler import (
    LikeOutcome,
    LikeReconciler,
    RefreshSequencer,
    apply_like_outcome,
    comment_item_paths,
    merge_liked,
    post_item_paths,
)
from breathewell.utils.errors import ConflictRetryExhausted, NotFound, RemoteFailure


def _seed_post(store, post_id="p1", like_count=0):
    store.put(paths.post_path(post_id), {
        "title": "t", "body": "b", "author_id": "u0", "author_name": "Zed",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc), "like_count": like_count,
    })


@pytest.mark.asyncio
async def test_toggle_twice_restores_state(store):
    _seed_post(store)
    likes = LikeReconciler(store)

    first = await likes.toggle(paths.post_path("p1"), "u1")
    assert first == LikeOutcome(liked=True, like_count=1)
    assert paths.like_path(paths.post_path("p1"), "u1") in store.docs

    second = await likes.toggle(paths.post_path("p1"), "u1")
    assert second == LikeOutcome(liked=False, like_count=0)
    assert store.docs["posts/p1"]["like_count"] == 0
    assert store.children(paths.likes_path("posts/p1")) == []


@pytest.mark.asyncio
async def test_counter_never_goes_negative(store):
    # drifted counter: a like exists but the count already says zero
    _seed_post(store, like_count=0)
    store.put("posts/p1/likes/u1", {})

    outcome = await LikeReconciler(store).toggle("posts/p1", "u1")

    assert outcome == LikeOutcome(liked=False, like_count=0)
    assert store.docs["posts/p1"]["like_count"] == 0


@pytest.mark.asyncio
async def test_counter_matches_like_rows(store):
    _seed_post(store)
    likes = LikeReconciler(store)

    for uid in ("a", "b", "c", "d"):
        await likes.toggle("posts/p1", uid)
    await likes.toggle("posts/p1", "b")

    assert store.docs["posts/p1"]["like_count"] == len(store.children("posts/p1/likes")) == 3


@pytest.mark.asyncio
async def test_concurrent_toggles_by_same_user_cancel_out(store):
    _seed_post(store)
    likes = LikeReconciler(store)

    a, b = await asyncio.gather(likes.toggle("posts/p1", "u1"), likes.toggle("posts/p1", "u1"))

    assert {a.liked, b.liked} == {True, False}
    assert store.conflicts >= 1
    assert store.docs["posts/p1"]["like_count"] == 0
    assert store.children("posts/p1/likes") == []


@pytest.mark.asyncio
async def test_concurrent_toggles_by_different_users_both_count(store):
    _seed_post(store)
    likes = LikeReconciler(store)

    await asyncio.gather(likes.toggle("posts/p1", "u1"), likes.toggle("posts/p1", "u2"))

    assert store.docs["posts/p1"]["like_count"] == 2


@pytest.mark.asyncio
async def test_toggle_on_missing_item_is_not_found(store):
    with pytest.raises(NotFound):
        await LikeReconciler(store).toggle("posts/nope", "u1")
    assert store.writes == 0


@pytest.mark.asyncio
async def test_exhausted_retries_surface_as_remote_failure(store):
    _seed_post(store)
    store.max_attempts = 0

    with pytest.raises(ConflictRetryExhausted):
        await LikeReconciler(store).toggle("posts/p1", "u1")


@pytest.mark.asyncio
async def test_transport_failure_becomes_remote_failure(store):
    _seed_post(store)
    store.fail_next("transaction")

    with pytest.raises(RemoteFailure):
        await LikeReconciler(store).toggle("posts/p1", "u1")


@pytest.mark.asyncio
async def test_fetch_liked_checks_each_key(store):
    for pid in ("p1", "p2", "p3"):
        _seed_post(store, pid)
    store.put("posts/p2/likes/u1", {})
    store.put("posts/p1/comments/c1/likes/u1", {})

    likes = LikeReconciler(store)
    assert await likes.fetch_liked(post_item_paths(["p1", "p2", "p3"]), "u1") == {"p2"}
    assert await likes.fetch_liked(comment_item_paths("p1", ["c1", "c2"]), "u1") == {"p1#c1"}
    assert await likes.fetch_liked({}, "u1") == set()


def test_merge_liked_only_touches_checked_keys():
    current = {"p1", "p2", "old"}
    merged = merge_liked(current, checked_keys={"p1", "p2", "p3"}, found={"p2", "p3"})
    assert merged == {"p2", "p3", "old"}



def test_superseded_refresh_is_dropped():
    seq = RefreshSequencer()
    older = seq.begin()
    newer = seq.begin()

    assert seq.accept(newer, set(), {"p1"}, {"p1"}) == {"p1"}
    assert seq.accept(older, {"p1"}, {"p1"}, set()) is None


def test_refresh_skips_keys_toggled_after_it_began():
    seq = RefreshSequencer()
    ticket = seq.begin()
    seq.toggled("p1")

    merged = seq.accept(ticket, {"p1"}, checked_keys={"p1", "p2"}, found={"p2"})

    assert merged == {"p1", "p2"}


def test_toggle_before_refresh_began_is_resynced():
    seq = RefreshSequencer()
    seq.toggled("p1")
    ticket = seq.begin()

    assert seq.accept(ticket, {"p1"}, {"p1"}, set()) == set()


def test_reset_drops_refreshes_in_flight():
    seq = RefreshSequencer()
    ticket = seq.begin()
    seq.reset()

    assert seq.accept(ticket, set(), {"p1"}, {"p1"}) is None

def _post(like_count):
    return ForumPost(id="p1", title="t", body="b", author_id="u0", like_count=like_count)


def test_overlay_moves_count_and_membership():
    items, liked = apply_like_outcome(
        [_post(4)], set(), "p1", "p1", LikeOutcome(liked=True, like_count=5), snapshot_arrived=False
    )
    assert items[0].like_count == 5
    assert liked == {"p1"}


def test_overlay_skips_count_when_snapshot_already_has_it():
    items, liked = apply_like_outcome(
        [_post(5)], set(), "p1", "p1", LikeOutcome(liked=True, like_count=5), snapshot_arrived=True
    )
    assert items[0].like_count == 5
    assert liked == {"p1"}


def test_overlay_unlike_is_floored_at_zero():
    items, liked = apply_like_outcome(
        [_post(0)], {"p1"}, "p1", "p1", LikeOutcome(liked=False, like_count=0), snapshot_arrived=False
    )
    assert items[0].like_count == 0
    assert liked == set()


@pytest.mark.asyncio
async def test_concurrent_toggles_from_liked_baseline_stay_liked(store):
    _seed_post(store, like_count=1)
    store.put("posts/p1/likes/u1", {})
    likes = LikeReconciler(store)

    await asyncio.gather(likes.toggle("posts/p1", "u1"), likes.toggle("posts/p1", "u1"))

    assert store.docs["posts/p1"]["like_count"] == 1
    assert store.children("posts/p1/likes") == ["posts/p1/likes/u1"]
