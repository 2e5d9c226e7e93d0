import pytest

from breathewell.db.store import Ordering
from breathewell.services.collection_stream import CollectionStream
from breathewell.utils.errors import RemoteFailure

from fakes import eventually


@pytest.mark.asyncio
async def test_delivers_full_result_on_every_change(store):
    snapshots = []
    stream = CollectionStream(store, "messages", Ordering("n"), on_snapshot=snapshots.append).start()

    await eventually(lambda: len(snapshots) == 1)
    store.put("messages/b", {"n": 2})
    store.put("messages/a", {"n": 1})
    await eventually(lambda: len(snapshots) == 3)

    assert [d.id for d in snapshots[-1]] == ["a", "b"]
    await stream.aclose()


@pytest.mark.asyncio
async def test_open_failure_is_reported_and_retried(store):
    errors, snapshots = [], []
    store.fail_next("stream")

    async with CollectionStream(
        store, "messages", None, on_snapshot=snapshots.append, on_error=errors.append,
        retry_base=0.01, retry_max=0.01,
    ):
        await eventually(lambda: len(snapshots) == 1)

    assert len(errors) == 1
    assert isinstance(errors[0], RemoteFailure)
    assert store.watcher_count("messages") == 0


@pytest.mark.asyncio
async def test_nothing_delivered_after_cancel(store):
    snapshots = []
    stream = CollectionStream(store, "messages", None, on_snapshot=snapshots.append).start()
    await eventually(lambda: len(snapshots) == 1)

    stream.cancel()
    store.put("messages/x", {"n": 1})
    await stream.aclose()

    assert len(snapshots) == 1
    assert not stream.active


@pytest.mark.asyncio
async def test_failing_handler_does_not_kill_the_stream(store):
    calls = []

    def _handler(docs):
        calls.append(docs)
        if len(calls) == 1:
            raise ValueError("boom")

    stream = CollectionStream(store, "messages", None, on_snapshot=_handler).start()
    await eventually(lambda: len(calls) == 1)
    store.put("messages/x", {"n": 1})
    await eventually(lambda: len(calls) == 2)

    assert stream.active
    await stream.aclose()


@pytest.mark.asyncio
async def test_start_twice_is_an_error(store):
    stream = CollectionStream(store, "messages", None, on_snapshot=lambda docs: None).start()
    with pytest.raises(RuntimeError):
        stream.start()
    await stream.aclose()
