# breathewell/services/collection_stream.py
from __future__ import annotations

import asyncio
import inspect
import logging
import os
from typing import Any, Callable, List, Optional

from dotenv import load_dotenv

from ..db.store import DocumentSnapshot, DocumentStore, Ordering
from ..utils.errors import CommunityError, RemoteFailure

load_dotenv()

logger = logging.getLogger(__name__)

STREAM_RETRY_BASE_SECONDS = float(os.getenv("STREAM_RETRY_BASE_SECONDS", "1"))
STREAM_RETRY_MAX_SECONDS = float(os.getenv("STREAM_RETRY_MAX_SECONDS", "30"))

SnapshotHandler = Callable[[List[DocumentSnapshot]], Any]
ErrorHandler = Callable[[CommunityError], Any]


class CollectionStream:
    """
    Live, ordered mirror of one remote collection.

    Every change delivers the whole current result set to `on_snapshot`; the
    caller replaces its list wholesale. A failing subscription reports through
    `on_error` and is re-opened with exponential backoff, so the caller keeps
    showing its last good snapshot meanwhile. Nothing is delivered after
    `cancel()`.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection_path: str,
        ordering: Optional[Ordering],
        on_snapshot: SnapshotHandler,
        on_error: Optional[ErrorHandler] = None,
        *,
        retry_base: float = STREAM_RETRY_BASE_SECONDS,
        retry_max: float = STREAM_RETRY_MAX_SECONDS,
    ) -> None:
        self.collection_path = collection_path
        self._store = store
        self._ordering = ordering
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._retry_base = retry_base
        self._retry_max = retry_max
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "CollectionStream":
        if self._task is not None:
            raise RuntimeError(f"stream for {self.collection_path!r} already started")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"stream:{self.collection_path}"
        )
        return self

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Cancel and wait until the underlying listener is torn down."""
        self.cancel()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "CollectionStream":
        return self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _run(self) -> None:
        attempt = 0
        while not self._cancelled:
            try:
                async for docs in self._store.stream(self.collection_path, self._ordering):
                    attempt = 0
                    await self._deliver(docs)
                # store closed the stream on its own; nothing left to mirror
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = e if isinstance(e, CommunityError) else RemoteFailure(str(e) or None)
                logger.warning("Stream %s failed: %s", self.collection_path, e)
                await self._report(error)
            delay = min(self._retry_max, self._retry_base * (2 ** attempt))
            attempt += 1
            await asyncio.sleep(delay)

    async def _deliver(self, docs: List[DocumentSnapshot]) -> None:
        if self._cancelled:
            return
        try:
            result = self._on_snapshot(docs)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Snapshot handler for %s failed", self.collection_path)

    async def _report(self, error: CommunityError) -> None:
        if self._on_error is None or self._cancelled:
            return
        try:
            result = self._on_error(error)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Error handler for %s failed", self.collection_path)
