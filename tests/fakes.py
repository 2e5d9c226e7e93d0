"""In-memory DocumentStore used by the tests.

Transactions are optimistic: reads record a version, every read yields to the
loop so concurrent transactions really interleave, and a commit whose reads
went stale is retried (up to `max_attempts`) like the real store does.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from breathewell.db.store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Ordering,
    Transaction,
    order_documents,
    parent_path,
)
from breathewell.utils.errors import ConflictRetryExhausted

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class _Conflict(Exception):
    pass


class FakeTransaction(Transaction):
    def __init__(self, store: "FakeDocumentStore"):
        self._store = store
        self._reads: Dict[str, int] = {}
        self._writes: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []

    async def get(self, path: str) -> DocumentSnapshot:
        self._reads[path] = self._store._versions.get(path, 0)
        snap = self._store._snapshot(path)
        await asyncio.sleep(0)
        return snap

    def set(self, path, data):
        self._writes.append(("set", path, dict(data)))

    def update(self, path, fields):
        self._writes.append(("update", path, dict(fields)))

    def delete(self, path):
        self._writes.append(("delete", path, None))

    def commit(self) -> None:
        for path, version in self._reads.items():
            if self._store._versions.get(path, 0) != version:
                raise _Conflict(path)
        for op, path, fields in self._writes:
            if op == "delete":
                self._store._remove(path)
            elif op == "set":
                self._store._write(path, fields, replace=True)
            else:
                self._store._write(path, fields, replace=False)


class FakeDocumentStore(DocumentStore):
    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts
        self.docs: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, int] = {}
        self._watchers: List[Tuple[str, asyncio.Queue]] = []
        self._faults: Dict[str, List[Exception]] = {}
        self._ids = 0
        self._ticks = 0
        self.writes = 0
        self.conflicts = 0
        self.stream_opens = 0

    # ---------------------------
    # Test controls
    # ---------------------------

    def fail_next(self, op: str, exc: Optional[Exception] = None) -> None:
        """Make the next `op` ("create", "get", "delete", "query", "stream", "transaction") raise."""
        self._faults.setdefault(op, []).append(exc or ConnectionError(f"{op} unavailable"))

    def push_stream_error(self, collection_path: str, exc: Optional[Exception] = None) -> None:
        for path, queue in self._watchers:
            if path == collection_path:
                queue.put_nowait(exc or ConnectionError("stream dropped"))

    def watcher_count(self, collection_path: str) -> int:
        return sum(1 for path, _ in self._watchers if path == collection_path)

    def put(self, path: str, data: Dict[str, Any]) -> None:
        """Seed a document directly (no fault checks)."""
        self._write(path, data, replace=True)

    def children(self, collection_path: str) -> List[str]:
        return sorted(p for p in self.docs if parent_path(p) == collection_path)

    # ---------------------------
    # Internals
    # ---------------------------

    def _check_fault(self, op: str) -> None:
        pending = self._faults.get(op)
        if pending:
            raise pending.pop(0)

    def _now(self) -> datetime:
        self._ticks += 1
        return _EPOCH + timedelta(seconds=self._ticks)

    def _snapshot(self, path: str) -> DocumentSnapshot:
        data = self.docs.get(path)
        return DocumentSnapshot(path=path, data=dict(data) if data is not None else None)

    def _resolve(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return {k: (self._now() if v is SERVER_TIMESTAMP else v) for k, v in fields.items()}

    def _write(self, path: str, fields: Dict[str, Any], replace: bool) -> None:
        resolved = self._resolve(fields)
        if replace or path not in self.docs:
            self.docs[path] = resolved
        else:
            self.docs[path].update(resolved)
        self._touch(path)

    def _remove(self, path: str) -> None:
        if self.docs.pop(path, None) is not None:
            self._touch(path)

    def _touch(self, path: str) -> None:
        self.writes += 1
        self._versions[path] = self._versions.get(path, 0) + 1
        collection = parent_path(path)
        for watched, queue in self._watchers:
            if watched == collection:
                queue.put_nowait(None)

    def _query_now(self, collection_path: str, ordering: Optional[Ordering]) -> List[DocumentSnapshot]:
        return order_documents([self._snapshot(p) for p in self.children(collection_path)], ordering)

    # ---------------------------
    # DocumentStore
    # ---------------------------

    async def create(self, collection_path, fields):
        self._check_fault("create")
        self._ids += 1
        doc_id = f"doc{self._ids:04d}"
        self._write(f"{collection_path}/{doc_id}", fields, replace=True)
        return doc_id

    async def get(self, path):
        self._check_fault("get")
        return self._snapshot(path)

    async def delete(self, path):
        self._check_fault("delete")
        self._remove(path)

    async def query(self, collection_path, ordering=None):
        self._check_fault("query")
        return self._query_now(collection_path, ordering)

    async def stream(self, collection_path, ordering=None):
        self._check_fault("stream")
        queue: asyncio.Queue = asyncio.Queue()
        entry = (collection_path, queue)
        self._watchers.append(entry)
        self.stream_opens += 1
        try:
            yield self._query_now(collection_path, ordering)
            while True:
                item = await queue.get()
                if isinstance(item, Exception):
                    raise item
                yield self._query_now(collection_path, ordering)
        finally:
            self._watchers.remove(entry)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[Any]]) -> Any:
        self._check_fault("transaction")
        for _ in range(self.max_attempts):
            tx = FakeTransaction(self)
            result = await fn(tx)
            try:
                tx.commit()
            except _Conflict:
                self.conflicts += 1
                continue
            return result
        raise ConflictRetryExhausted()


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Spin the loop until `predicate()` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
