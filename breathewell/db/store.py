# breathewell/db/store.py
"""
Narrow interface to the remote document store.

Documents live at slash-separated paths ("posts/p1/comments/c1"); a collection
path is a document path minus its last segment. Implementations deliver whole
result sets, never diffs.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, TypeVar

T = TypeVar("T")


class _ServerTimestamp:
    """Sentinel the store replaces with its own clock at write time."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Ordering:
    field: str
    descending: bool = False
    limit: Optional[int] = None
    # keep the *last* `limit` rows of the ordered result instead of the first
    limit_to_last: bool = False


@dataclass(frozen=True)
class DocumentSnapshot:
    path: str
    data: Optional[Dict[str, Any]]

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, field: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(field, default)


class Transaction(ABC):
    """Reads happen immediately; writes are buffered and committed all-or-nothing."""

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot: ...

    @abstractmethod
    def set(self, path: str, data: Dict[str, Any]) -> None: ...

    @abstractmethod
    def update(self, path: str, fields: Dict[str, Any]) -> None: ...

    @abstractmethod
    def delete(self, path: str) -> None: ...


class DocumentStore(ABC):
    @abstractmethod
    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str:
        """Insert a document with a store-generated id and return that id."""

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot: ...

    @abstractmethod
    async def delete(self, path: str) -> None: ...

    @abstractmethod
    async def query(
        self, collection_path: str, ordering: Optional[Ordering] = None
    ) -> List[DocumentSnapshot]: ...

    @abstractmethod
    def stream(
        self, collection_path: str, ordering: Optional[Ordering] = None
    ) -> AsyncIterator[List[DocumentSnapshot]]:
        """Yield the full ordered result set now and after every change."""

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run `fn` atomically, retrying on write conflicts."""


def parent_path(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def order_documents(docs: List[DocumentSnapshot], ordering: Optional[Ordering]) -> List[DocumentSnapshot]:
    """Apply an Ordering to an unordered list of snapshots (documents missing the field sort first)."""
    if ordering is None:
        return list(docs)

    def _key(doc: DocumentSnapshot):
        value = doc.get(ordering.field)
        return (value is not None, value if value is not None else 0)

    rows = sorted(docs, key=_key, reverse=ordering.descending)
    if ordering.limit is not None:
        rows = rows[-ordering.limit:] if ordering.limit_to_last else rows[: ordering.limit]
    return rows
