# breathewell/db/mongo_store.py
"""
MongoDB-backed DocumentStore.

Every document is stored with `_id` = its full path and `_parent` = its
collection path, in the Mongo collection named after the last collection
segment ("posts", "comments", "likes", "messages"). Live streams use change
streams, so the server must run as a replica set.
"""
from __future__ import annotations

import logging
import re
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from bson import ObjectId
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)

from .store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Ordering,
    Transaction,
    parent_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_INTERNAL_FIELDS = ("_id", "_parent")


def _split_sentinels(fields: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, bool]]:
    plain = {k: v for k, v in fields.items() if v is not SERVER_TIMESTAMP}
    stamped = {k: True for k, v in fields.items() if v is SERVER_TIMESTAMP}
    return plain, stamped


def _to_snapshot(path: str, doc: Optional[dict]) -> DocumentSnapshot:
    if doc is None:
        return DocumentSnapshot(path=path, data=None)
    data = {k: v for k, v in doc.items() if k not in _INTERNAL_FIELDS}
    return DocumentSnapshot(path=path, data=data)


class MongoTransaction(Transaction):
    def __init__(self, store: "MongoDocumentStore", session: AsyncIOMotorClientSession):
        self._store = store
        self._session = session
        self._writes: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []

    async def get(self, path: str) -> DocumentSnapshot:
        doc = await self._store.collection_for(path).find_one({"_id": path}, session=self._session)
        return _to_snapshot(path, doc)

    def set(self, path: str, data: Dict[str, Any]) -> None:
        self._writes.append(("set", path, dict(data)))

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        self._writes.append(("update", path, dict(fields)))

    def delete(self, path: str) -> None:
        self._writes.append(("delete", path, None))

    async def commit_writes(self) -> None:
        for op, path, fields in self._writes:
            coll = self._store.collection_for(path)
            if op == "delete":
                await coll.delete_one({"_id": path}, session=self._session)
                continue
            plain, stamped = _split_sentinels(fields or {})
            if op == "set":
                doc = {"_id": path, "_parent": parent_path(path), **plain}
                await coll.replace_one({"_id": path}, doc, upsert=True, session=self._session)
                if stamped:
                    await coll.update_one({"_id": path}, {"$currentDate": stamped}, session=self._session)
            else:
                update: Dict[str, Any] = {}
                if plain:
                    update["$set"] = plain
                if stamped:
                    update["$currentDate"] = stamped
                if update:
                    await coll.update_one({"_id": path}, update, session=self._session)


class MongoDocumentStore(DocumentStore):
    def __init__(self, client: AsyncIOMotorClient, db: AsyncIOMotorDatabase):
        self._client = client
        self._db = db

    def collection_for(self, path: str) -> AsyncIOMotorCollection:
        """Mongo collection holding the document (or collection) at `path`."""
        segments = path.split("/")
        # odd segment count => collection path, even => document path
        name = segments[-1] if len(segments) % 2 == 1 else segments[-2]
        return self._db[name]

    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str:
        doc_id = str(ObjectId())
        path = f"{collection_path}/{doc_id}"
        plain, stamped = _split_sentinels(fields)
        update: Dict[str, Any] = {"$set": {"_parent": collection_path, **plain}}
        if stamped:
            update["$currentDate"] = stamped
        await self.collection_for(collection_path).update_one({"_id": path}, update, upsert=True)
        return doc_id

    async def get(self, path: str) -> DocumentSnapshot:
        doc = await self.collection_for(path).find_one({"_id": path})
        return _to_snapshot(path, doc)

    async def delete(self, path: str) -> None:
        await self.collection_for(path).delete_one({"_id": path})

    async def query(
        self, collection_path: str, ordering: Optional[Ordering] = None
    ) -> List[DocumentSnapshot]:
        cursor = self.collection_for(collection_path).find({"_parent": collection_path})
        reverse_after = False
        if ordering is not None:
            direction = -1 if ordering.descending else 1
            if ordering.limit is not None and ordering.limit_to_last:
                # read the tail in reverse, then flip back into the requested order
                direction = -direction
                reverse_after = True
            cursor = cursor.sort(ordering.field, direction)
            if ordering.limit is not None:
                cursor = cursor.limit(ordering.limit)
        rows = [_to_snapshot(doc["_id"], doc) async for doc in cursor]
        if reverse_after:
            rows.reverse()
        return rows

    async def stream(
        self, collection_path: str, ordering: Optional[Ordering] = None
    ) -> AsyncIterator[List[DocumentSnapshot]]:
        coll = self.collection_for(collection_path)
        # only direct children of this collection path (not grandchildren)
        pattern = f"^{re.escape(collection_path)}/[^/]+$"
        pipeline = [{"$match": {"documentKey._id": {"$regex": pattern}}}]
        # open the change stream before the first read so no change slips between them
        async with coll.watch(pipeline) as changes:
            yield await self.query(collection_path, ordering)
            async for _change in changes:
                yield await self.query(collection_path, ordering)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        async with await self._client.start_session() as session:

            async def _callback(s: AsyncIOMotorClientSession) -> T:
                tx = MongoTransaction(self, s)
                result = await fn(tx)
                await tx.commit_writes()
                return result

            # with_transaction retries TransientTransactionError / UnknownTransactionCommitResult
            return await session.with_transaction(_callback)


__all__ = ["MongoDocumentStore", "MongoTransaction"]
