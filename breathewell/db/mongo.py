# breathewell/db/mongo.py
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase

from .mongo_store import MongoDocumentStore

load_dotenv()

MONGO_URL = os.getenv("MONGODB_URL")
MONGO_DB_NAME = os.getenv("MONGODB_DB", "breathewell")

_client: Optional[AsyncIOMotorClient] = None
_store: Optional[MongoDocumentStore] = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        if not MONGO_URL:
            raise RuntimeError("MONGODB_URL env var is not set")
        # tz_aware so created_at/timestamp compare cleanly with now_utc()
        _client = AsyncIOMotorClient(MONGO_URL, tz_aware=True)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    return get_client()[MONGO_DB_NAME]


# Collections
def get_profiles_collection() -> AsyncIOMotorCollection:
    return get_db()["profiles"]           # local profile cache, one per auth uid


def get_document_store() -> MongoDocumentStore:
    """Shared forum/chat store; posts, comments, likes and messages live in it."""
    global _store
    if _store is None:
        _store = MongoDocumentStore(get_client(), get_db())
    return _store


# Call this once at startup to ensure indexes exist.
async def init_db_indexes() -> None:
    db = get_db()

    # Profiles: one per auth uid (legacy rows may not have one yet)
    await db["profiles"].create_index(
        "auth_uid",
        unique=True,
        partialFilterExpression={"auth_uid": {"$type": "string"}},
        name="auth_uid_unique",
    )
    await db["profiles"].create_index("email")

    # Forum documents are keyed by path; children are listed by parent collection path
    await db["posts"].create_index([("_parent", 1), ("created_at", -1)])
    await db["comments"].create_index([("_parent", 1), ("created_at", 1)])
    await db["likes"].create_index([("_parent", 1)])

    # Chat (live window reads the newest N)
    await db["messages"].create_index([("_parent", 1), ("timestamp", 1)])
