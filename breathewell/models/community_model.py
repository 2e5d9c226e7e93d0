# breathewell/models/community_model.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..db.store import DocumentSnapshot
from ..utils.datetime_utils import now_utc, to_utc_aware

DEFAULT_AUTHOR_NAME = "Anonymous"
DEFAULT_AVATAR = "person.circle.fill"


def _count(value) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


class Authorship(BaseModel):
    """
    Who wrote a post/comment. Rows written before author ids were tracked have
    an empty `author_id` and can only be matched by `author_name`.
    """
    author_id: str = ""
    author_name: str = ""

    model_config = {"frozen": True}

    @property
    def is_legacy(self) -> bool:
        return not self.author_id.strip()


class ForumPost(BaseModel):
    id: Optional[str] = None
    title: str = ""
    body: str = ""
    author_id: str = ""
    author_name: str = DEFAULT_AUTHOR_NAME
    author_avatar: str = DEFAULT_AVATAR
    created_at: datetime = Field(default_factory=now_utc)
    like_count: int = 0

    model_config = {"frozen": True}

    @property
    def authorship(self) -> Authorship:
        return Authorship(author_id=self.author_id, author_name=self.author_name)

    @classmethod
    def from_snapshot(cls, doc: DocumentSnapshot) -> Optional["ForumPost"]:
        if not doc.exists:
            return None
        return cls(
            id=doc.id,
            title=doc.get("title") or "",
            body=doc.get("body") or "",
            author_id=str(doc.get("author_id") or ""),
            author_name=doc.get("author_name") or DEFAULT_AUTHOR_NAME,
            author_avatar=doc.get("author_avatar") or DEFAULT_AVATAR,
            # server timestamp may still be pending on a fresh write
            created_at=to_utc_aware(doc.get("created_at")) or now_utc(),
            like_count=_count(doc.get("like_count")),
        )


class ForumComment(BaseModel):
    id: Optional[str] = None
    body: str = ""
    author_id: str = ""
    author_name: str = DEFAULT_AUTHOR_NAME
    author_avatar: str = DEFAULT_AVATAR
    created_at: datetime = Field(default_factory=now_utc)
    like_count: int = 0

    model_config = {"frozen": True}

    @property
    def authorship(self) -> Authorship:
        return Authorship(author_id=self.author_id, author_name=self.author_name)

    @classmethod
    def from_snapshot(cls, doc: DocumentSnapshot) -> Optional["ForumComment"]:
        if not doc.exists:
            return None
        return cls(
            id=doc.id,
            body=doc.get("body") or "",
            author_id=str(doc.get("author_id") or ""),
            author_name=doc.get("author_name") or DEFAULT_AUTHOR_NAME,
            author_avatar=doc.get("author_avatar") or DEFAULT_AVATAR,
            created_at=to_utc_aware(doc.get("created_at")) or now_utc(),
            like_count=_count(doc.get("like_count")),
        )


class ChatMessage(BaseModel):
    id: Optional[str] = None
    sender_id: str
    sender_name: str = DEFAULT_AUTHOR_NAME
    text: str
    timestamp: datetime = Field(default_factory=now_utc)

    model_config = {"frozen": True}

    @classmethod
    def from_snapshot(cls, doc: DocumentSnapshot) -> Optional["ChatMessage"]:
        # rows missing the required fields are skipped, like a failed decode
        if not doc.exists or not doc.get("sender_id") or doc.get("text") is None:
            return None
        return cls(
            id=doc.id,
            sender_id=str(doc.get("sender_id")),
            sender_name=doc.get("sender_name") or DEFAULT_AUTHOR_NAME,
            text=doc.get("text"),
            timestamp=to_utc_aware(doc.get("timestamp")) or now_utc(),
        )
