# breathewell/controllers/chat_controller.py
from __future__ import annotations

import logging
import os
from typing import Callable, List, Optional

from dotenv import load_dotenv

from ..db import paths
from ..db.store import DocumentSnapshot, DocumentStore, Ordering
from ..models.community_model import DEFAULT_AUTHOR_NAME, ChatMessage
from ..schemas.chat import ChatState
from ..services import mutations
from ..services.auth_session import AuthSession
from ..services.collection_stream import CollectionStream
from ..utils.errors import CommunityError, Unauthenticated

load_dotenv()

logger = logging.getLogger(__name__)

# How many messages to keep live
CHAT_PAGE_SIZE = int(os.getenv("CHAT_PAGE_SIZE", "200"))


def chat_ordering(page_size: int = CHAT_PAGE_SIZE) -> Ordering:
    return Ordering("timestamp", limit=page_size, limit_to_last=True)


class ChatScreen:
    """Community chat room: the newest CHAT_PAGE_SIZE messages, oldest first."""

    def __init__(self, store: DocumentStore, auth: AuthSession, page_size: int = CHAT_PAGE_SIZE):
        self._store = store
        self._auth = auth
        self._page_size = page_size

        self._messages: List[ChatMessage] = []
        self._new_message_text = ""
        self._is_sending = False
        self._error_message: Optional[str] = None

        self._stream: Optional[CollectionStream] = None
        self._listeners: List[Callable[[ChatState], None]] = []

    @property
    def state(self) -> ChatState:
        return ChatState(
            messages=tuple(self._messages),
            new_message_text=self._new_message_text,
            is_sending=self._is_sending,
            error_message=self._error_message,
        )

    def subscribe(self, listener: Callable[[ChatState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _publish(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Chat state listener failed")

    def _fail(self, error: CommunityError) -> None:
        self._error_message = error.message
        self._publish()

    def set_draft(self, text: str) -> None:
        self._new_message_text = text
        self._publish()

    # Live updates ordered by timestamp
    async def listen_for_messages(self) -> None:
        previous, self._stream = self._stream, None
        if previous is not None:
            previous.cancel()
        self._stream = CollectionStream(
            self._store, paths.MESSAGES, chat_ordering(self._page_size),
            on_snapshot=self._on_snapshot,
            on_error=self._fail,
        ).start()
        if previous is not None:
            await previous.aclose()

    def _on_snapshot(self, docs: List[DocumentSnapshot]) -> None:
        self._messages = [m for m in (ChatMessage.from_snapshot(d) for d in docs) if m is not None]
        self._publish()

    async def send_message(self, display_name_fallback: Optional[str] = None) -> Optional[str]:
        principal = self._auth.current_principal()
        if principal is None:
            self._fail(Unauthenticated("You must be signed in to send messages."))
            return None
        if not self._new_message_text.strip():
            return None

        self._is_sending = True
        self._error_message = None
        self._publish()
        sender_name = principal.display_name or display_name_fallback or DEFAULT_AUTHOR_NAME
        try:
            message_id = await mutations.send_message(self._store, principal, sender_name, self._new_message_text)
        except CommunityError as e:
            self._is_sending = False
            self._fail(e)
            return None
        self._is_sending = False
        self._new_message_text = ""
        self._publish()
        return message_id

    async def close(self) -> None:
        previous, self._stream = self._stream, None
        if previous is not None:
            await previous.aclose()
        self._listeners.clear()
