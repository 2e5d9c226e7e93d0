# breathewell/services/socket_manager.py
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs

import socketio
from dotenv import load_dotenv

from ..controllers.chat_controller import ChatScreen
from ..controllers.forum_controller import ForumScreen
from ..db.mongo import get_document_store, get_profiles_collection
from ..models.auth import Principal, Profile
from ..utils.auth_utils import principal_from_token
from ..utils.errors import CommunityError
from .auth_session import AuthSession
from .identity import IdentityResolver
from .notify import emit_to_sid_bg

load_dotenv()

logger = logging.getLogger(__name__)

# ------------------------
# Config
# ------------------------
# Comma-separated list of origins, e.g. "https://breathewell.app,https://admin.breathewell.app"
_raw_origins = os.getenv("SOCKETIO_CORS_ORIGINS", "*").strip()
if _raw_origins == "*" or not _raw_origins:
    CORS_ORIGINS = "*"
else:
    CORS_ORIGINS = [o.strip() for o in _raw_origins.split(",") if o.strip()]

# Use this when mounting ASGIApp in main.py:
#   app = socketio.ASGIApp(sio, other_asgi_app=fastapi_app, socketio_path=SOCKETIO_PATH.lstrip('/'))
SOCKETIO_PATH = os.getenv("SOCKETIO_PATH", "/socket.io")

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=CORS_ORIGINS,
    ping_interval=25,
    ping_timeout=60,
)


# ------------------------
# Per-connection screens
# ------------------------
@dataclass
class ClientSession:
    auth: AuthSession
    forum: ForumScreen
    chat: ChatScreen
    unsubscribers: List[Callable[[], None]] = field(default_factory=list)

    async def close(self) -> None:
        for remove in self.unsubscribers:
            remove()
        await self.forum.close()
        await self.chat.close()


sessions: Dict[str, ClientSession] = {}
_resolver: Optional[IdentityResolver] = None


def _get_resolver() -> IdentityResolver:
    # one resolver per process so per-uid locks are shared across sockets
    global _resolver
    if _resolver is None:
        _resolver = IdentityResolver(get_profiles_collection())
    return _resolver


def open_session(sid: str, principal: Optional[Principal]) -> ClientSession:
    store = get_document_store()
    auth = AuthSession(principal)
    session = ClientSession(auth=auth, forum=ForumScreen(store, auth), chat=ChatScreen(store, auth))

    def _set_profile(profile: Profile) -> None:
        session.forum.profile = profile

    session.unsubscribers.extend([
        session.forum.subscribe(lambda state: emit_to_sid_bg(sid, "forum_state", state.model_dump(mode="json"))),
        session.chat.subscribe(lambda state: emit_to_sid_bg(sid, "chat_state", state.model_dump(mode="json"))),
        _get_resolver().bind(auth, on_profile=_set_profile),
    ])
    sessions[sid] = session
    return session


def _get_token_from_environ(environ: dict) -> Optional[str]:
    # Authorization: Bearer <token>
    authz = environ.get("HTTP_AUTHORIZATION") or environ.get("Authorization")
    if authz and isinstance(authz, str):
        parts = authz.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]

    # Query string ?token=... or ?jwt=... or ?access_token=...
    qs = parse_qs(environ.get("QUERY_STRING", "") or "")
    for key in ("token", "jwt", "access_token"):
        vals = qs.get(key)
        if vals and vals[0]:
            return vals[0]
    return None


def _principal_from_connect(environ: dict, auth: Optional[dict]) -> Optional[Principal]:
    """
    Accept JWT from:
      1) JS-style auth dict: auth = {"token": "<JWT>"} or {"jwt": "<JWT>"}
      2) Authorization header: Bearer <JWT>
      3) Query string: ?token=... / ?jwt=... / ?access_token=...
    """
    if isinstance(auth, dict):
        principal = principal_from_token(auth.get("token") or auth.get("jwt"))
        if principal:
            return principal
    return principal_from_token(_get_token_from_environ(environ))


def _ok(**extra: Any) -> dict:
    return {"ok": True, **extra}


def _failed(session: ClientSession, reason: str) -> dict:
    return {"ok": False, "reason": reason, "error": session.forum.state.error_message}


def _refuse(sid: str, data: Any) -> Optional[dict]:
    """Ack for events that can't be handled: unknown sid or a non-object payload."""
    if sid not in sessions:
        return {"ok": False, "reason": "no_session"}
    if data is not None and not isinstance(data, dict):
        return {"ok": False, "reason": "bad_payload"}
    return None


# ------------------------
# Lifecycle events
# ------------------------
@sio.event
async def connect(sid, environ, auth):
    """
    Anonymous sockets may read the forum and chat; writes answer with an
    unauthenticated error until `sign_in` is sent with a valid token.
    """
    principal = _principal_from_connect(environ, auth)
    session = open_session(sid, principal)
    if principal is not None:
        try:
            session.forum.profile = await _get_resolver().ensure_profile(principal)
        except CommunityError as e:
            logger.warning("Profile lookup failed for %s: %s", principal.uid, e.message)
    logger.info("Socket %s connected (uid=%s)", sid, session.auth.uid)
    return True


@sio.event
async def disconnect(sid):
    session = sessions.pop(sid, None)
    if session is not None:
        await session.close()
    logger.info("Socket %s disconnected", sid)


@sio.on("sign_in")
async def sign_in(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    principal = principal_from_token((data or {}).get("token"))
    if principal is None:
        return {"ok": False, "reason": "invalid_token"}
    sessions[sid].auth.sign_in(principal)
    return _ok(uid=principal.uid)


@sio.on("sign_out")
async def sign_out(sid, data=None):
    refused = _refuse(sid, data)
    if refused:
        return refused
    session = sessions[sid]
    session.auth.sign_out()
    session.forum.profile = None
    return _ok()


# ------------------------
# Forum
# ------------------------
@sio.on("watch_posts")
async def watch_posts(sid, data=None):
    refused = _refuse(sid, data)
    if refused:
        return refused
    await sessions[sid].forum.start_listening_posts()
    return _ok()


@sio.on("watch_comments")
async def watch_comments(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    post_id = (data or {}).get("post_id")
    if not post_id:
        return {"ok": False, "reason": "missing_post_id"}
    await sessions[sid].forum.start_listening_comments(post_id)
    return _ok()


@sio.on("unwatch_comments")
async def unwatch_comments(sid, data=None):
    refused = _refuse(sid, data)
    if refused:
        return refused
    await sessions[sid].forum.stop_listening_comments()
    return _ok()


@sio.on("set_post_draft")
async def set_post_draft(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    data = data or {}
    sessions[sid].forum.set_post_draft(title=data.get("title"), body=data.get("body"))
    return _ok()


@sio.on("set_comment_draft")
async def set_comment_draft(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    sessions[sid].forum.set_comment_draft((data or {}).get("body") or "")
    return _ok()


@sio.on("create_post")
async def create_post(sid, data=None):
    """
    Posts the current draft; send `set_post_draft` first or include title/body here.
    """
    refused = _refuse(sid, data)
    if refused:
        return refused
    session, data = sessions[sid], data or {}
    if "title" in data or "body" in data:
        session.forum.set_post_draft(title=data.get("title"), body=data.get("body"))
    post_id = await session.forum.create_post()
    if post_id is None:
        return _failed(session, "not_created")
    return _ok(id=post_id)


@sio.on("add_comment")
async def add_comment(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    session, data = sessions[sid], data or {}
    post_id = data.get("post_id") or session.forum.state.current_post_id
    if not post_id:
        return {"ok": False, "reason": "missing_post_id"}
    comment_id = await session.forum.add_comment(post_id, data.get("body"))
    if comment_id is None:
        return _failed(session, "not_created")
    return _ok(id=comment_id)


@sio.on("delete_post")
async def delete_post(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    session = sessions[sid]
    post_id = (data or {}).get("post_id")
    if not post_id:
        return {"ok": False, "reason": "missing_post_id"}
    if not await session.forum.delete_post(post_id):
        return _failed(session, "not_deleted")
    return _ok()


@sio.on("delete_comment")
async def delete_comment(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    session, data = sessions[sid], data or {}
    post_id, comment_id = data.get("post_id"), data.get("comment_id")
    if not post_id or not comment_id:
        return {"ok": False, "reason": "missing_ids"}
    if not await session.forum.delete_comment(post_id, comment_id):
        return _failed(session, "not_deleted")
    return _ok()


@sio.on("toggle_post_like")
async def toggle_post_like(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    session = sessions[sid]
    post_id = (data or {}).get("post_id")
    if not post_id:
        return {"ok": False, "reason": "missing_post_id"}
    liked = await session.forum.toggle_post_like(post_id)
    if liked is None:
        return _failed(session, "toggle_failed")
    return _ok(liked=liked)


@sio.on("toggle_comment_like")
async def toggle_comment_like(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    session, data = sessions[sid], data or {}
    post_id, comment_id = data.get("post_id"), data.get("comment_id")
    if not post_id or not comment_id:
        return {"ok": False, "reason": "missing_ids"}
    liked = await session.forum.toggle_comment_like(post_id, comment_id)
    if liked is None:
        return _failed(session, "toggle_failed")
    return _ok(liked=liked)


# ------------------------
# Chat
# ------------------------
@sio.on("watch_chat")
async def watch_chat(sid, data=None):
    refused = _refuse(sid, data)
    if refused:
        return refused
    await sessions[sid].chat.listen_for_messages()
    return _ok()


@sio.on("set_message_draft")
async def set_message_draft(sid, data):
    refused = _refuse(sid, data)
    if refused:
        return refused
    sessions[sid].chat.set_draft((data or {}).get("text") or "")
    return _ok()


@sio.on("send_message")
async def send_message(sid, data=None):
    refused = _refuse(sid, data)
    if refused:
        return refused
    session, data = sessions[sid], data or {}
    if data.get("text") is not None:
        session.chat.set_draft(data["text"])
    message_id = await session.chat.send_message(data.get("display_name_fallback"))
    if message_id is None:
        return {"ok": False, "reason": "not_sent", "error": session.chat.state.error_message}
    return _ok(id=message_id)


__all__ = ["sio", "sessions", "open_session", "SOCKETIO_PATH"]
