from typing import List

from fastapi import APIRouter, Depends

from ..controllers.chat_controller import CHAT_PAGE_SIZE, chat_ordering
from ..controllers.community_controller import to_http_error
from ..db import paths
from ..db.mongo import get_document_store
from ..db.store import DocumentStore
from ..models.auth import Principal
from ..models.community_model import DEFAULT_AUTHOR_NAME, ChatMessage
from ..schemas.chat import MessageCreateRequest
from ..schemas.community_schema import CreatedResponse
from ..services import mutations
from ..utils.auth_utils import get_current_principal
from ..utils.errors import CommunityError, remote_call

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.get("/messages", response_model=List[ChatMessage])
async def recent_messages(
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_principal),  # ✅ Secure route
):
    try:
        docs = await remote_call(store.query(paths.MESSAGES, chat_ordering(CHAT_PAGE_SIZE)), "load messages")
    except CommunityError as e:
        raise to_http_error(e)
    return [m for m in (ChatMessage.from_snapshot(d) for d in docs) if m is not None]


@router.post("/messages", response_model=CreatedResponse)
async def post_message(
    request: MessageCreateRequest,
    store: DocumentStore = Depends(get_document_store),
    current_user: Principal = Depends(get_current_principal),
):
    sender_name = current_user.display_name or request.display_name_fallback or DEFAULT_AUTHOR_NAME
    try:
        message_id = await mutations.send_message(store, current_user, sender_name, request.text)
    except CommunityError as e:
        raise to_http_error(e)
    return CreatedResponse(id=message_id)
