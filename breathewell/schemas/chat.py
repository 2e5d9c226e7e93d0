from pydantic import BaseModel
from typing import Optional, Tuple

from ..models.community_model import ChatMessage


class MessageCreateRequest(BaseModel):
    text: str
    display_name_fallback: Optional[str] = None


class ChatState(BaseModel):
    messages: Tuple[ChatMessage, ...] = ()
    new_message_text: str = ""
    is_sending: bool = False
    error_message: Optional[str] = None

    model_config = {"frozen": True}
