# breathewell/schemas/community_schema.py
from pydantic import BaseModel
from typing import FrozenSet, List, Optional, Tuple

from ..models.community_model import ForumComment, ForumPost


class PostCreateRequest(BaseModel):
    title: str
    body: str


class CommentCreateRequest(BaseModel):
    body: str


class CreatedResponse(BaseModel):
    id: str


class LikeToggleResponse(BaseModel):
    liked: bool
    like_count: int


class LikedStatusResponse(BaseModel):
    # post ids, or "postId#commentId" keys for comments
    liked: List[str] = []


# Immutable view of a forum screen, pushed to clients on every change
class ForumState(BaseModel):
    posts: Tuple[ForumPost, ...] = ()
    comments: Tuple[ForumComment, ...] = ()
    liked_posts: FrozenSet[str] = frozenset()
    liked_comments: FrozenSet[str] = frozenset()
    current_post_id: Optional[str] = None
    new_post_title: str = ""
    new_post_body: str = ""
    new_comment_body: str = ""
    error_message: Optional[str] = None

    model_config = {"frozen": True}
