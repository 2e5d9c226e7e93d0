# breathewell/db/paths.py
POSTS = "posts"
MESSAGES = "messages"

LIKE_KEY_SEPARATOR = "#"


def post_path(post_id: str) -> str:
    return f"{POSTS}/{post_id}"


def comments_path(post_id: str) -> str:
    return f"{post_path(post_id)}/comments"


def comment_path(post_id: str, comment_id: str) -> str:
    return f"{comments_path(post_id)}/{comment_id}"


def likes_path(item_path: str) -> str:
    return f"{item_path}/likes"


def like_path(item_path: str, uid: str) -> str:
    return f"{likes_path(item_path)}/{uid}"


def comment_like_key(post_id: str, comment_id: str) -> str:
    # comment likes are scoped per post, so the key carries both ids
    return f"{post_id}{LIKE_KEY_SEPARATOR}{comment_id}"
