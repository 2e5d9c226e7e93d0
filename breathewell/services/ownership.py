# breathewell/services/ownership.py
from __future__ import annotations

from typing import Optional

from ..models.community_model import Authorship


def can_delete(authorship: Authorship, principal_uid: Optional[str], display_name: Optional[str]) -> bool:
    """
    May the signed-in user delete a post/comment written by `authorship`?

    Author id match wins. Rows that predate author ids (blank `author_id`) fall
    back to comparing the stored author name with the user's resolved display
    name. Anyone else is denied. This only drives what the client offers; the
    delete path checks again against the stored row.
    """
    if not principal_uid:
        return False
    if not authorship.is_legacy:
        return authorship.author_id == principal_uid
    return bool(display_name) and authorship.author_name == display_name
