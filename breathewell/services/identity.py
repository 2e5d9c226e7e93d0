# breathewell/services/identity.py
from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument

from ..models.auth import Principal, Profile, default_profile_fields
from ..models.community_model import DEFAULT_AUTHOR_NAME, DEFAULT_AVATAR
from ..utils.errors import remote_call
from .auth_session import AuthSession

logger = logging.getLogger(__name__)

# profiles not yet tied to any auth uid (missing, null or empty)
_UNLINKED = {"$or": [{"auth_uid": None}, {"auth_uid": ""}]}


def _blank(value: Optional[str]) -> bool:
    return not (value or "").strip()


def effective_display_name(profile: Optional[Profile], principal: Optional[Principal]) -> str:
    """Name shown on new posts and used for legacy ownership matching."""
    if profile is not None and not _blank(profile.display_name):
        return profile.display_name
    if principal is not None:
        return principal.display_name or principal.email or DEFAULT_AUTHOR_NAME
    return DEFAULT_AUTHOR_NAME


def effective_avatar(profile: Optional[Profile]) -> str:
    return profile.avatar_system_name if profile is not None else DEFAULT_AVATAR


class IdentityResolver:
    """
    Makes sure exactly one local Profile exists per signed-in principal.

    Lookup order, first match wins:
      1) profile already linked to the auth uid (blank email/name get backfilled)
      2) legacy profile with the same email (case-insensitive) and no auth uid yet
      3) a fresh profile with defaults
    Safe to call on every sign-in/foreground; calls for the same uid are serialized.
    """

    def __init__(self, profiles: AsyncIOMotorCollection):
        self._profiles = profiles
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def ensure_profile(self, principal: Principal) -> Profile:
        uid = principal.uid
        lock = self._locks.setdefault(uid, asyncio.Lock())
        self._lock_users[uid] = self._lock_users.get(uid, 0) + 1
        try:
            async with lock:
                return await remote_call(self._resolve(principal), "load your profile")
        finally:
            # drop the lock once no call holds or waits on it
            self._lock_users[uid] -= 1
            if not self._lock_users[uid]:
                del self._lock_users[uid]
                del self._locks[uid]

    async def _resolve(self, principal: Principal) -> Profile:
        # 1) Exact match by auth uid
        existing = await self._profiles.find_one({"auth_uid": principal.uid})
        if existing:
            backfill = {}
            if _blank(existing.get("email")) and principal.email:
                backfill["email"] = principal.email
            if _blank(existing.get("display_name")) and principal.display_name:
                backfill["display_name"] = principal.display_name
            if backfill:
                await self._profiles.update_one({"_id": existing["_id"]}, {"$set": backfill})
                existing.update(backfill)
            return Profile.model_validate(existing)

        # 2) Legacy rows created before sign-in was linked: match by email
        if principal.email:
            updates = {"auth_uid": principal.uid}
            by_email = await self._profiles.find_one(
                {
                    "email": {"$regex": f"^{re.escape(principal.email)}$", "$options": "i"},
                    **_UNLINKED,
                }
            )
            if by_email:
                if _blank(by_email.get("display_name")) and principal.display_name:
                    updates["display_name"] = principal.display_name
                linked = await self._profiles.find_one_and_update(
                    {"_id": by_email["_id"], **_UNLINKED},
                    {"$set": updates},
                    return_document=ReturnDocument.AFTER,
                )
                if linked:
                    logger.info("Linked legacy profile %s to uid %s", linked["_id"], principal.uid)
                    return Profile.model_validate(linked)

        # 3) Brand-new profile; upsert keeps concurrent first sign-ins from duplicating
        fresh = default_profile_fields(principal)
        fresh.pop("auth_uid")  # comes from the upsert filter
        created = await self._profiles.find_one_and_update(
            {"auth_uid": principal.uid},
            {"$setOnInsert": fresh},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Created profile for uid %s", principal.uid)
        return Profile.model_validate(created)

    def bind(self, auth: AuthSession, on_profile: Optional[Callable[[Profile], None]] = None) -> Callable[[], None]:
        """Resolve the profile whenever `auth` signs someone in."""

        async def _on_change(principal: Optional[Principal]) -> None:
            if principal is None:
                return
            profile = await self.ensure_profile(principal)
            if on_profile is not None:
                on_profile(profile)

        return auth.on_auth_state_change(_on_change)
