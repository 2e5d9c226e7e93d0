# breathewell/controllers/profile_controller.py
from motor.motor_asyncio import AsyncIOMotorCollection

from ..models.auth import Principal, Profile
from ..services.identity import IdentityResolver
from ..utils.errors import CommunityError
from .community_controller import to_http_error


async def get_my_profile(profiles: AsyncIOMotorCollection, principal: Principal) -> Profile:
    """Resolve (or create) the caller's profile; safe to hit on every app launch."""
    try:
        return await IdentityResolver(profiles).ensure_profile(principal)
    except CommunityError as e:
        raise to_http_error(e)
