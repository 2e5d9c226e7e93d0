# breathewell/routes/profile.py
from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorCollection

from ..controllers.profile_controller import get_my_profile
from ..db.mongo import get_profiles_collection
from ..models.auth import Principal, Profile
from ..utils.auth_utils import get_current_principal

router = APIRouter(prefix="/profile", tags=["Profile"])


# ✅ Resolve (or lazily create) the caller's profile
@router.get("/me", response_model=Profile, response_model_by_alias=False, summary="Get my profile")
async def read_my_profile(
    profiles: AsyncIOMotorCollection = Depends(get_profiles_collection),
    current_user: Principal = Depends(get_current_principal),
):
    return await get_my_profile(profiles, current_user)
