# breathewell/models/auth.py
from pydantic import BaseModel, Field
from typing import Optional
from bson import ObjectId
from typing_extensions import Annotated
from pydantic.functional_validators import BeforeValidator

from .community_model import DEFAULT_AVATAR

# ✅ Converts ObjectId to string before validation
PyObjectId = Annotated[str, BeforeValidator(lambda x: str(x))]


class Principal(BaseModel):
    """The signed-in user as the auth provider reports it."""
    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None

    model_config = {"frozen": True}


class Profile(BaseModel):
    id: Optional[PyObjectId] = Field(alias="_id", default=None)

    # Identity
    auth_uid: Optional[str] = None
    display_name: str = ""
    email: Optional[str] = None
    year_of_birth: Optional[int] = None
    diagnosis_notes: Optional[str] = None

    # Forum identity (SF Symbol name on the client)
    avatar_system_name: str = DEFAULT_AVATAR

    # Clinician (optional)
    clinician_name: Optional[str] = None
    clinic_name: Optional[str] = None

    # Medication defaults
    daily_tablets: int = 2
    daily_puffs: int = 2

    # Reminders
    notifications_enabled: bool = True
    reminder_hour: int = 18
    reminder_minute: int = 0

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
        "extra": "ignore",
    }


def default_profile_fields(principal: Principal) -> dict:
    """Fields for a brand-new profile linked to `principal`."""
    return Profile(
        auth_uid=principal.uid,
        display_name=principal.display_name or "",
        email=principal.email,
    ).model_dump(exclude={"id"})
