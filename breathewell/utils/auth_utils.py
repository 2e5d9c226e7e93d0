# breathewell/utils/auth_utils.py
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from ..models.auth import Principal

load_dotenv()

# ------------------------------------------------------------------
# Config
# ------------------------------------------------------------------
# Support either JWT_SECRET_KEY or JWT_SECRET (fallback)
SECRET_KEY = os.getenv("JWT_SECRET_KEY") or os.getenv("JWT_SECRET") or ""
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Bearer scheme for typical HTTP routes
bearer_scheme = HTTPBearer(auto_error=True)


def principal_from_token(token: Optional[str]) -> Optional[Principal]:
    """
    Decode a bearer JWT into the signed-in principal, or None if it is missing/invalid.
    Accepts the uid under `user_id` or `sub`; `name` and `email` are optional claims.
    """
    if not token or not SECRET_KEY:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    uid = payload.get("user_id") or payload.get("sub")
    if not uid:
        return None
    return Principal(uid=str(uid), display_name=payload.get("name"), email=payload.get("email"))


# ------------------------------------------------------------------
# Public dependencies
# ------------------------------------------------------------------
async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Principal:
    """
    Validates the Bearer JWT and returns the principal it names.
    """
    if not SECRET_KEY:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="JWT secret not configured.")

    principal = principal_from_token(credentials.credentials)
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token.")
    return principal
