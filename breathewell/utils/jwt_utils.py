from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt

from .auth_utils import ALGORITHM, SECRET_KEY


def create_jwt_token(data: dict, expires_delta: timedelta = timedelta(days=7), secret: Optional[str] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret or SECRET_KEY, algorithm=ALGORITHM)
