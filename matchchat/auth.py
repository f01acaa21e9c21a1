"""
Caller-identity boundary.

Tokens are issued by the identity service; this module only decodes them.
The ``sub`` claim carries the user id.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from matchchat.config import settings
from matchchat.errors import AuthenticationMissing

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
    return jwt.encode({"sub": str(user_id), "exp": expire}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_user_id_from_token(token: Optional[str]) -> str:
    if not token:
        raise AuthenticationMissing("Token required")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise AuthenticationMissing("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationMissing("Invalid token")
    return str(user_id)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None:
        raise AuthenticationMissing("User not authenticated")
    return get_user_id_from_token(credentials.credentials)
