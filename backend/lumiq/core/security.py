"""
Caller identity from bearer tokens.

Tokens are issued by the platform's auth service; this module only verifies
them and turns the claims into an explicit `Caller` that routes hand to the
service layer. `create_access_token` exists for tooling and tests.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from lumiq.core.config import get_settings
from lumiq.core.exceptions import AccessDenied, NotAuthenticated

settings = get_settings()

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_caller(token: str) -> Caller:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise NotAuthenticated("Invalid or expired token")

    subject = payload.get("sub")
    role = payload.get("role")
    if subject is None or role not in (ROLE_STUDENT, ROLE_ADMIN):
        raise NotAuthenticated("Token is missing subject or role")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise NotAuthenticated("Token subject is not a user id")
    return Caller(user_id=user_id, role=role)


async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Caller:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise NotAuthenticated()
    return decode_caller(credentials.credentials)


async def get_current_student(caller: Caller = Depends(get_current_caller)) -> Caller:
    if caller.role != ROLE_STUDENT:
        raise AccessDenied("Student access required")
    return caller
