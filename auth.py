"""
Identity context.

Bearer tokens carry `{"user": {"_id": ..., "isInternal": ...}}`. They are
decoded into an Identity; a request without an Authorization header is
anonymous (identity None). Operations that need a user are wrapped with
`requires_identity`.
"""

import functools
import os
from dataclasses import dataclass
from typing import Optional

from bson import ObjectId
from fastapi import Header
from jose import JWTError, jwt

from errors import ERROR_INVALID_TOKEN, ERROR_UNAUTHENTICATED, Unauthenticated

# JWT Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")


@dataclass(frozen=True)
class Identity:
    id: ObjectId
    is_internal: bool = False


def decode_token(token: str) -> Identity:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthenticated(ERROR_INVALID_TOKEN)
    user = payload.get("user") or {}
    user_id = user.get("_id")
    if not user_id or not ObjectId.is_valid(user_id):
        raise Unauthenticated(ERROR_INVALID_TOKEN)
    return Identity(id=ObjectId(user_id), is_internal=bool(user.get("isInternal", False)))


def get_identity(authorization: Optional[str] = Header(default=None)) -> Optional[Identity]:
    """FastAPI dependency: the caller's identity, or None when anonymous."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthenticated(ERROR_INVALID_TOKEN)
    return decode_token(token)


def requires_identity(method):
    """
    Guard for service methods taking `(self, identity, ...)`.

    Fails with Unauthenticated before the wrapped method runs, so no write
    can happen for an anonymous caller.
    """

    @functools.wraps(method)
    async def wrapper(self, identity: Optional[Identity], *args, **kwargs):
        if identity is None:
            raise Unauthenticated(ERROR_UNAUTHENTICATED)
        return await method(self, identity, *args, **kwargs)

    return wrapper
