"""Bearer-token identity resolution.

Tokens are issued by the external auth provider; we only verify the signature
and map the `email` claim onto a `User` row.
"""
from __future__ import annotations

import logging

from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import require_user
from realm_sync.config import settings
from realm_sync.db import get_session
from realm_sync.models.user import User

logger = logging.getLogger(__name__)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def create_access_token(email: str, **claims) -> str:
    """Used by tests and local tooling; production tokens come from the provider."""
    payload = {"email": email, **claims}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Resolve the caller, or `None` when there is no valid identity."""
    token = _bearer_token(request)
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except JWTError:
        logger.info("Rejected bearer token with invalid signature or claims")
        return None

    email = (payload.get("email") or "").strip().lower()
    if not email:
        return None
    return (await db.execute(select(User).where(User.email == email))).scalar()


async def get_current_user(user: User | None = Depends(get_current_user_optional)) -> User:
    return require_user(user)
