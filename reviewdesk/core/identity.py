"""Identity resolution: turn an inbound request into a durable principal.

Resolution fails closed. Any failure while looking up the session (Redis
unreachable, malformed token, bad signature, database error, unknown user)
yields ``None``, exactly like a request without a session, and never a 5xx.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

import redis.asyncio as redis
from fastapi import Depends, Request
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.config import settings
from reviewdesk.core.db import get_db_session
from reviewdesk.core.errors import Unauthenticated
from reviewdesk.models.user import User

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Principal:
    user_id: UUID
    email: str


class IdentityResolver:
    def __init__(self, session: AsyncSession, redis_client: redis.Redis | None = None) -> None:
        self.session = session
        self._redis = redis_client

    async def resolve(self, request: Request) -> Principal | None:
        try:
            user_id = await self._resolve_user_id(request)
            if user_id is None:
                return None
            user = await self.session.scalar(select(User).where(User.id == user_id))
        except Exception:
            logger.warning("Identity resolution failed, treating request as unauthenticated", exc_info=True)
            return None

        if user is None:
            return None
        return Principal(user_id=user.id, email=user.email)

    async def _resolve_user_id(self, request: Request) -> UUID | None:
        session_token = request.cookies.get(settings.session_cookie_name)
        if session_token:
            return await self._user_id_from_session(session_token)

        scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return self._user_id_from_jwt(credentials.strip())
        return None

    async def _user_id_from_session(self, token: str) -> UUID | None:
        redis_client = self._redis or redis.from_url(settings.redis_url, decode_responses=True)
        try:
            value = await redis_client.get(f"{settings.session_key_prefix}{token}")
        finally:
            if self._redis is None:
                await redis_client.aclose()
        return UUID(value) if value else None

    def _user_id_from_jwt(self, token: str) -> UUID | None:
        if not settings.session_jwt_secret:
            return None
        claims = jwt.decode(
            token,
            settings.session_jwt_secret,
            algorithms=[settings.session_jwt_algorithm],
        )
        subject = claims.get("sub")
        return UUID(subject) if subject else None


async def get_current_principal(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> Principal | None:
    return await IdentityResolver(session).resolve(request)


async def require_principal(
    principal: Principal | None = Depends(get_current_principal),
) -> Principal:
    if principal is None:
        raise Unauthenticated()
    return principal
