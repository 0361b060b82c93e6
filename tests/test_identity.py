from __future__ import annotations

from uuid import uuid4

import pytest
from jose import jwt
from starlette.requests import Request

from reviewdesk.core import identity
from reviewdesk.core.errors import Unauthenticated
from reviewdesk.core.identity import IdentityResolver, Principal, require_principal


def _request(headers: dict[str, str] | None = None) -> Request:
    raw = [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class _FakeRedis:
    def __init__(self, values: dict[str, str] | None = None, *, fail: bool = False) -> None:
        self.values = values or {}
        self.fail = fail

    async def get(self, key: str) -> str | None:
        if self.fail:
            raise ConnectionError("redis unavailable")
        return self.values.get(key)

    async def aclose(self) -> None:
        return None


@pytest.mark.asyncio
async def test_session_cookie_resolves_user(session, factory) -> None:  # noqa: ANN001
    user = await factory.user("Owner@Example.test")
    redis_client = _FakeRedis({"session:tok-1": str(user.id)})

    principal = await IdentityResolver(session, redis_client).resolve(
        _request({"Cookie": "session_token=tok-1"})
    )

    assert principal == Principal(user_id=user.id, email="owner@example.test")


@pytest.mark.asyncio
async def test_missing_session_is_unauthenticated(session) -> None:  # noqa: ANN001
    assert await IdentityResolver(session, _FakeRedis()).resolve(_request()) is None
    assert (
        await IdentityResolver(session, _FakeRedis()).resolve(_request({"Cookie": "session_token=nope"}))
        is None
    )


@pytest.mark.asyncio
async def test_session_store_failure_is_unauthenticated(session) -> None:  # noqa: ANN001
    resolver = IdentityResolver(session, _FakeRedis(fail=True))

    assert await resolver.resolve(_request({"Cookie": "session_token=tok-1"})) is None


@pytest.mark.asyncio
async def test_session_for_deleted_user_is_unauthenticated(session) -> None:  # noqa: ANN001
    redis_client = _FakeRedis({"session:tok-1": str(uuid4())})

    assert await IdentityResolver(session, redis_client).resolve(_request({"Cookie": "session_token=tok-1"})) is None


@pytest.mark.asyncio
async def test_bearer_token_resolves_user(session, factory, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    user = await factory.user()
    monkeypatch.setattr(identity.settings, "session_jwt_secret", "jwt-secret")
    token = jwt.encode({"sub": str(user.id)}, "jwt-secret", algorithm="HS256")

    principal = await IdentityResolver(session, _FakeRedis()).resolve(
        _request({"Authorization": f"Bearer {token}"})
    )

    assert principal is not None
    assert principal.user_id == user.id


@pytest.mark.asyncio
async def test_bearer_token_with_bad_signature_is_unauthenticated(
    session, factory, monkeypatch: pytest.MonkeyPatch  # noqa: ANN001
) -> None:
    user = await factory.user()
    monkeypatch.setattr(identity.settings, "session_jwt_secret", "jwt-secret")
    token = jwt.encode({"sub": str(user.id)}, "other-secret", algorithm="HS256")

    assert await IdentityResolver(session, _FakeRedis()).resolve(_request({"Authorization": f"Bearer {token}"})) is None
    assert await IdentityResolver(session, _FakeRedis()).resolve(_request({"Authorization": "Bearer garbage"})) is None


@pytest.mark.asyncio
async def test_bearer_token_ignored_without_secret(session, factory, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    user = await factory.user()
    monkeypatch.setattr(identity.settings, "session_jwt_secret", "")
    token = jwt.encode({"sub": str(user.id)}, "jwt-secret", algorithm="HS256")

    assert await IdentityResolver(session, _FakeRedis()).resolve(_request({"Authorization": f"Bearer {token}"})) is None


@pytest.mark.asyncio
async def test_require_principal() -> None:
    principal = Principal(user_id=uuid4(), email="a@example.test")
    assert await require_principal(principal) is principal

    with pytest.raises(Unauthenticated) as exc:
        await require_principal(None)
    assert exc.value.status_code == 401
    assert exc.value.headers == {"WWW-Authenticate": "Bearer"}
