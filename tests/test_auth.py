from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from jose import JWTError

from certisure.core.auth import (
    AuthContext,
    JwksCache,
    _get_signing_key,
    _is_super_admin,
    decode_access_token,
    require_auth_context,
    require_super_admin,
)
from certisure.core.tenancy import ROLE_ORG_ADMIN, ROLE_SUPER_ADMIN


def _ctx(role: str = ROLE_ORG_ADMIN) -> AuthContext:
    return AuthContext(org_id=uuid4(), user_id=uuid4(), role=role, subject="user_1")


def _request() -> SimpleNamespace:
    return SimpleNamespace(state=SimpleNamespace())


class _Members:
    """Stands in for UserRepository; remembers the scope it was built with."""

    user: SimpleNamespace | None = None
    scopes: list = []

    def __init__(self, session, scope) -> None:  # noqa: ANN001
        _Members.scopes.append(scope)

    async def get_active_member(self, user_id):  # noqa: ANN001, ANN201
        return _Members.user


@pytest.fixture
def members(monkeypatch: pytest.MonkeyPatch) -> type[_Members]:
    from certisure.core import auth

    _Members.user = None
    _Members.scopes = []
    monkeypatch.setattr(auth, "UserRepository", _Members)
    return _Members


def test_is_super_admin_by_subject(monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.core import auth

    monkeypatch.setattr(auth.settings, "super_admin_subjects_csv", "boss, other")
    assert _is_super_admin({"sub": "boss"}) is True
    assert _is_super_admin({"sub": "someone"}) is False


def test_is_super_admin_by_role_claim(monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.core import auth

    monkeypatch.setattr(auth.settings, "super_admin_subjects_csv", "")
    assert _is_super_admin({"sub": "x", "role": ROLE_SUPER_ADMIN}) is True
    assert _is_super_admin({"sub": "x", "role": ROLE_ORG_ADMIN}) is False


@pytest.mark.asyncio
async def test_require_super_admin_allows_super_admin() -> None:
    ctx = _ctx(ROLE_SUPER_ADMIN)
    assert await require_super_admin(ctx) is ctx


@pytest.mark.asyncio
async def test_require_super_admin_blocks_org_admin() -> None:
    with pytest.raises(HTTPException) as exc:
        await require_super_admin(_ctx())
    assert exc.value.status_code == 403


def test_scope_carries_org_and_role() -> None:
    ctx = _ctx()
    scope = ctx.scope()

    assert scope.org_id == ctx.org_id
    assert scope.role == ROLE_ORG_ADMIN
    assert scope.is_super_admin is False


def test_get_signing_key_missing_kid(monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.core import auth

    monkeypatch.setattr(auth.jwt, "get_unverified_header", lambda token: {})
    with pytest.raises(HTTPException) as exc:
        _get_signing_key("token")
    assert exc.value.status_code == 401


def test_get_signing_key_returns_matching_key(monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.core import auth

    monkeypatch.setattr(auth.jwt, "get_unverified_header", lambda token: {"kid": "abc"})
    monkeypatch.setattr(auth.jwks_cache, "get", lambda url: {"keys": [{"kid": "zzz"}, {"kid": "abc", "kty": "RSA"}]})
    assert _get_signing_key("token")["kid"] == "abc"


def test_get_signing_key_no_matching_key(monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.core import auth

    monkeypatch.setattr(auth.jwt, "get_unverified_header", lambda token: {"kid": "abc"})
    monkeypatch.setattr(auth.jwks_cache, "get", lambda url: {"keys": [{"kid": "zzz"}]})
    with pytest.raises(HTTPException) as exc:
        _get_signing_key("token")
    assert exc.value.status_code == 401


def test_decode_access_token_invalid(monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.core import auth

    monkeypatch.setattr(auth, "_get_signing_key", lambda token: {"kid": "abc"})

    def _boom(*args, **kwargs):  # noqa: ANN002, ANN003
        raise JWTError("bad token")

    monkeypatch.setattr(auth.jwt, "decode", _boom)
    with pytest.raises(HTTPException) as exc:
        decode_access_token("token")
    assert exc.value.status_code == 401


def test_jwks_cache_fetches_and_reuses(monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.core import auth

    calls = {"count": 0}

    class _Resp:
        def raise_for_status(self) -> None:
            return None

        def json(self) -> dict:
            return {"keys": [{"kid": "a"}]}

    def _get(url: str, timeout: int):  # noqa: ANN001
        calls["count"] += 1
        return _Resp()

    cache = JwksCache(ttl_seconds=300)
    monkeypatch.setattr(auth.requests, "get", _get)
    monkeypatch.setattr(auth.time, "time", lambda: 1000.0)

    assert cache.get("https://jwks.example") == cache.get("https://jwks.example")
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_require_auth_context_uses_member_role(monkeypatch: pytest.MonkeyPatch, members) -> None:  # noqa: ANN001
    from certisure.core import auth

    org_id, user_id = uuid4(), uuid4()
    members.user = SimpleNamespace(id=user_id, role=ROLE_ORG_ADMIN)
    monkeypatch.setattr(
        auth,
        "decode_access_token",
        lambda _token: {"sub": str(user_id), "org_id": str(org_id), "role": "TEAM_MEMBER"},
    )

    request = _request()
    context = await require_auth_context(request, SimpleNamespace(credentials="jwt"), object())

    assert context.org_id == org_id
    assert context.role == ROLE_ORG_ADMIN
    assert members.scopes[0].org_id == org_id
    assert request.state.org_id == org_id
    assert request.state.user_subject == str(user_id)


@pytest.mark.asyncio
async def test_require_auth_context_rejects_missing_org(monkeypatch: pytest.MonkeyPatch, members) -> None:  # noqa: ANN001
    from certisure.core import auth

    monkeypatch.setattr(auth.settings, "super_admin_subjects_csv", "")
    monkeypatch.setattr(auth, "decode_access_token", lambda _token: {"sub": str(uuid4())})

    with pytest.raises(HTTPException) as exc:
        await require_auth_context(_request(), SimpleNamespace(credentials="jwt"), object())
    assert exc.value.status_code == 403
    assert members.scopes == []


@pytest.mark.asyncio
async def test_require_auth_context_rejects_inactive_member(monkeypatch: pytest.MonkeyPatch, members) -> None:  # noqa: ANN001
    from certisure.core import auth

    monkeypatch.setattr(
        auth,
        "decode_access_token",
        lambda _token: {"sub": str(uuid4()), "org_id": str(uuid4())},
    )

    with pytest.raises(HTTPException) as exc:
        await require_auth_context(_request(), SimpleNamespace(credentials="jwt"), object())
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_require_auth_context_rejects_malformed_org(monkeypatch: pytest.MonkeyPatch, members) -> None:  # noqa: ANN001
    from certisure.core import auth

    monkeypatch.setattr(auth, "decode_access_token", lambda _token: {"sub": str(uuid4()), "org_id": "org_123"})

    with pytest.raises(HTTPException) as exc:
        await require_auth_context(_request(), SimpleNamespace(credentials="jwt"), object())
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_super_admin_skips_membership_lookup(monkeypatch: pytest.MonkeyPatch, members) -> None:  # noqa: ANN001
    from certisure.core import auth

    monkeypatch.setattr(auth.settings, "super_admin_subjects_csv", "boss")
    monkeypatch.setattr(auth, "decode_access_token", lambda _token: {"sub": "boss"})

    context = await require_auth_context(_request(), SimpleNamespace(credentials="jwt"), object())

    assert context.is_super_admin is True
    assert context.org_id is None
    assert context.user_id is None
    assert members.scopes == []
