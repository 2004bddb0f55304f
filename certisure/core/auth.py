from __future__ import annotations

import time
from dataclasses import dataclass, field
from uuid import UUID

import requests
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.config import settings
from certisure.core.db import get_db_session
from certisure.core.repositories.users import UserRepository
from certisure.core.tenancy import ROLE_SUPER_ADMIN, ROLE_TEAM_MEMBER, TenantScope

bearer_scheme = HTTPBearer(auto_error=True)


@dataclass(slots=True)
class AuthContext:
    org_id: UUID | None
    user_id: UUID | None
    role: str
    subject: str
    claims: dict = field(default_factory=dict)

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def scope(self) -> TenantScope:
        return TenantScope(org_id=self.org_id, role=self.role, user_id=self.user_id)


class JwksCache:
    def __init__(self, ttl_seconds: int = 300) -> None:
        self.ttl_seconds = ttl_seconds
        self._jwks: dict | None = None
        self._fetched_at = 0.0

    def get(self, url: str) -> dict:
        now = time.time()
        if self._jwks is None or (now - self._fetched_at) > self.ttl_seconds:
            response = requests.get(url, timeout=5)
            response.raise_for_status()
            self._jwks = response.json()
            self._fetched_at = now
        return self._jwks


jwks_cache = JwksCache()


def _get_signing_key(token: str) -> dict:
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication header",
        ) from exc

    kid = unverified_header.get("kid")
    if not kid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="JWT is missing key id",
        )

    jwks = jwks_cache.get(settings.auth_jwks_url)
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No matching signing key found",
    )


def decode_access_token(token: str) -> dict:
    key = _get_signing_key(token)

    options = {"verify_aud": bool(settings.auth_audience)}
    try:
        return jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            issuer=settings.auth_issuer,
            audience=settings.auth_audience or None,
            options=options,
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from exc


def _parse_uuid(value: object, claim: str) -> UUID | None:
    if value in (None, ""):
        return None
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Token claim '{claim}' is malformed",
        ) from exc


def _subject_uuid(subject: str) -> UUID | None:
    try:
        return UUID(str(subject))
    except ValueError:
        return None


def _is_super_admin(claims: dict) -> bool:
    return claims.get("role") == ROLE_SUPER_ADMIN or claims.get("sub") in settings.super_admin_subjects()


async def require_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> AuthContext:
    claims = decode_access_token(credentials.credentials)

    subject = claims.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is missing required claims",
        )

    org_id = _parse_uuid(claims.get("org_id"), "org_id")
    user_id = _parse_uuid(claims.get("user_id"), "user_id") or _subject_uuid(subject)

    if _is_super_admin(claims):
        context = AuthContext(
            org_id=org_id,
            user_id=user_id,
            role=ROLE_SUPER_ADMIN,
            subject=subject,
            claims=claims,
        )
    else:
        if org_id is None or user_id is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Unauthorized: missing organization context",
            )

        scope = TenantScope(org_id=org_id, role=claims.get("role") or ROLE_TEAM_MEMBER, user_id=user_id)
        user = await UserRepository(session, scope).get_active_member(user_id)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User is not an active member of this organization",
            )

        context = AuthContext(
            org_id=org_id,
            user_id=user.id,
            role=user.role,
            subject=subject,
            claims=claims,
        )

    request.state.org_id = context.org_id
    request.state.auth_claims = claims
    request.state.user_subject = subject
    return context


async def require_super_admin(auth: AuthContext = Depends(require_auth_context)) -> AuthContext:
    if not auth.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super administrator role required",
        )
    return auth
