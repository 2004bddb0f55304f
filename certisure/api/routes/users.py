from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.routes.organizations import organization_response
from certisure.api.routes.team import user_response
from certisure.core.auth import AuthContext, require_auth_context
from certisure.core.db import get_db_session
from certisure.core.organizations import OrganizationService
from certisure.core.team import TeamService
from certisure.schemas.users import CurrentUserResponse, UserResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> CurrentUserResponse:
    user = await TeamService(session, auth.scope()).current_user()
    organization = None
    if auth.org_id is not None:
        organization = organization_response(await OrganizationService(session, auth.scope()).current())
    return CurrentUserResponse(user=user_response(user), organization=organization)


@router.get("", response_model=list[UserResponse])
async def list_users(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> list[UserResponse]:
    users = await TeamService(session, auth.scope()).list_users(limit=limit, offset=offset)
    return [user_response(user) for user in users]
