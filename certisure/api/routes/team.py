from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.dependencies import get_audit_sink, get_capabilities, get_current_organization, request_actor
from certisure.core.audit import Actor, AuditSink
from certisure.core.auth import AuthContext, require_auth_context
from certisure.core.db import get_db_session
from certisure.core.entitlements import CapabilitySet
from certisure.core.team import TeamMemberInput, TeamService
from certisure.models.organization import Organization
from certisure.models.user import User
from certisure.schemas.users import TeamMemberCreateRequest, TeamResponse, TeamSummary, UserResponse

router = APIRouter(prefix="/team", tags=["team"])


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        org_id=user.org_id,
        name=user.name,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        created_at=getattr(user, "created_at", None),
    )


@router.get("", response_model=TeamResponse)
async def list_team(
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
) -> TeamResponse:
    roster = await TeamService(session, auth.scope().pinned(organization.id)).roster(capabilities)
    return TeamResponse(
        members=[user_response(member) for member in roster.members],
        team=TeamSummary(
            organization_name=organization.name,
            subscription_plan=organization.subscription_plan,
            max_team_members=roster.max_team_members,
            active_count=roster.active_count,
        ),
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def add_team_member(
    payload: TeamMemberCreateRequest,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> UserResponse:
    service = TeamService(session, auth.scope().pinned(organization.id), audit=audit)
    member = await service.add_member(
        organization,
        capabilities,
        TeamMemberInput(name=payload.name, email=payload.email),
        actor=actor,
    )
    return user_response(member)
