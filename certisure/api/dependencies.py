from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.audit import Actor, AuditSink
from certisure.core.auth import AuthContext, require_auth_context
from certisure.core.db import get_db_session
from certisure.core.entitlements import CapabilitySet, capabilities_for
from certisure.core.notifications import NotificationDispatcher
from certisure.core.plans import PlanRegistry, default_plan_cache
from certisure.core.repositories.organizations import OrganizationRepository
from certisure.models.organization import Organization


def get_audit_sink() -> AuditSink:
    return AuditSink()


def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher()


async def get_plan_registry(session: AsyncSession = Depends(get_db_session)) -> PlanRegistry:
    return PlanRegistry(session, cache=default_plan_cache())


async def get_current_organization(
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> Organization:
    if auth.org_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: missing organization context",
        )

    organization = await OrganizationRepository(session, auth.scope()).get_current()
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found",
        )
    return organization


async def get_capabilities(
    organization: Organization = Depends(get_current_organization),
    registry: PlanRegistry = Depends(get_plan_registry),
) -> CapabilitySet:
    return await capabilities_for(organization, registry)


async def request_actor(
    request: Request,
    auth: AuthContext = Depends(require_auth_context),
) -> Actor:
    return Actor(
        user_id=auth.user_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
