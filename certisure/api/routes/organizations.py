from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.dependencies import get_audit_sink, get_plan_registry, request_actor
from certisure.core.audit import Actor, AuditSink
from certisure.core.auth import AuthContext, require_auth_context, require_super_admin
from certisure.core.db import get_db_session
from certisure.core.organizations import OrganizationProfileInput, OrganizationService
from certisure.core.plans import PlanRegistry
from certisure.models.organization import Organization
from certisure.schemas.organizations import (
    OrganizationProfileRequest,
    OrganizationResponse,
    SubscriptionRestartRequest,
)

router = APIRouter(prefix="/organizations", tags=["organizations"])


def organization_response(organization: Organization) -> OrganizationResponse:
    return OrganizationResponse(
        id=organization.id,
        name=organization.name,
        type=organization.type,
        email=organization.email,
        website=organization.website,
        logo=organization.logo,
        subscription_plan=organization.subscription_plan,
        plan_id=organization.plan_id,
        subscription_status=organization.subscription_status,
        payment_status=organization.payment_status,
        account_status=organization.account_status,
        subscription_start_date=organization.subscription_start_date,
        subscription_end_date=organization.subscription_end_date,
        monthly_certificate_limit=organization.monthly_certificate_limit,
        certificates_issued_this_month=organization.certificates_issued_this_month,
        certificate_prefixes=list(organization.certificate_prefixes or []),
        default_certificate_prefix=organization.default_certificate_prefix,
    )


@router.get("/me", response_model=OrganizationResponse)
async def get_my_organization(
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> OrganizationResponse:
    service = OrganizationService(session, auth.scope())
    return organization_response(await service.current())


@router.put("/me", response_model=OrganizationResponse)
async def update_my_organization(
    payload: OrganizationProfileRequest,
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> OrganizationResponse:
    service = OrganizationService(session, auth.scope(), audit=audit)
    organization = await service.update_profile(OrganizationProfileInput(**payload.model_dump()), actor=actor)
    return organization_response(organization)


@router.get("", response_model=list[OrganizationResponse])
async def list_organizations(
    account_status: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
) -> list[OrganizationResponse]:
    service = OrganizationService(session, auth.scope())
    organizations = await service.list(account_status=account_status, limit=limit, offset=offset)
    return [organization_response(organization) for organization in organizations]


@router.get("/{org_id}", response_model=OrganizationResponse)
async def get_organization(
    org_id: UUID,
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
) -> OrganizationResponse:
    service = OrganizationService(session, auth.scope())
    return organization_response(await service.get(org_id))


@router.post("/{org_id}/approve", response_model=OrganizationResponse)
async def approve_organization(
    org_id: UUID,
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
    plans: PlanRegistry = Depends(get_plan_registry),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> OrganizationResponse:
    service = OrganizationService(session, auth.scope(), plans=plans, audit=audit)
    return organization_response(await service.approve(org_id, actor=actor))


@router.post("/{org_id}/block", response_model=OrganizationResponse)
async def block_organization(
    org_id: UUID,
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> OrganizationResponse:
    service = OrganizationService(session, auth.scope(), audit=audit)
    return organization_response(await service.block(org_id, actor=actor))


@router.post("/{org_id}/deactivate", response_model=OrganizationResponse)
async def deactivate_subscription(
    org_id: UUID,
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> OrganizationResponse:
    service = OrganizationService(session, auth.scope(), audit=audit)
    return organization_response(await service.deactivate(org_id, actor=actor))


@router.post("/{org_id}/restart", response_model=OrganizationResponse)
async def restart_subscription(
    org_id: UUID,
    payload: SubscriptionRestartRequest,
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
    plans: PlanRegistry = Depends(get_plan_registry),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> OrganizationResponse:
    service = OrganizationService(session, auth.scope(), plans=plans, audit=audit)
    return organization_response(await service.restart(org_id, payload.plan, actor=actor))


@router.post("/{org_id}/renew", response_model=OrganizationResponse)
async def renew_subscription(
    org_id: UUID,
    payload: SubscriptionRestartRequest,
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
    plans: PlanRegistry = Depends(get_plan_registry),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> OrganizationResponse:
    service = OrganizationService(session, auth.scope(), plans=plans, audit=audit)
    return organization_response(await service.renew(org_id, payload.plan, actor=actor))


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    org_id: UUID,
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> None:
    service = OrganizationService(session, auth.scope(), audit=audit)
    await service.delete(org_id, actor=actor)
