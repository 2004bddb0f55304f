from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.dependencies import (
    get_audit_sink,
    get_capabilities,
    get_current_organization,
    get_notifier,
    get_plan_registry,
    request_actor,
)
from certisure.core.audit import Actor, AuditSink
from certisure.core.auth import AuthContext, require_auth_context, require_super_admin
from certisure.core.certificates import CertificateService
from certisure.core.db import get_db_session
from certisure.core.entitlements import CapabilitySet
from certisure.core.issuance import IssuanceService, IssueFields
from certisure.core.notifications import NotificationDispatcher
from certisure.core.plans import PlanRegistry
from certisure.core.security.dependencies import get_security_cipher
from certisure.models.certificate import Certificate
from certisure.models.organization import Organization
from certisure.schemas.certificates import (
    BulkIssueRequest,
    BulkIssueResponse,
    CertificateAnalyticsResponse,
    CertificateIssueRequest,
    CertificateResponse,
)

router = APIRouter(prefix="/certificates", tags=["certificates"])


def _to_response(certificate: Certificate) -> CertificateResponse:
    return CertificateResponse(
        id=certificate.id,
        certificate_id=certificate.certificate_id,
        recipient_name=certificate.recipient_name,
        recipient_email=certificate.recipient_email,
        course_name=certificate.course_name,
        certificate_type=certificate.certificate_type,
        status=certificate.status,
        batch_name=certificate.batch_name,
        template_id=certificate.template_id,
        issue_date=certificate.issue_date,
        expiry_date=certificate.expiry_date,
        verification_url=certificate.verification_url,
        render_data=certificate.render_data,
        created_at=getattr(certificate, "created_at", None),
    )


def _fields(payload: CertificateIssueRequest, defaults: BulkIssueRequest | None = None) -> IssueFields:
    return IssueFields(
        recipient_name=payload.recipient_name,
        recipient_email=payload.recipient_email,
        course_name=payload.course_name,
        certificate_type=payload.certificate_type,
        template_id=payload.template_id or (defaults.template_id if defaults else None),
        batch_name=payload.batch_name or (defaults.batch_name if defaults else None),
        issue_date=payload.issue_date,
        expiry_date=payload.expiry_date,
        certificate_prefix=payload.certificate_prefix,
    )


def _issuance_service(
    session: AsyncSession,
    auth: AuthContext,
    organization: Organization,
    plans: PlanRegistry,
    audit: AuditSink,
    notifier: NotificationDispatcher,
) -> IssuanceService:
    return IssuanceService(
        session,
        auth.scope().pinned(organization.id),
        cipher=get_security_cipher(),
        plans=plans,
        audit=audit,
        notifier=notifier,
    )


@router.post("", response_model=CertificateResponse, status_code=status.HTTP_201_CREATED)
async def issue_certificate(
    payload: CertificateIssueRequest,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    session: AsyncSession = Depends(get_db_session),
    plans: PlanRegistry = Depends(get_plan_registry),
    audit: AuditSink = Depends(get_audit_sink),
    notifier: NotificationDispatcher = Depends(get_notifier),
    actor: Actor = Depends(request_actor),
) -> CertificateResponse:
    service = _issuance_service(session, auth, organization, plans, audit, notifier)
    certificate = await service.issue(organization, auth.user_id, _fields(payload), actor=actor)
    return _to_response(certificate)


@router.post("/bulk", response_model=BulkIssueResponse, status_code=status.HTTP_201_CREATED)
async def issue_certificates_bulk(
    payload: BulkIssueRequest,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    session: AsyncSession = Depends(get_db_session),
    plans: PlanRegistry = Depends(get_plan_registry),
    audit: AuditSink = Depends(get_audit_sink),
    notifier: NotificationDispatcher = Depends(get_notifier),
    actor: Actor = Depends(request_actor),
) -> BulkIssueResponse:
    service = _issuance_service(session, auth, organization, plans, audit, notifier)
    rows = [_fields(row, payload) for row in payload.certificates]
    created = await service.issue_many(organization, auth.user_id, rows, actor=actor)
    return BulkIssueResponse(count=len(created), certificates=[_to_response(item) for item in created])


@router.get("", response_model=list[CertificateResponse])
async def list_certificates(
    status_filter: str | None = Query(default=None, alias="status"),
    batch_name: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> list[CertificateResponse]:
    service = CertificateService(session, auth.scope())
    certificates = await service.list(status=status_filter, batch_name=batch_name, limit=limit, offset=offset)
    return [_to_response(certificate) for certificate in certificates]


@router.get("/analytics", response_model=CertificateAnalyticsResponse)
async def certificate_analytics(
    auth: AuthContext = Depends(require_auth_context),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
) -> CertificateAnalyticsResponse:
    service = CertificateService(session, auth.scope())
    return CertificateAnalyticsResponse(**await service.analytics(capabilities))


@router.get("/{certificate_pk}", response_model=CertificateResponse)
async def get_certificate(
    certificate_pk: UUID,
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> CertificateResponse:
    service = CertificateService(session, auth.scope())
    return _to_response(await service.get(certificate_pk))


@router.post("/{certificate_pk}/revoke", response_model=CertificateResponse)
async def revoke_certificate(
    certificate_pk: UUID,
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> CertificateResponse:
    service = CertificateService(session, auth.scope(), audit=audit)
    return _to_response(await service.revoke(certificate_pk, actor=actor))


@router.delete("/{certificate_pk}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_certificate(
    certificate_pk: UUID,
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> None:
    service = CertificateService(session, auth.scope(), audit=audit)
    await service.delete(certificate_pk, actor=actor)
