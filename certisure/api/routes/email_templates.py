from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.dependencies import get_audit_sink, get_capabilities, get_current_organization, request_actor
from certisure.core.audit import Actor, AuditSink
from certisure.core.auth import AuthContext, require_auth_context
from certisure.core.db import get_db_session
from certisure.core.email_templates import EmailTemplateInput, EmailTemplateService
from certisure.core.entitlements import CapabilitySet
from certisure.core.security.dependencies import get_security_cipher
from certisure.models.email_template import EmailTemplate
from certisure.models.organization import Organization
from certisure.schemas.email_templates import (
    EmailTemplateDetailResponse,
    EmailTemplateSummaryResponse,
    EmailTemplateUpsertRequest,
)

router = APIRouter(prefix="/email-templates", tags=["email-templates"])


def _summary(template: EmailTemplate) -> EmailTemplateSummaryResponse:
    return EmailTemplateSummaryResponse(
        id=template.id,
        name=template.name,
        subject=template.subject,
        is_default=template.is_default,
        certificate_type=template.certificate_type,
        created_at=getattr(template, "created_at", None),
        updated_at=getattr(template, "updated_at", None),
    )


def _detail(template: EmailTemplate, html_body: str) -> EmailTemplateDetailResponse:
    return EmailTemplateDetailResponse(**_summary(template).model_dump(), html_body=html_body)


@router.get("", response_model=list[EmailTemplateSummaryResponse])
async def list_email_templates(
    auth: AuthContext = Depends(require_auth_context),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
) -> list[EmailTemplateSummaryResponse]:
    service = EmailTemplateService(session, auth.scope(), cipher=get_security_cipher())
    return [_summary(template) for template in await service.list(capabilities)]


@router.get("/{template_id}", response_model=EmailTemplateDetailResponse)
async def get_email_template(
    template_id: UUID,
    auth: AuthContext = Depends(require_auth_context),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
) -> EmailTemplateDetailResponse:
    service = EmailTemplateService(session, auth.scope(), cipher=get_security_cipher())
    template, html_body = await service.get(capabilities, template_id)
    return _detail(template, html_body)


@router.post("", response_model=EmailTemplateDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_email_template(
    payload: EmailTemplateUpsertRequest,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> EmailTemplateDetailResponse:
    service = EmailTemplateService(session, auth.scope(), cipher=get_security_cipher(), audit=audit)
    template = await service.create(
        organization,
        capabilities,
        EmailTemplateInput(**payload.model_dump()),
        actor=actor,
    )
    return _detail(template, service.open_body(template))


@router.put("/{template_id}", response_model=EmailTemplateDetailResponse)
async def update_email_template(
    template_id: UUID,
    payload: EmailTemplateUpsertRequest,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> EmailTemplateDetailResponse:
    service = EmailTemplateService(session, auth.scope(), cipher=get_security_cipher(), audit=audit)
    template = await service.update(
        organization,
        capabilities,
        template_id,
        EmailTemplateInput(**payload.model_dump()),
        actor=actor,
    )
    return _detail(template, service.open_body(template))


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_email_template(
    template_id: UUID,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> None:
    service = EmailTemplateService(session, auth.scope(), cipher=get_security_cipher(), audit=audit)
    await service.delete(organization, capabilities, template_id, actor=actor)
