from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.dependencies import get_audit_sink, get_capabilities, get_current_organization, request_actor
from certisure.core.audit import Actor, AuditSink
from certisure.core.auth import AuthContext, require_auth_context, require_super_admin
from certisure.core.certificate_templates import CertificateTemplateService, TemplateInput
from certisure.core.db import get_db_session
from certisure.core.elements import ElementTree
from certisure.core.entitlements import CapabilitySet
from certisure.core.security.dependencies import get_security_cipher
from certisure.models.certificate_template import CertificateTemplate
from certisure.models.organization import Organization
from certisure.schemas.templates import TemplateDetailResponse, TemplateSummaryResponse, TemplateUpsertRequest

router = APIRouter(prefix="/templates", tags=["templates"])


def _summary(template: CertificateTemplate) -> TemplateSummaryResponse:
    return TemplateSummaryResponse(
        id=template.id,
        org_id=template.org_id,
        template_name=template.template_name,
        is_default=template.is_default,
        width=template.width,
        height=template.height,
        unit=template.unit,
        orientation=template.orientation,
        background_color=template.background_color,
        background_image=template.background_image,
        created_at=getattr(template, "created_at", None),
        updated_at=getattr(template, "updated_at", None),
    )


def _detail(template: CertificateTemplate, tree: ElementTree) -> TemplateDetailResponse:
    return TemplateDetailResponse(**_summary(template).model_dump(), canvas=tree.to_render_data())


def _input(payload: TemplateUpsertRequest) -> TemplateInput:
    return TemplateInput(**payload.model_dump())


@router.get("", response_model=list[TemplateSummaryResponse])
async def list_templates(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_auth_context),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
) -> list[TemplateSummaryResponse]:
    service = CertificateTemplateService(session, auth.scope(), cipher=get_security_cipher())
    templates = await service.list(capabilities, user_id=auth.user_id, limit=limit, offset=offset)
    return [_summary(template) for template in templates]


@router.get("/all", response_model=list[TemplateSummaryResponse])
async def list_all_templates(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_super_admin),
    session: AsyncSession = Depends(get_db_session),
) -> list[TemplateSummaryResponse]:
    service = CertificateTemplateService(session, auth.scope(), cipher=get_security_cipher())
    return [_summary(template) for template in await service.list(limit=limit, offset=offset)]


@router.get("/{template_id}", response_model=TemplateDetailResponse)
async def get_template(
    template_id: UUID,
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> TemplateDetailResponse:
    service = CertificateTemplateService(session, auth.scope(), cipher=get_security_cipher())
    template, tree = await service.get(template_id)
    return _detail(template, tree)


@router.post("", response_model=TemplateDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    payload: TemplateUpsertRequest,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> TemplateDetailResponse:
    service = CertificateTemplateService(session, auth.scope(), cipher=get_security_cipher(), audit=audit)
    template = await service.create(organization, capabilities, auth.user_id, _input(payload), actor=actor)
    _, tree = await service.get(template.id)
    return _detail(template, tree)


@router.put("/{template_id}", response_model=TemplateDetailResponse)
async def update_template(
    template_id: UUID,
    payload: TemplateUpsertRequest,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    capabilities: CapabilitySet = Depends(get_capabilities),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> TemplateDetailResponse:
    service = CertificateTemplateService(session, auth.scope(), cipher=get_security_cipher(), audit=audit)
    template = await service.update(organization, capabilities, template_id, _input(payload), actor=actor)
    _, tree = await service.get(template.id)
    return _detail(template, tree)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: UUID,
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    session: AsyncSession = Depends(get_db_session),
    audit: AuditSink = Depends(get_audit_sink),
    actor: Actor = Depends(request_actor),
) -> None:
    service = CertificateTemplateService(session, auth.scope(), cipher=get_security_cipher(), audit=audit)
    await service.delete(organization, template_id, actor=actor)
