from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.audit import ENTITY_CERTIFICATE_TEMPLATE, Actor, AuditSink
from certisure.core.elements import CanvasParseError, ElementTree, parse_tree
from certisure.core.entitlements import CapabilitySet, require_active_account
from certisure.core.errors import ForbiddenError, NotFoundError, ValidationError
from certisure.core.repositories.certificate_templates import CertificateTemplateRepository
from certisure.core.security.crypto import OpenedText, SealedText, SecurityCipher
from certisure.core.templates import STARTER_TEMPLATES, TemplateDraft, enforce_template_gate, open_canvas
from certisure.core.tenancy import TenantScope
from certisure.models.certificate_template import CertificateTemplate
from certisure.models.organization import Organization

logger = logging.getLogger(__name__)

UNITS = ("mm", "px", "in")
ORIENTATIONS = ("landscape", "portrait")


@dataclass(slots=True)
class TemplateInput:
    template_name: str | None = None
    canvas: dict[str, Any] | list[Any] | str | None = None
    width: float | None = None
    height: float | None = None
    unit: str | None = None
    orientation: str | None = None
    background_color: str | None = None
    background_image: str | None = None
    is_default: bool | None = None


def _parse_canvas(canvas: dict[str, Any] | list[Any] | str) -> ElementTree:
    try:
        return parse_tree(canvas)
    except CanvasParseError as exc:
        raise ValidationError("Invalid canvas JSON", field="canvas") from exc


def _check_layout(unit: str, orientation: str) -> None:
    if unit not in UNITS:
        raise ValidationError(f"unit must be one of {', '.join(UNITS)}", field="unit")
    if orientation not in ORIENTATIONS:
        raise ValidationError(f"orientation must be one of {', '.join(ORIENTATIONS)}", field="orientation")


class CertificateTemplateService:
    def __init__(
        self,
        session: AsyncSession,
        scope: TenantScope,
        *,
        cipher: SecurityCipher,
        templates: CertificateTemplateRepository | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self.session = session
        self.scope = scope
        self.cipher = cipher
        self.templates = templates or CertificateTemplateRepository(session, scope)
        self.audit = audit

    def _seal(self, tree: ElementTree) -> SealedText:
        return OpenedText(tree.to_json()).seal(self.cipher)

    async def _record(self, action: str, template: CertificateTemplate, actor: Actor | None, **details: Any) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            (actor or Actor(user_id=self.scope.user_id)).event(
                action,
                ENTITY_CERTIFICATE_TEMPLATE,
                org_id=template.org_id,
                entity_id=template.id,
                details={"template_name": template.template_name, **details},
            )
        )

    async def _provision_starters(self, user_id: UUID | None) -> None:
        for starter in STARTER_TEMPLATES:
            await self.templates.create(
                created_by=user_id or self.scope.user_id,
                template_name=starter.template_name,
                canvas=self._seal(starter.tree),
                width=starter.width,
                height=starter.height,
                orientation=starter.orientation,
            )
        await self.session.commit()
        logger.info("Provisioned starter templates org=%s", self.scope.org_id)

    async def list(
        self,
        capabilities: CapabilitySet | None = None,
        *,
        user_id: UUID | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[CertificateTemplate]:
        templates = await self.templates.list(limit=limit, offset=offset)
        if not templates and offset == 0 and capabilities is not None and capabilities.is_free:
            await self._provision_starters(user_id)
            templates = await self.templates.list(limit=limit, offset=offset)
        return templates

    async def get(self, template_id: UUID) -> tuple[CertificateTemplate, ElementTree]:
        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundError("Template not found", template_id=str(template_id))
        return template, open_canvas(template, self.cipher)

    async def create(
        self,
        organization: Organization,
        capabilities: CapabilitySet,
        user_id: UUID,
        data: TemplateInput,
        *,
        actor: Actor | None = None,
    ) -> CertificateTemplate:
        require_active_account(organization)
        if capabilities.is_free or not capabilities.allows("custom_templates"):
            raise ForbiddenError(
                "Upgrade to Pro to create custom templates.",
                feature="custom_templates",
                plan=capabilities.tier,
            )

        if capabilities.max_templates:
            current = await self.templates.count()
            if current >= capabilities.max_templates:
                raise ForbiddenError(
                    f"Your plan allows up to {capabilities.max_templates} templates. Upgrade to add more.",
                    feature="max_templates",
                    plan=capabilities.tier,
                    limit=capabilities.max_templates,
                    current_count=current,
                )

        if not (data.template_name or "").strip() or data.canvas is None:
            raise ValidationError("template_name and canvas are required")

        tree = _parse_canvas(data.canvas)
        draft = TemplateDraft(
            tree=tree,
            width=data.width if data.width is not None else 297,
            height=data.height if data.height is not None else 210,
            orientation=data.orientation or "landscape",
            background_color=data.background_color or "#ffffff",
            background_image=data.background_image or None,
        )
        unit = data.unit or "mm"
        _check_layout(unit, draft.orientation)
        enforce_template_gate(draft, capabilities)

        if data.is_default:
            await self.templates.clear_default()

        template = await self.templates.create(
            created_by=user_id,
            template_name=data.template_name.strip(),
            canvas=self._seal(tree),
            is_default=bool(data.is_default),
            width=draft.width,
            height=draft.height,
            unit=unit,
            orientation=draft.orientation,
            background_color=draft.background_color,
            background_image=draft.background_image,
        )
        await self.session.commit()

        logger.info("Template created org=%s template=%s", template.org_id, template.id)
        await self._record("TEMPLATE_CREATED", template, actor)
        return template

    async def update(
        self,
        organization: Organization,
        capabilities: CapabilitySet,
        template_id: UUID,
        data: TemplateInput,
        *,
        actor: Actor | None = None,
    ) -> CertificateTemplate:
        require_active_account(organization)
        template, baseline = await self.get(template_id)

        tree = _parse_canvas(data.canvas) if data.canvas is not None else baseline
        draft = TemplateDraft(
            tree=tree,
            width=data.width if data.width is not None else template.width,
            height=data.height if data.height is not None else template.height,
            orientation=data.orientation or template.orientation,
            background_color=data.background_color if data.background_color is not None else template.background_color,
            background_image=(
                data.background_image if data.background_image is not None else template.background_image
            ),
        )
        unit = data.unit or template.unit
        _check_layout(unit, draft.orientation)
        enforce_template_gate(draft, capabilities, baseline=baseline)

        if data.is_default:
            await self.templates.clear_default(except_id=template.id)

        changes: dict[str, Any] = {
            "width": draft.width,
            "height": draft.height,
            "unit": unit,
            "orientation": draft.orientation,
            "background_color": draft.background_color,
            "background_image": draft.background_image or None,
        }
        if (data.template_name or "").strip():
            changes["template_name"] = data.template_name.strip()
        if data.canvas is not None:
            changes["canvas"] = self._seal(tree)
        if data.is_default is not None:
            changes["is_default"] = data.is_default

        updated = await self.templates.update(template.id, **changes)
        if updated is None:
            raise NotFoundError("Template not found", template_id=str(template_id))
        await self.session.commit()

        logger.info("Template updated org=%s template=%s", updated.org_id, updated.id)
        await self._record("TEMPLATE_UPDATED", updated, actor)
        return updated

    async def delete(self, organization: Organization, template_id: UUID, *, actor: Actor | None = None) -> None:
        require_active_account(organization)
        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundError("Template not found", template_id=str(template_id))

        await self.templates.delete(template.id)
        await self.session.commit()
        await self._record("TEMPLATE_DELETED", template, actor)
