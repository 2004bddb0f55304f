from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.audit import ENTITY_EMAIL_TEMPLATE, Actor, AuditSink
from certisure.core.entitlements import CapabilitySet, require_active_account, require_feature
from certisure.core.errors import NotFoundError, ValidationError
from certisure.core.repositories.email_templates import EmailTemplateRepository
from certisure.core.security.crypto import EncryptionError, OpenedText, SecurityCipher
from certisure.core.tenancy import TenantScope
from certisure.models.certificate import CERTIFICATE_TYPES
from certisure.models.email_template import EmailTemplate
from certisure.models.organization import Organization

logger = logging.getLogger(__name__)

EMAIL_CERTIFICATE_TYPES = ("All", *CERTIFICATE_TYPES)
PAID_ONLY_MESSAGE = "Email templates are available on paid plans only. Please upgrade your plan."
NOT_FOUND_MESSAGE = "Email template not found or access denied"


@dataclass(slots=True)
class EmailTemplateInput:
    name: str | None = None
    subject: str | None = None
    html_body: str | None = None
    is_default: bool | None = None
    certificate_type: str | None = None


def _check_certificate_type(value: str | None) -> None:
    if value and value not in EMAIL_CERTIFICATE_TYPES:
        raise ValidationError(
            f"certificate_type must be one of {', '.join(EMAIL_CERTIFICATE_TYPES)}",
            field="certificate_type",
        )


class EmailTemplateService:
    def __init__(
        self,
        session: AsyncSession,
        scope: TenantScope,
        *,
        cipher: SecurityCipher,
        templates: EmailTemplateRepository | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self.session = session
        self.scope = scope
        self.cipher = cipher
        self.templates = templates or EmailTemplateRepository(session, scope)
        self.audit = audit

    async def _record(self, action: str, template: EmailTemplate, actor: Actor | None) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            (actor or Actor(user_id=self.scope.user_id)).event(
                action,
                ENTITY_EMAIL_TEMPLATE,
                org_id=template.org_id,
                entity_id=template.id,
                details={"name": template.name},
            )
        )

    def open_body(self, template: EmailTemplate) -> str:
        try:
            return template.html_body.open(self.cipher).plaintext
        except EncryptionError:
            logger.warning("Email template body could not be decrypted template=%s", template.id)
            return ""

    async def list(self, capabilities: CapabilitySet) -> list[EmailTemplate]:
        require_feature(capabilities, "email_templates", PAID_ONLY_MESSAGE)
        return await self.templates.list()

    async def get(self, capabilities: CapabilitySet, template_id: UUID) -> tuple[EmailTemplate, str]:
        require_feature(capabilities, "email_templates", PAID_ONLY_MESSAGE)
        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return template, self.open_body(template)

    async def create(
        self,
        organization: Organization,
        capabilities: CapabilitySet,
        data: EmailTemplateInput,
        *,
        actor: Actor | None = None,
    ) -> EmailTemplate:
        require_active_account(organization)
        require_feature(capabilities, "email_templates", PAID_ONLY_MESSAGE)
        if not all((value or "").strip() for value in (data.name, data.subject, data.html_body)):
            raise ValidationError("name, subject and html_body are required")
        _check_certificate_type(data.certificate_type)

        if data.is_default:
            await self.templates.clear_default()

        template = await self.templates.create(
            name=data.name.strip(),
            subject=data.subject.strip(),
            html_body=OpenedText(data.html_body).seal(self.cipher),
            is_default=bool(data.is_default),
            certificate_type=data.certificate_type or "All",
        )
        await self.session.commit()
        await self._record("EMAIL_TEMPLATE_CREATED", template, actor)
        return template

    async def update(
        self,
        organization: Organization,
        capabilities: CapabilitySet,
        template_id: UUID,
        data: EmailTemplateInput,
        *,
        actor: Actor | None = None,
    ) -> EmailTemplate:
        require_active_account(organization)
        require_feature(capabilities, "email_templates", PAID_ONLY_MESSAGE)
        _check_certificate_type(data.certificate_type)

        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)

        if data.is_default:
            await self.templates.clear_default(except_id=template.id)

        changes: dict[str, object] = {}
        if (data.name or "").strip():
            changes["name"] = data.name.strip()
        if (data.subject or "").strip():
            changes["subject"] = data.subject.strip()
        if data.html_body:
            changes["html_body"] = OpenedText(data.html_body).seal(self.cipher)
        if data.is_default is not None:
            changes["is_default"] = data.is_default
        if data.certificate_type:
            changes["certificate_type"] = data.certificate_type

        updated = await self.templates.update(template.id, **changes)
        if updated is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        await self.session.commit()
        await self._record("EMAIL_TEMPLATE_UPDATED", updated, actor)
        return updated

    async def delete(
        self,
        organization: Organization,
        capabilities: CapabilitySet,
        template_id: UUID,
        *,
        actor: Actor | None = None,
    ) -> None:
        require_active_account(organization)
        require_feature(capabilities, "email_templates", PAID_ONLY_MESSAGE)
        template = await self.templates.get(template_id)
        if template is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)

        await self.templates.delete(template.id)
        await self.session.commit()
        await self._record("EMAIL_TEMPLATE_DELETED", template, actor)
