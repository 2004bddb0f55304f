from __future__ import annotations

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.repositories.base import TenantRepository
from certisure.core.security.crypto import SealedText
from certisure.core.tenancy import TenantScope
from certisure.models.email_template import EmailTemplate


class EmailTemplateRepository(TenantRepository[EmailTemplate]):
    def __init__(self, session: AsyncSession, scope: TenantScope) -> None:
        super().__init__(session=session, model=EmailTemplate, scope=scope)

    def _prepare_values(self, values: dict[str, object]) -> dict[str, object]:
        html_body = values.pop("html_body", None)
        if html_body is not None:
            if not isinstance(html_body, SealedText):
                raise TypeError("Email body must be sealed before it is stored")
            values["html_body_encrypted"] = html_body.ciphertext
        return values

    async def clear_default(self, except_id: UUID | None = None) -> None:
        await self._apply_rls()
        stmt = update(EmailTemplate).where(EmailTemplate.is_default.is_(True))
        if except_id is not None:
            stmt = stmt.where(EmailTemplate.id != except_id)
        await self.session.execute(self.scope.filter(stmt.values(is_default=False), EmailTemplate))

    async def find_default_for(self, certificate_type: str | None) -> EmailTemplate | None:
        await self._apply_rls()
        candidates = [certificate_type, "All"] if certificate_type else ["All"]
        result = await self.session.execute(
            self._scoped_select()
            .where(EmailTemplate.is_default.is_(True), EmailTemplate.certificate_type.in_(candidates))
            .order_by(EmailTemplate.updated_at.desc())
        )
        templates = list(result.scalars().all())
        for template in templates:
            if template.certificate_type == certificate_type:
                return template
        return templates[0] if templates else None
