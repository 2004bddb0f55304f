from __future__ import annotations

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.repositories.base import TenantRepository
from certisure.core.security.crypto import SealedText
from certisure.core.tenancy import TenantScope
from certisure.models.certificate_template import CertificateTemplate


class CertificateTemplateRepository(TenantRepository[CertificateTemplate]):
    def __init__(self, session: AsyncSession, scope: TenantScope) -> None:
        super().__init__(session=session, model=CertificateTemplate, scope=scope)

    def _prepare_values(self, values: dict[str, object]) -> dict[str, object]:
        canvas = values.pop("canvas", None)
        if canvas is not None:
            if not isinstance(canvas, SealedText):
                raise TypeError("Template canvas must be sealed before it is stored")
            values["canvas_json_encrypted"] = canvas.ciphertext
        return values

    async def clear_default(self, except_id: UUID | None = None) -> None:
        await self._apply_rls()
        stmt = update(CertificateTemplate).where(CertificateTemplate.is_default.is_(True))
        if except_id is not None:
            stmt = stmt.where(CertificateTemplate.id != except_id)
        await self.session.execute(self.scope.filter(stmt.values(is_default=False), CertificateTemplate))
