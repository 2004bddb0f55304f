from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.audit import ENTITY_CERTIFICATE, Actor, AuditSink
from certisure.core.entitlements import CapabilitySet, require_feature
from certisure.core.errors import ForbiddenError, NotFoundError
from certisure.core.quota import month_window
from certisure.core.repositories.certificates import CertificateRepository
from certisure.core.tenancy import TenantScope
from certisure.models.base import utcnow
from certisure.models.certificate import Certificate

logger = logging.getLogger(__name__)


class CertificateService:
    def __init__(
        self,
        session: AsyncSession,
        scope: TenantScope,
        *,
        certificates: CertificateRepository | None = None,
        audit: AuditSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.scope = scope
        self.certificates = certificates or CertificateRepository(session, scope)
        self.audit = audit
        self.clock = clock

    async def list(
        self,
        *,
        status: str | None = None,
        batch_name: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Certificate]:
        return await self.certificates.list_filtered(
            status=status,
            batch_name=batch_name,
            limit=limit,
            offset=offset,
        )

    async def get(self, certificate_pk: UUID) -> Certificate:
        certificate = await self.certificates.get(certificate_pk)
        if certificate is None:
            raise NotFoundError("Certificate not found")
        return certificate

    async def revoke(self, certificate_pk: UUID, *, actor: Actor | None = None) -> Certificate:
        certificate = await self.get(certificate_pk)
        certificate.revoke()
        await self.session.commit()
        logger.info("Certificate revoked org=%s certificate=%s", certificate.org_id, certificate.certificate_id)

        if self.audit is not None:
            await self.audit.record(
                (actor or Actor(user_id=self.scope.user_id)).event(
                    "CERTIFICATE_REVOKED",
                    ENTITY_CERTIFICATE,
                    org_id=certificate.org_id,
                    entity_id=certificate.id,
                    details={"certificate_id": certificate.certificate_id},
                )
            )
        return certificate

    async def delete(self, certificate_pk: UUID, *, actor: Actor | None = None) -> None:
        if not self.scope.is_super_admin:
            raise ForbiddenError("Only a super administrator can delete certificates")
        certificate = await self.get(certificate_pk)
        org_id, external_id = certificate.org_id, certificate.certificate_id

        deleted = await self.certificates.delete(certificate_pk)
        if not deleted:
            raise NotFoundError("Certificate not found")
        await self.session.commit()

        if self.audit is not None:
            await self.audit.record(
                (actor or Actor(user_id=self.scope.user_id)).event(
                    "CERTIFICATE_DELETED_BY_MASTER",
                    ENTITY_CERTIFICATE,
                    org_id=org_id,
                    entity_id=certificate_pk,
                    details={"certificate_id": external_id},
                )
            )

    async def expire_due(self) -> int:
        now = self.clock()
        expired = 0
        for certificate in await self.certificates.list_due_for_expiry(now):
            if certificate.expire_if_due(now):
                expired += 1
        if expired:
            await self.session.commit()
            logger.info("Expired certificates count=%s", expired)
        return expired

    async def analytics(self, capabilities: CapabilitySet) -> dict[str, Any]:
        require_feature(
            capabilities,
            "analytics",
            "Analytics are not available on your current plan. Please upgrade.",
        )
        now = self.clock()
        month_start, month_end = month_window(now)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        by_status = await self.certificates.count_by_status()
        windows = []
        cursor = month_start
        for _ in range(6):
            windows.append(month_window(cursor))
            cursor = month_window(cursor - timedelta(days=1))[0]
        trends = [
            {"month": start.strftime("%b %Y"), "count": await self.certificates.count_created_between(start, end)}
            for start, end in reversed(windows)
        ]

        return {
            "total_certificates": sum(by_status.values()),
            "by_status": by_status,
            "by_type": await self.certificates.count_by_type(),
            "by_course": [
                {"course_name": course_name, "count": count}
                for course_name, count in await self.certificates.top_courses()
            ],
            "issued_today": await self.certificates.count_created_between(day_start, month_end),
            "issued_this_month": await self.certificates.count_created_between(month_start, month_end),
            "monthly_trends": trends,
        }

