from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.repositories.base import TenantRepository
from certisure.core.tenancy import TenantScope
from certisure.models.certificate import STATUS_ACTIVE, Certificate


class CertificateRepository(TenantRepository[Certificate]):
    def __init__(self, session: AsyncSession, scope: TenantScope) -> None:
        super().__init__(session=session, model=Certificate, scope=scope)

    async def count_created_between(self, start: datetime, end: datetime) -> int:
        await self._apply_rls()
        stmt = self.scope.filter(
            select(func.count(Certificate.id)).where(
                Certificate.created_at >= start,
                Certificate.created_at < end,
            ),
            Certificate,
        )
        return int(await self.session.scalar(stmt) or 0)

    async def certificate_id_taken(self, certificate_id: str) -> bool:
        # No org filter here, but the session's row-level security still limits the
        # count to this tenant. Ids held by other organizations are caught by the
        # unique index at insert time.
        stmt = select(func.count(Certificate.id)).where(Certificate.certificate_id == certificate_id)
        return int(await self.session.scalar(stmt) or 0) > 0

    async def add_many(self, rows: list[dict[str, object]]) -> list[Certificate]:
        await self._apply_rls()
        instances = []
        for row in rows:
            payload = dict(row)
            if not self.scope.is_super_admin or "org_id" not in payload:
                payload["org_id"] = self.org_id
            instances.append(Certificate(**payload))

        self.session.add_all(instances)
        await self.session.flush()
        return instances

    async def get_by_certificate_id(self, certificate_id: str) -> Certificate | None:
        await self._apply_rls()
        result = await self.session.execute(
            self._scoped_select().where(func.upper(Certificate.certificate_id) == certificate_id.upper())
        )
        return result.scalar_one_or_none()

    async def list_filtered(
        self,
        *,
        status: str | None = None,
        batch_name: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Certificate]:
        await self._apply_rls()
        stmt = self._scoped_select()
        if status:
            stmt = stmt.where(Certificate.status == status)
        if batch_name:
            stmt = stmt.where(Certificate.batch_name == batch_name)
        result = await self.session.execute(
            stmt.order_by(Certificate.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def list_due_for_expiry(self, now: datetime) -> list[Certificate]:
        await self._apply_rls()
        result = await self.session.execute(
            self._scoped_select().where(
                Certificate.status == STATUS_ACTIVE,
                Certificate.expiry_date.is_not(None),
                Certificate.expiry_date < now,
            )
        )
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        await self._apply_rls()
        stmt = self.scope.filter(
            select(Certificate.status, func.count(Certificate.id)).group_by(Certificate.status),
            Certificate,
        )
        result = await self.session.execute(stmt)
        return {status: int(count) for status, count in result.all()}

    async def count_by_type(self) -> dict[str, int]:
        await self._apply_rls()
        stmt = self.scope.filter(
            select(Certificate.certificate_type, func.count(Certificate.id)).group_by(
                Certificate.certificate_type
            ),
            Certificate,
        )
        result = await self.session.execute(stmt)
        return {certificate_type: int(count) for certificate_type, count in result.all()}

    async def count_per_org_between(self, start: datetime, end: datetime) -> dict[UUID, int]:
        await self._apply_rls()
        stmt = self.scope.filter(
            select(Certificate.org_id, func.count(Certificate.id))
            .where(Certificate.created_at >= start, Certificate.created_at < end)
            .group_by(Certificate.org_id),
            Certificate,
        )
        result = await self.session.execute(stmt)
        return {org_id: int(count) for org_id, count in result.all()}

    async def top_courses(self, limit: int = 5) -> list[tuple[str, int]]:
        await self._apply_rls()
        total = func.count(Certificate.id)
        stmt = self.scope.filter(
            select(Certificate.course_name, total)
            .group_by(Certificate.course_name)
            .order_by(total.desc())
            .limit(limit),
            Certificate,
        )
        result = await self.session.execute(stmt)
        return [(course_name, int(count)) for course_name, count in result.all()]
