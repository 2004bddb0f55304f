from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.db import apply_rls_org_context
from certisure.core.tenancy import TenantScope
from certisure.models.organization import Organization


class OrganizationRepository:
    """Organizations are scoped by their own id rather than an ``org_id`` column."""

    def __init__(self, session: AsyncSession, scope: TenantScope) -> None:
        self.session = session
        self.scope = scope

    async def _apply_rls(self) -> None:
        await apply_rls_org_context(self.session, self.scope.org_id, bypass=self.scope.is_super_admin)

    def _scoped_select(self):
        stmt = select(Organization)
        if self.scope.is_super_admin:
            return stmt
        return stmt.where(Organization.id == self.scope.require_org_id())

    async def get_current(self) -> Organization | None:
        await self._apply_rls()
        result = await self.session.execute(
            select(Organization).where(Organization.id == self.scope.require_org_id())
        )
        return result.scalar_one_or_none()

    async def get(self, org_id: UUID) -> Organization | None:
        await self._apply_rls()
        result = await self.session.execute(self._scoped_select().where(Organization.id == org_id))
        return result.scalar_one_or_none()

    async def list(
        self,
        *,
        account_status: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Organization]:
        await self._apply_rls()
        stmt = self._scoped_select()
        if account_status:
            stmt = stmt.where(Organization.account_status == account_status)
        result = await self.session.execute(
            stmt.order_by(Organization.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def count_by_plan(self) -> dict[str, int]:
        await self._apply_rls()
        stmt = select(Organization.subscription_plan, func.count(Organization.id)).group_by(
            Organization.subscription_plan
        )
        if not self.scope.is_super_admin:
            stmt = stmt.where(Organization.id == self.scope.require_org_id())
        result = await self.session.execute(stmt)
        return {plan: int(count) for plan, count in result.all()}

    async def update(self, org_id: UUID, **values: object) -> Organization | None:
        organization = await self.get(org_id)
        if organization is None:
            return None

        for field, value in values.items():
            if field == "id":
                continue
            setattr(organization, field, value)

        await self.session.flush()
        return organization

    async def delete(self, org_id: UUID) -> bool:
        await self._apply_rls()
        stmt = delete(Organization).where(Organization.id == org_id)
        if not self.scope.is_super_admin:
            stmt = stmt.where(Organization.id == self.scope.require_org_id())
        result = await self.session.execute(stmt)
        return (result.rowcount or 0) > 0
