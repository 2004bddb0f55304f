from __future__ import annotations

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from certisure.core.db import apply_rls_org_context
from certisure.core.tenancy import TenantContextMissingError, TenantScope
from certisure.models.base import TenantScopedBase

ModelT = TypeVar("ModelT", bound=TenantScopedBase)


class TenantRepository(Generic[ModelT]):
    def __init__(self, session: AsyncSession, model: type[ModelT], scope: TenantScope) -> None:
        if scope is None:
            raise TenantContextMissingError("Tenant repositories require an explicit scope")
        self.session = session
        self.model = model
        self.scope = scope

    @property
    def org_id(self) -> UUID:
        return self.scope.require_org_id()

    async def _apply_rls(self) -> None:
        await apply_rls_org_context(self.session, self.scope.org_id, bypass=self.scope.is_super_admin)

    def _scoped_select(self) -> Select[tuple[ModelT]]:
        return self.scope.filter(select(self.model), self.model)

    def _prepare_values(self, values: dict[str, object]) -> dict[str, object]:
        return values

    async def create(self, **values: object) -> ModelT:
        await self._apply_rls()
        payload = self._prepare_values(dict(values))
        if self.scope.is_super_admin:
            payload.setdefault("org_id", self.org_id)
        else:
            payload["org_id"] = self.org_id
        instance = self.model(**payload)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get(self, entity_id: UUID) -> ModelT | None:
        await self._apply_rls()
        result = await self.session.execute(
            self._scoped_select().where(self.model.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def list(self, *, limit: int = 100, offset: int = 0) -> list[ModelT]:
        await self._apply_rls()
        result = await self.session.execute(
            self._scoped_select()
            .order_by(self.model.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count(self) -> int:
        await self._apply_rls()
        stmt = self.scope.filter(select(func.count(self.model.id)), self.model)
        return int(await self.session.scalar(stmt) or 0)

    async def update(self, entity_id: UUID, **values: object) -> ModelT | None:
        instance = await self.get(entity_id)
        if instance is None:
            return None

        for field, value in self._prepare_values(dict(values)).items():
            if field in {"id", "org_id"}:
                continue
            setattr(instance, field, value)

        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def delete(self, entity_id: UUID) -> bool:
        await self._apply_rls()
        result = await self.session.execute(
            self.scope.filter(delete(self.model).where(self.model.id == entity_id), self.model)
        )
        return (result.rowcount or 0) > 0
