from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.repositories.base import TenantRepository
from certisure.core.tenancy import TenantScope
from certisure.models.user import User


class UserRepository(TenantRepository[User]):
    def __init__(self, session: AsyncSession, scope: TenantScope) -> None:
        super().__init__(session=session, model=User, scope=scope)

    async def get_active_member(self, user_id: UUID) -> User | None:
        await self._apply_rls()
        result = await self.session.execute(
            self._scoped_select().where(User.id == user_id, User.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        await self._apply_rls()
        result = await self.session.execute(
            self._scoped_select().where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def list_members(self, *, role: str | None = None, limit: int = 100, offset: int = 0) -> list[User]:
        await self._apply_rls()
        stmt = self._scoped_select()
        if role:
            stmt = stmt.where(User.role == role)
        result = await self.session.execute(
            stmt.order_by(User.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def count_active(self) -> int:
        await self._apply_rls()
        stmt = self.scope.filter(select(func.count(User.id)), User).where(User.is_active.is_(True))
        return int(await self.session.scalar(stmt) or 0)
