from __future__ import annotations

from collections.abc import AsyncGenerator
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from certisure.core.config import settings

engine = create_async_engine(settings.database_url, future=True, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def apply_rls_org_context(
    session: AsyncSession,
    org_id: UUID | None,
    *,
    bypass: bool = False,
) -> None:
    await session.execute(
        text(
            "SELECT set_config('app.current_org_id', :org_id, true), "
            "set_config('app.bypass_org_filter', :bypass, true)"
        ),
        {"org_id": str(org_id) if org_id is not None else "", "bypass": "on" if bypass else "off"},
    )
