from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.db import AsyncSessionLocal, apply_rls_org_context
from certisure.core.tenancy import TenantScope
from certisure.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

ENTITY_USER = "USER"
ENTITY_ORGANIZATION = "ORGANIZATION"
ENTITY_CERTIFICATE = "CERTIFICATE"
ENTITY_CERTIFICATE_TEMPLATE = "CERTIFICATE_TEMPLATE"
ENTITY_EMAIL_TEMPLATE = "EMAIL_TEMPLATE"
ENTITY_AUTH = "AUTH"
ENTITY_SYSTEM = "SYSTEM"


@dataclass(slots=True)
class AuditEvent:
    action: str
    entity_type: str
    org_id: UUID | None = None
    user_id: UUID | None = None
    entity_id: UUID | str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None


class AuditSink:
    """Append-only audit writer.

    Writes go through their own session so a failed audit insert never rolls
    back the operation being audited, and failures are logged, not raised.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal) -> None:
        self.session_factory = session_factory

    async def record(self, event: AuditEvent) -> bool:
        try:
            async with self.session_factory() as session:
                await apply_rls_org_context(session, event.org_id, bypass=event.org_id is None)
                session.add(
                    AuditLog(
                        org_id=event.org_id,
                        user_id=event.user_id,
                        action=event.action,
                        entity_type=event.entity_type,
                        entity_id=str(event.entity_id) if event.entity_id is not None else None,
                        details=event.details,
                        ip_address=event.ip_address,
                        user_agent=(event.user_agent or "")[:500] or None,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception("Audit write failed action=%s org=%s", event.action, event.org_id)
            return False
        return True


class AuditLogReader:
    def __init__(self, session: AsyncSession, scope: TenantScope) -> None:
        self.session = session
        self.scope = scope

    async def list(
        self,
        *,
        org_id: UUID | None = None,
        action: str | None = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        await apply_rls_org_context(self.session, self.scope.org_id, bypass=self.scope.is_super_admin)
        stmt = select(AuditLog)
        if self.scope.is_super_admin:
            if org_id is not None:
                stmt = stmt.where(AuditLog.org_id == org_id)
        else:
            stmt = stmt.where(AuditLog.org_id == self.scope.require_org_id())
        if action:
            stmt = stmt.where(AuditLog.action == action)
        result = await self.session.execute(stmt.order_by(AuditLog.created_at.desc()).limit(limit))
        return list(result.scalars().all())


@dataclass(frozen=True, slots=True)
class Actor:
    user_id: UUID | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    def event(self, action: str, entity_type: str, **values: Any) -> AuditEvent:
        return AuditEvent(
            action=action,
            entity_type=entity_type,
            user_id=self.user_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            **values,
        )
