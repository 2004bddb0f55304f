from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.dependencies import get_plan_registry
from certisure.core.audit import AuditLogReader
from certisure.core.auth import AuthContext, require_auth_context
from certisure.core.db import get_db_session
from certisure.core.entitlements import capabilities_for, require_feature
from certisure.core.organizations import OrganizationService
from certisure.core.plans import PlanRegistry
from certisure.schemas.audit import AuditLogResponse

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=list[AuditLogResponse])
async def list_audit_logs(
    org_id: UUID | None = None,
    action: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    auth: AuthContext = Depends(require_auth_context),
    plans: PlanRegistry = Depends(get_plan_registry),
    session: AsyncSession = Depends(get_db_session),
) -> list[AuditLogResponse]:
    if not auth.is_super_admin:
        organization = await OrganizationService(session, auth.scope(), plans=plans).current()
        require_feature(
            await capabilities_for(organization, plans),
            "audit_logs",
            "Audit logs are not available on your current plan. Please upgrade.",
        )

    entries = await AuditLogReader(session, auth.scope()).list(org_id=org_id, action=action, limit=limit)
    return [
        AuditLogResponse(
            id=entry.id,
            org_id=entry.org_id,
            user_id=entry.user_id,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            details=entry.details or {},
            ip_address=entry.ip_address,
            created_at=entry.created_at,
        )
        for entry in entries
    ]
