from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.dependencies import get_capabilities, get_current_organization, get_plan_registry
from certisure.core.auth import AuthContext, require_auth_context
from certisure.core.db import get_db_session
from certisure.core.entitlements import CapabilitySet
from certisure.core.organizations import OrganizationService
from certisure.core.plans import PlanRegistry
from certisure.models.organization import Organization
from certisure.schemas.billing import EntitlementResponse, UsageResponse

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/entitlements", response_model=EntitlementResponse)
async def get_entitlements(
    capabilities: CapabilitySet = Depends(get_capabilities),
) -> EntitlementResponse:
    return EntitlementResponse(
        tier=capabilities.tier,
        permissions=capabilities.permissions.to_dict(),
        max_certificates_per_month=capabilities.max_certificates_per_month,
        max_templates=capabilities.max_templates,
        max_team_members=capabilities.max_team_members,
    )


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    auth: AuthContext = Depends(require_auth_context),
    organization: Organization = Depends(get_current_organization),
    plans: PlanRegistry = Depends(get_plan_registry),
    session: AsyncSession = Depends(get_db_session),
) -> UsageResponse:
    snapshot = await OrganizationService(session, auth.scope(), plans=plans).usage(organization)
    return UsageResponse(
        tier=snapshot.capabilities.tier,
        issued_this_month=snapshot.issued_this_month,
        limit=snapshot.limit,
        remaining=snapshot.remaining,
        period_start=snapshot.period_start,
        period_end=snapshot.period_end,
    )
