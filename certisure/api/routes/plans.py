from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.api.dependencies import get_plan_registry
from certisure.core.auth import AuthContext, require_auth_context, require_super_admin
from certisure.core.db import get_db_session
from certisure.core.plans import PlanDefinition, PlanRegistry
from certisure.schemas.plans import PlanAnalyticsResponse, PlanResponse, PlanUpdateRequest

router = APIRouter(prefix="/plans", tags=["plans"])


def _to_response(definition: PlanDefinition) -> PlanResponse:
    return PlanResponse(
        id=definition.id,
        name=definition.name,
        monthly_price=definition.monthly_price,
        yearly_price=definition.yearly_price,
        max_certificates_per_month=definition.max_certificates_per_month,
        max_team_members=definition.max_team_members,
        max_templates=definition.max_templates,
        features=list(definition.features),
        permissions=definition.permissions.to_dict(),
        is_active=definition.is_active,
    )


@router.get("", response_model=list[PlanResponse])
async def list_plans(
    _: AuthContext = Depends(require_auth_context),
    registry: PlanRegistry = Depends(get_plan_registry),
    session: AsyncSession = Depends(get_db_session),
) -> list[PlanResponse]:
    plans = await registry.list_plans()
    await session.commit()
    return [_to_response(plan) for plan in plans]


@router.get("/analytics", response_model=PlanAnalyticsResponse)
async def plan_analytics(
    _: AuthContext = Depends(require_super_admin),
    registry: PlanRegistry = Depends(get_plan_registry),
    session: AsyncSession = Depends(get_db_session),
) -> PlanAnalyticsResponse:
    analytics = await registry.analytics()
    await session.commit()
    return PlanAnalyticsResponse(**analytics)


@router.put("/{plan_name}", response_model=PlanResponse)
async def update_plan(
    plan_name: str,
    payload: PlanUpdateRequest,
    _: AuthContext = Depends(require_super_admin),
    registry: PlanRegistry = Depends(get_plan_registry),
    session: AsyncSession = Depends(get_db_session),
) -> PlanResponse:
    definition = await registry.update_plan(plan_name, **payload.model_dump(exclude_none=True))
    await session.commit()
    return _to_response(definition)
