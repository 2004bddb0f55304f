from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class PlanResponse(BaseModel):
    id: UUID | None = None
    name: str
    monthly_price: Decimal
    yearly_price: Decimal
    max_certificates_per_month: int
    max_team_members: int
    max_templates: int
    features: list[str]
    permissions: dict[str, Any]
    is_active: bool


class PlanUpdateRequest(BaseModel):
    monthly_price: Decimal | None = Field(default=None, ge=0)
    yearly_price: Decimal | None = Field(default=None, ge=0)
    max_certificates_per_month: int | None = Field(default=None, ge=0)
    max_team_members: int | None = Field(default=None, ge=0)
    max_templates: int | None = Field(default=None, ge=0)
    features: list[str] | None = None
    permissions: dict[str, Any] | None = None
    is_active: bool | None = None


class PlanBreakdown(BaseModel):
    plan: str
    monthly_price: Decimal
    org_count: int
    active_subscriptions: int
    expired_subscriptions: int
    total_certificates_issued: int
    estimated_monthly_revenue: Decimal


class PlanAnalyticsResponse(BaseModel):
    total_orgs: int
    total_active_orgs: int
    total_revenue_estimate: Decimal
    plan_breakdown: list[PlanBreakdown]
