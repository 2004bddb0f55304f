from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class OrganizationProfileRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    type: str | None = Field(default=None, max_length=100)
    website: str | None = Field(default=None, max_length=500)
    logo: str | None = Field(default=None, max_length=2048)
    certificate_prefixes: list[str] | None = None
    default_certificate_prefix: str | None = None


class SubscriptionRestartRequest(BaseModel):
    plan: str | None = None


class OrganizationResponse(BaseModel):
    id: UUID
    name: str
    type: str | None = None
    email: str
    website: str | None = None
    logo: str | None = None
    subscription_plan: str
    plan_id: UUID | None = None
    subscription_status: str
    payment_status: str
    account_status: str
    subscription_start_date: datetime | None = None
    subscription_end_date: datetime | None = None
    monthly_certificate_limit: int
    certificates_issued_this_month: int
    certificate_prefixes: list[str]
    default_certificate_prefix: str | None = None
