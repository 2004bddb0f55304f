from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class EntitlementResponse(BaseModel):
    tier: str
    permissions: dict[str, Any]
    max_certificates_per_month: int
    max_templates: int | None = None
    max_team_members: int | None = None


class UsageResponse(BaseModel):
    tier: str
    issued_this_month: int
    limit: int | None = None
    remaining: int | None = None
    period_start: datetime
    period_end: datetime

