from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class EmailTemplateUpsertRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    subject: str | None = Field(default=None, max_length=500)
    html_body: str | None = None
    is_default: bool | None = None
    certificate_type: str | None = None


class EmailTemplateSummaryResponse(BaseModel):
    id: UUID
    name: str
    subject: str
    is_default: bool
    certificate_type: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EmailTemplateDetailResponse(EmailTemplateSummaryResponse):
    html_body: str
