from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class TemplateUpsertRequest(BaseModel):
    template_name: str | None = Field(default=None, max_length=200)
    canvas: dict[str, Any] | list[Any] | str | None = None
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)
    unit: str | None = None
    orientation: str | None = None
    background_color: str | None = Field(default=None, max_length=32)
    background_image: str | None = Field(default=None, max_length=2048)
    is_default: bool | None = None


class TemplateSummaryResponse(BaseModel):
    id: UUID
    org_id: UUID
    template_name: str
    is_default: bool
    width: float
    height: float
    unit: str
    orientation: str
    background_color: str
    background_image: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TemplateDetailResponse(TemplateSummaryResponse):
    canvas: dict[str, Any]
