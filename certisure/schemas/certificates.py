from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class CertificateIssueRequest(BaseModel):
    recipient_name: str = Field(default="", max_length=200)
    recipient_email: str = Field(default="", max_length=255)
    course_name: str = Field(default="", max_length=300)
    certificate_type: str | None = None
    template_id: UUID | None = None
    batch_name: str | None = Field(default=None, max_length=200)
    issue_date: datetime | None = None
    expiry_date: datetime | None = None
    certificate_prefix: str | None = Field(default=None, max_length=10)


class BulkIssueRequest(BaseModel):
    certificates: list[CertificateIssueRequest]
    template_id: UUID | None = None
    batch_name: str | None = Field(default=None, max_length=200)


class CertificateResponse(BaseModel):
    id: UUID
    certificate_id: str
    recipient_name: str
    recipient_email: str
    course_name: str
    certificate_type: str
    status: str
    batch_name: str | None = None
    template_id: UUID | None = None
    issue_date: datetime
    expiry_date: datetime | None = None
    verification_url: str | None = None
    render_data: dict[str, Any] | None = None
    created_at: datetime | None = None


class BulkIssueResponse(BaseModel):
    count: int
    certificates: list[CertificateResponse]


class CertificateAnalyticsResponse(BaseModel):
    total_certificates: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    by_course: list[dict[str, Any]]
    issued_today: int
    issued_this_month: int
    monthly_trends: list[dict[str, Any]]
