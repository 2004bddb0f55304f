from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class PublicCertificateResponse(BaseModel):
    certificate_id: str
    recipient_name: str
    course_name: str
    certificate_type: str
    status: str
    is_valid: bool
    issue_date: datetime
    expiry_date: datetime | None = None
    batch_name: str | None = None
    verification_url: str | None = None
    organization_name: str
    organization_logo: str | None = None
    organization_website: str | None = None


class DownloadRequest(BaseModel):
    certificate_id: str = Field(min_length=1, max_length=64)
    recipient_name: str = Field(min_length=1, max_length=200)
    organization_name: str = Field(min_length=1, max_length=200)


class DownloadResponse(PublicCertificateResponse):
    render_data: dict[str, Any] | None = None


class FindCertificatesRequest(BaseModel):
    recipient_name: str = Field(min_length=1, max_length=200)
    organization_name: str = Field(min_length=1, max_length=200)
