from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from typing import Any

import qrcode
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.config import settings
from certisure.core.db import apply_rls_org_context
from certisure.core.errors import NotFoundError, ValidationError
from certisure.models.certificate import STATUS_ACTIVE, STATUS_EXPIRED, Certificate
from certisure.models.organization import Organization

DETAILS_MISMATCH = "Certificate details do not match our records."


def verification_url(certificate_id: str, base_url: str | None = None) -> str:
    return f"{(base_url or settings.frontend_url).rstrip('/')}/verify/{certificate_id}"


def qr_data_url(payload: str) -> str:
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{encoded}"


@dataclass(frozen=True, slots=True)
class PublicCertificate:
    certificate_id: str
    recipient_name: str
    course_name: str
    certificate_type: str
    status: str
    issue_date: datetime
    expiry_date: datetime | None
    batch_name: str | None
    verification_url: str | None
    render_data: dict[str, Any] | None
    organization_name: str
    organization_logo: str | None
    organization_website: str | None

    @property
    def is_valid(self) -> bool:
        return self.status == STATUS_ACTIVE


def _effective_status(certificate: Certificate, now: datetime) -> str:
    if certificate.status == STATUS_ACTIVE and not certificate.is_valid(now):
        return STATUS_EXPIRED
    return certificate.status


def to_public(certificate: Certificate, organization: Organization, now: datetime | None = None) -> PublicCertificate:
    now = now or datetime.now(timezone.utc)
    return PublicCertificate(
        certificate_id=certificate.certificate_id,
        recipient_name=certificate.recipient_name,
        course_name=certificate.course_name,
        certificate_type=certificate.certificate_type,
        status=_effective_status(certificate, now),
        issue_date=certificate.issue_date,
        expiry_date=certificate.expiry_date,
        batch_name=certificate.batch_name,
        verification_url=certificate.verification_url,
        render_data=certificate.render_data,
        organization_name=organization.name,
        organization_logo=organization.logo,
        organization_website=organization.website,
    )


def _same_text(left: str | None, right: str | None) -> bool:
    return (left or "").strip().lower() == (right or "").strip().lower()


class VerificationService:
    """Unauthenticated lookups; internal ids and issuer ids are never exposed."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _find(self, certificate_id: str) -> tuple[Certificate, Organization] | None:
        await apply_rls_org_context(self.session, None, bypass=True)
        result = await self.session.execute(
            select(Certificate, Organization)
            .join(Organization, Organization.id == Certificate.org_id)
            .where(func.upper(Certificate.certificate_id) == certificate_id.strip().upper())
        )
        row = result.first()
        return (row[0], row[1]) if row is not None else None

    async def verify(self, certificate_id: str) -> PublicCertificate:
        if not (certificate_id or "").strip():
            raise ValidationError("Certificate ID is required")
        found = await self._find(certificate_id)
        if found is None:
            raise NotFoundError("Certificate not found")
        return to_public(*found)

    async def authorize_download(
        self,
        certificate_id: str,
        recipient_name: str,
        organization_name: str,
    ) -> PublicCertificate:
        if not all(value and value.strip() for value in (certificate_id, recipient_name, organization_name)):
            raise ValidationError("Certificate ID, recipient name and organization name are required")

        found = await self._find(certificate_id)
        if found is None:
            raise NotFoundError(DETAILS_MISMATCH)
        certificate, organization = found
        if not _same_text(certificate.recipient_name, recipient_name) or not _same_text(
            organization.name, organization_name
        ):
            raise ValidationError(DETAILS_MISMATCH)
        return to_public(certificate, organization)

    async def find_by_recipient(self, recipient_name: str, organization_name: str) -> list[PublicCertificate]:
        if not (recipient_name or "").strip() or not (organization_name or "").strip():
            raise ValidationError("Recipient name and organization name are required")

        await apply_rls_org_context(self.session, None, bypass=True)
        result = await self.session.execute(
            select(Certificate, Organization)
            .join(Organization, Organization.id == Certificate.org_id)
            .where(
                func.lower(Organization.name) == organization_name.strip().lower(),
                func.lower(Certificate.recipient_name) == recipient_name.strip().lower(),
                Certificate.status == STATUS_ACTIVE,
            )
            .order_by(Certificate.issue_date.desc())
        )
        matches = [to_public(certificate, organization) for certificate, organization in result.all()]
        if not matches:
            raise NotFoundError("No certificates found matching these details.")
        return matches
