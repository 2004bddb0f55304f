from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from certisure.core.errors import ConflictError
from certisure.models.base import TenantScopedBase, utcnow

STATUS_ACTIVE = "ACTIVE"
STATUS_REVOKED = "REVOKED"
STATUS_EXPIRED = "EXPIRED"

CERTIFICATE_TYPES = ("Completion", "Participation", "Achievement")


class Certificate(TenantScopedBase):
    __tablename__ = "certificates"
    __table_args__ = (
        Index("ix_certificates_org_issue_date", "org_id", "issue_date"),
        Index("ix_certificates_org_created_at", "org_id", "created_at"),
        Index("ix_certificates_org_status", "org_id", "status"),
    )

    issued_by: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    template_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("certificate_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    recipient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    course_name: Mapped[str] = mapped_column(String(300), nullable=False)
    batch_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    certificate_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=STATUS_ACTIVE)
    certificate_type: Mapped[str] = mapped_column(String(30), nullable=False, default="Completion")
    verification_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    render_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def is_valid(self, now: datetime) -> bool:
        if self.status != STATUS_ACTIVE:
            return False
        return self.expiry_date is None or self.expiry_date >= now

    def expire_if_due(self, now: datetime) -> bool:
        if self.status == STATUS_ACTIVE and self.expiry_date is not None and self.expiry_date < now:
            self.status = STATUS_EXPIRED
            return True
        return False

    def revoke(self) -> None:
        if self.status != STATUS_ACTIVE:
            raise ConflictError(
                f"Certificate is already {self.status.lower()} and cannot be revoked",
                status=self.status,
            )
        self.status = STATUS_REVOKED
