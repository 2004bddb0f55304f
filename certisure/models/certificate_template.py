from __future__ import annotations

from uuid import UUID

from sqlalchemy import Index, String, Text
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from certisure.core.security.crypto import SealedText
from certisure.models.base import TenantScopedBase


class CertificateTemplate(TenantScopedBase):
    __tablename__ = "certificate_templates"
    __table_args__ = (Index("ix_certificate_templates_org_default", "org_id", "is_default"),)

    created_by: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    template_name: Mapped[str] = mapped_column(String(200), nullable=False)
    canvas_json_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    is_default: Mapped[bool] = mapped_column(nullable=False, default=False)
    width: Mapped[float] = mapped_column(nullable=False, default=297)
    height: Mapped[float] = mapped_column(nullable=False, default=210)
    unit: Mapped[str] = mapped_column(String(4), nullable=False, default="mm")
    orientation: Mapped[str] = mapped_column(String(12), nullable=False, default="landscape")
    background_color: Mapped[str] = mapped_column(String(32), nullable=False, default="#ffffff")
    background_image: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    @property
    def canvas(self) -> SealedText:
        return SealedText(self.canvas_json_encrypted)
