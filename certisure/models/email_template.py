from __future__ import annotations

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from certisure.core.security.crypto import SealedText
from certisure.models.base import TenantScopedBase


class EmailTemplate(TenantScopedBase):
    __tablename__ = "email_templates"
    __table_args__ = (Index("ix_email_templates_org_default", "org_id", "is_default"),)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    html_body_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    is_default: Mapped[bool] = mapped_column(nullable=False, default=False)
    certificate_type: Mapped[str] = mapped_column(String(100), nullable=False, default="All")

    @property
    def html_body(self) -> SealedText:
        return SealedText(self.html_body_encrypted)
