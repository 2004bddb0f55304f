from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from certisure.models.base import EntityBase, utcnow
from certisure.models.plan import Plan


class Organization(EntityBase):
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)

    subscription_plan: Mapped[str] = mapped_column(String(20), nullable=False, default="FREE", index=True)
    plan_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("plans.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    subscription_status: Mapped[str] = mapped_column(String(20), nullable=False, default="TRIAL")
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    account_status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING", index=True)
    subscription_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    subscription_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    monthly_certificate_limit: Mapped[int] = mapped_column(nullable=False, default=50)
    certificates_issued_this_month: Mapped[int] = mapped_column(nullable=False, default=0)
    last_reset_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    logo: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    certificate_prefixes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    default_certificate_prefix: Mapped[str | None] = mapped_column(String(10), nullable=True)

    plan: Mapped[Plan | None] = relationship(Plan, lazy="selectin")
