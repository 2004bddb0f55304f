from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from certisure.models.base import EntityBase, utcnow


class Plan(EntityBase):
    __tablename__ = "plans"

    name: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    monthly_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    yearly_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    max_certificates_per_month: Mapped[int] = mapped_column(nullable=False, default=50)
    max_team_members: Mapped[int] = mapped_column(nullable=False, default=1)
    max_templates: Mapped[int] = mapped_column(nullable=False, default=2)
    features: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    permissions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
