from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from certisure.models.base import TenantScopedBase


class User(TenantScopedBase):
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="TEAM_MEMBER")
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
