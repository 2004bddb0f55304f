from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: UUID
    org_id: UUID | None = None
    user_id: UUID | None = None
    action: str
    entity_type: str
    entity_id: str | None = None
    details: dict[str, Any]
    ip_address: str | None = None
    created_at: datetime
