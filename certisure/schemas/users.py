from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from certisure.schemas.organizations import OrganizationResponse


class UserResponse(BaseModel):
    id: UUID
    org_id: UUID | None = None
    name: str
    email: str
    role: str
    is_active: bool
    created_at: datetime | None = None


class CurrentUserResponse(BaseModel):
    user: UserResponse
    organization: OrganizationResponse | None = None


class TeamMemberCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)


class TeamSummary(BaseModel):
    organization_name: str
    subscription_plan: str
    max_team_members: int | None = None
    active_count: int


class TeamResponse(BaseModel):
    members: list[UserResponse]
    team: TeamSummary
