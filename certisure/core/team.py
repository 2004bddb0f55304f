from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.audit import ENTITY_USER, Actor, AuditSink
from certisure.core.entitlements import CapabilitySet, require_active_account, require_feature
from certisure.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from certisure.core.repositories.users import UserRepository
from certisure.core.tenancy import ROLE_ORG_ADMIN, ROLE_TEAM_MEMBER, TenantScope
from certisure.models.organization import Organization
from certisure.models.user import User

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TeamMemberInput:
    name: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class TeamRoster:
    members: list[User]
    max_team_members: int | None
    active_count: int


class TeamService:
    """Team membership for one organization.

    ``max_team_members`` counts every active user of the organization, the
    administrator included.
    """

    def __init__(
        self,
        session: AsyncSession,
        scope: TenantScope,
        *,
        users: UserRepository | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self.session = session
        self.scope = scope
        self.users = users or UserRepository(session, scope)
        self.audit = audit

    def _require_org_admin(self, message: str) -> None:
        if self.scope.role != ROLE_ORG_ADMIN:
            raise ForbiddenError(message)

    async def current_user(self) -> User:
        if self.scope.user_id is None:
            raise NotFoundError("User not found")
        user = await self.users.get(self.scope.user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list_users(self, *, limit: int = 100, offset: int = 0) -> list[User]:
        if not self.scope.is_super_admin:
            self._require_org_admin("Only organization administrators can list users")
        return await self.users.list_members(limit=limit, offset=offset)

    async def roster(self, capabilities: CapabilitySet) -> TeamRoster:
        self._require_org_admin("Only organization administrators can view team members")
        return TeamRoster(
            members=await self.users.list_members(role=ROLE_TEAM_MEMBER),
            max_team_members=capabilities.max_team_members,
            active_count=await self.users.count_active(),
        )

    async def add_member(
        self,
        organization: Organization,
        capabilities: CapabilitySet,
        data: TeamMemberInput,
        *,
        actor: Actor | None = None,
    ) -> User:
        self._require_org_admin("Only organization administrators can create team members")
        name = (data.name or "").strip()
        email = (data.email or "").strip().lower()
        if not name or not email:
            raise ValidationError("name and email are required")

        require_active_account(organization)
        require_feature(capabilities, "teams", "Team members are not available for your current plan.")

        limit = capabilities.max_team_members
        if limit:
            current = await self.users.count_active()
            if current >= limit:
                raise ForbiddenError(
                    f"Team member limit reached for your plan. Maximum {limit} members allowed.",
                    feature="max_team_members",
                    plan=capabilities.tier,
                    limit=limit,
                    current_count=current,
                )

        if await self.users.get_by_email(email) is not None:
            raise ConflictError("Email already exists", field="email")

        try:
            member = await self.users.create(name=name, email=email, role=ROLE_TEAM_MEMBER, is_active=True)
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError("Email already exists", field="email") from exc

        logger.info("Team member created org=%s user=%s", member.org_id, member.id)
        if self.audit is not None:
            await self.audit.record(
                (actor or Actor(user_id=self.scope.user_id)).event(
                    "TEAM_MEMBER_CREATED",
                    ENTITY_USER,
                    org_id=member.org_id,
                    entity_id=member.id,
                )
            )
        return member
