"""Tenant isolation guard.

Every read or write of a tenant-scoped row goes through a ``TenantScope``.
The scope is a required argument of every tenant repository, so there is no
unscoped query path for ordinary request handlers. The only bypass is the
SUPER_ADMIN role.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeVar
from uuid import UUID

ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_ORG_ADMIN = "ORG_ADMIN"
ROLE_TEAM_MEMBER = "TEAM_MEMBER"

StatementT = TypeVar("StatementT")


class TenantContextMissingError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class TenantScope:
    org_id: UUID | None
    role: str = ROLE_TEAM_MEMBER
    user_id: UUID | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def require_org_id(self) -> UUID:
        if self.org_id is None:
            raise TenantContextMissingError("Organization context is missing from the current request")
        return self.org_id

    def filter(self, stmt: StatementT, model: type) -> StatementT:
        """Add the org filter to a select/update/delete statement."""
        if self.is_super_admin:
            return stmt
        return stmt.where(model.org_id == self.require_org_id())

    def owns(self, entity: object) -> bool:
        if self.is_super_admin:
            return True
        return self.org_id is not None and getattr(entity, "org_id", None) == self.org_id

    def pinned(self, org_id: UUID) -> TenantScope:
        """Scope limited to one organization, even for a super administrator."""
        if not self.is_super_admin and org_id != self.org_id:
            raise TenantContextMissingError("Scope cannot be moved to another organization")
        role = ROLE_ORG_ADMIN if self.is_super_admin else self.role
        return TenantScope(org_id=org_id, role=role, user_id=self.user_id)
