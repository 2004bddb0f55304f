from __future__ import annotations

import calendar
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.audit import ENTITY_ORGANIZATION, Actor, AuditSink
from certisure.core.entitlements import CapabilitySet, capabilities_for
from certisure.core.errors import ForbiddenError, NotFoundError, ValidationError
from certisure.core.plans import PlanRegistry, normalize_plan_name
from certisure.core.quota import QuotaTracker, month_window
from certisure.core.repositories.certificates import CertificateRepository
from certisure.core.repositories.organizations import OrganizationRepository
from certisure.core.tenancy import ROLE_SUPER_ADMIN, TenantScope
from certisure.models.base import utcnow
from certisure.models.organization import Organization

logger = logging.getLogger(__name__)

PREFIX_PATTERN = re.compile(r"^[A-Z0-9]{2,10}$")
FALLBACK_PLAN_LIMITS = {"FREE": 50, "PRO": 500, "ENTERPRISE": 1500}


def add_one_month(value: datetime) -> datetime:
    year, month = (value.year + 1, 1) if value.month == 12 else (value.year, value.month + 1)
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def normalize_prefixes(values: list[str]) -> list[str]:
    prefixes: list[str] = []
    invalid: list[str] = []
    for raw in values:
        prefix = (raw or "").strip().upper()
        if not PREFIX_PATTERN.match(prefix):
            invalid.append(raw)
        elif prefix not in prefixes:
            prefixes.append(prefix)
    if invalid:
        raise ValidationError(
            "Certificate prefixes must be 2-10 upper-case letters or digits",
            field="certificate_prefixes",
            invalid=invalid,
        )
    return prefixes


@dataclass(slots=True)
class OrganizationProfileInput:
    name: str | None = None
    type: str | None = None
    website: str | None = None
    logo: str | None = None
    certificate_prefixes: list[str] | None = None
    default_certificate_prefix: str | None = None


@dataclass(frozen=True, slots=True)
class UsageSnapshot:
    capabilities: CapabilitySet
    issued_this_month: int
    limit: int | None
    remaining: int | None
    period_start: datetime
    period_end: datetime


class OrganizationService:
    def __init__(
        self,
        session: AsyncSession,
        scope: TenantScope,
        *,
        plans: PlanRegistry | None = None,
        organizations: OrganizationRepository | None = None,
        audit: AuditSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.scope = scope
        self.plans = plans or PlanRegistry(session)
        self.organizations = organizations or OrganizationRepository(session, scope)
        self.audit = audit
        self.clock = clock

    def _require_super_admin(self) -> None:
        if not self.scope.is_super_admin:
            raise ForbiddenError("Super administrator role required")

    async def _record(
        self,
        action: str,
        organization: Organization,
        actor: Actor | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.record(
            (actor or Actor(user_id=self.scope.user_id)).event(
                action,
                ENTITY_ORGANIZATION,
                org_id=organization.id,
                entity_id=organization.id,
                details=details or {},
            )
        )

    async def current(self) -> Organization:
        organization = await self.organizations.get_current()
        if organization is None:
            raise NotFoundError("Organization not found")
        return organization

    async def get(self, org_id: UUID) -> Organization:
        organization = await self.organizations.get(org_id)
        if organization is None:
            raise NotFoundError("Organization not found")
        return organization

    async def list(self, *, account_status: str | None = None, limit: int = 100, offset: int = 0) -> list[Organization]:
        self._require_super_admin()
        return await self.organizations.list(account_status=account_status, limit=limit, offset=offset)

    async def capabilities(self, organization: Organization) -> CapabilitySet:
        return await capabilities_for(organization, self.plans)

    async def usage(self, organization: Organization, certificates: CertificateRepository | None = None) -> UsageSnapshot:
        capabilities = await self.capabilities(organization)
        scope = self.scope.pinned(organization.id)
        counter = certificates or CertificateRepository(self.session, scope)
        now = self.clock()
        decision = await QuotaTracker(counter).check_and_reserve(capabilities.max_certificates_per_month, now=now)
        start, end = month_window(now)
        return UsageSnapshot(
            capabilities=capabilities,
            issued_this_month=decision.current_count,
            limit=decision.limit,
            remaining=decision.remaining,
            period_start=start,
            period_end=end,
        )

    async def update_profile(self, data: OrganizationProfileInput, *, actor: Actor | None = None) -> Organization:
        organization = await self.current()

        updated_fields = []
        if (data.name or "").strip():
            organization.name = data.name.strip()
            updated_fields.append("name")
        if data.type is not None:
            organization.type = data.type
            updated_fields.append("type")
        if data.website is not None:
            organization.website = data.website
            updated_fields.append("website")
        if data.logo:
            organization.logo = data.logo
            updated_fields.append("logo")

        prefixes = list(organization.certificate_prefixes or [])
        if data.certificate_prefixes is not None:
            prefixes = normalize_prefixes(data.certificate_prefixes)
            updated_fields.append("certificate_prefixes")
        if data.default_certificate_prefix:
            [default] = normalize_prefixes([data.default_certificate_prefix])
            organization.default_certificate_prefix = default
            if default not in prefixes:
                prefixes.append(default)
            updated_fields.append("default_certificate_prefix")
        elif organization.default_certificate_prefix and organization.default_certificate_prefix not in prefixes:
            organization.default_certificate_prefix = prefixes[0] if prefixes else None
        organization.certificate_prefixes = prefixes

        await self.session.flush()
        await self.session.commit()
        await self._record(
            "ORGANIZATION_PROFILE_UPDATED",
            organization,
            actor,
            {"updated_fields": [name for name in updated_fields if name != "logo"]},
        )
        return organization

    async def _sync_plan(self, organization: Organization, plan_name: str | None = None) -> None:
        target = normalize_plan_name(plan_name or organization.subscription_plan)
        definition = None
        if plan_name is None and organization.plan_id is not None:
            definition = await self.plans.get_by_id(organization.plan_id)
        if definition is None and target:
            definition = await self.plans.get_by_name(target)

        if definition is not None:
            organization.monthly_certificate_limit = definition.max_certificates_per_month
            if plan_name is not None or organization.plan_id is None:
                organization.plan_id = definition.id
            if plan_name is not None:
                organization.subscription_plan = definition.name
        else:
            organization.monthly_certificate_limit = FALLBACK_PLAN_LIMITS.get(target, 50)
            if plan_name is not None:
                organization.subscription_plan = target

    async def approve(self, org_id: UUID, *, actor: Actor | None = None) -> Organization:
        self._require_super_admin()
        organization = await self.get(org_id)
        now = self.clock()

        await self._sync_plan(organization)
        organization.account_status = "ACTIVE"
        organization.payment_status = "PAID"
        organization.subscription_status = "ACTIVE"
        organization.subscription_start_date = now
        organization.subscription_end_date = add_one_month(now)

        await self.session.commit()
        logger.info("Organization approved org=%s plan=%s", organization.id, organization.subscription_plan)
        await self._record("ORGANIZATION_APPROVED", organization, actor)
        return organization

    async def block(self, org_id: UUID, *, actor: Actor | None = None) -> Organization:
        self._require_super_admin()
        organization = await self.get(org_id)
        organization.account_status = "BLOCKED"

        await self.session.commit()
        logger.info("Organization blocked org=%s", organization.id)
        await self._record("ORGANIZATION_BLOCKED", organization, actor)
        return organization

    async def deactivate(self, org_id: UUID, *, actor: Actor | None = None) -> Organization:
        self._require_super_admin()
        organization = await self.get(org_id)
        organization.account_status = "BLOCKED"
        organization.subscription_status = "CANCELLED"
        organization.subscription_end_date = self.clock()

        await self.session.commit()
        logger.info("Subscription deactivated org=%s", organization.id)
        await self._record("SUBSCRIPTION_DEACTIVATED", organization, actor)
        return organization

    async def restart(self, org_id: UUID, plan_name: str | None = None, *, actor: Actor | None = None) -> Organization:
        self._require_super_admin()
        organization = await self.get(org_id)
        now = self.clock()

        organization.subscription_status = "ACTIVE"
        organization.account_status = "ACTIVE"
        organization.subscription_start_date = now
        organization.subscription_end_date = add_one_month(now)
        organization.certificates_issued_this_month = 0
        organization.last_reset_date = now
        await self._sync_plan(organization, plan_name)

        await self.session.commit()
        logger.info("Subscription restarted org=%s plan=%s", organization.id, organization.subscription_plan)
        await self._record("SUBSCRIPTION_RESTARTED", organization, actor, {"new_plan": plan_name or "Same Plan"})
        return organization

    async def renew(self, org_id: UUID, plan_name: str | None = None, *, actor: Actor | None = None) -> Organization:
        """Open a fresh one-month window after a successful payment."""
        self._require_super_admin()
        organization = await self.get(org_id)
        now = self.clock()

        organization.account_status = "ACTIVE"
        organization.payment_status = "PAID"
        organization.subscription_status = "ACTIVE"
        organization.subscription_start_date = now
        organization.subscription_end_date = add_one_month(now)
        await self._sync_plan(organization, plan_name)

        await self.session.commit()
        logger.info("Subscription renewed org=%s plan=%s", organization.id, organization.subscription_plan)
        await self._record("SUBSCRIPTION_RENEWED", organization, actor, {"plan": organization.subscription_plan})
        return organization

    async def delete(self, org_id: UUID, *, actor: Actor | None = None) -> None:
        self._require_super_admin()
        organization = await self.get(org_id)
        name = organization.name

        await self.organizations.delete(org_id)
        await self.session.commit()
        logger.info("Organization deleted org=%s", org_id)
        if self.audit is not None:
            await self.audit.record(
                (actor or Actor(user_id=self.scope.user_id)).event(
                    "ORGANIZATION_DELETED",
                    ENTITY_ORGANIZATION,
                    entity_id=org_id,
                    details={"name": name},
                )
            )

    async def reconcile_usage(self, organization: Organization) -> bool:
        """Refresh the advisory usage fields from persisted certificates."""
        snapshot = await self.usage(organization)
        changed = (
            organization.certificates_issued_this_month != snapshot.issued_this_month
            or organization.monthly_certificate_limit != (snapshot.limit or 0)
            or organization.last_reset_date is None
            or organization.last_reset_date < snapshot.period_start
        )
        organization.certificates_issued_this_month = snapshot.issued_this_month
        organization.monthly_certificate_limit = snapshot.limit or 0
        if organization.last_reset_date is None or organization.last_reset_date < snapshot.period_start:
            organization.last_reset_date = snapshot.period_start
        return changed


def platform_scope(user_id: UUID | None = None) -> TenantScope:
    return TenantScope(org_id=None, role=ROLE_SUPER_ADMIN, user_id=user_id)
