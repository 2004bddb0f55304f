"""Entitlement evaluation.

An organization can point at its plan two ways: the ``plan_id`` reference and
the older ``subscription_plan`` string. Both are read once into a ``PlanRef``
and the capability set is derived from that, so handlers never consult either
field directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from certisure.core.errors import ForbiddenError
from certisure.core.plans import (
    LEGACY_PRO_NAMES,
    PlanDefinition,
    PlanName,
    PlanPermissions,
    PlanRegistry,
    normalize_plan_name,
)
from certisure.models.organization import Organization

logger = logging.getLogger(__name__)

LEGACY_PRO_CERTIFICATE_LIMIT = 100000
LEGACY_FREE_CERTIFICATE_LIMIT = 10

ACCOUNT_ACTIVE = "ACTIVE"


@dataclass(frozen=True, slots=True)
class PlanRef:
    definition: PlanDefinition | None
    subscription_plan: str = ""

    @property
    def plan_name(self) -> str:
        return self.definition.name if self.definition is not None else ""

    @property
    def legacy_name(self) -> str:
        return normalize_plan_name(self.subscription_plan)

    @property
    def is_legacy_pro(self) -> bool:
        return self.plan_name in LEGACY_PRO_NAMES or self.legacy_name in LEGACY_PRO_NAMES

    @property
    def diverges(self) -> bool:
        if self.definition is None or not self.legacy_name:
            return False
        return self.plan_name != self.legacy_name.removesuffix("_PLAN")


@dataclass(frozen=True, slots=True)
class CapabilitySet:
    tier: str
    permissions: PlanPermissions
    max_certificates_per_month: int
    max_templates: int | None = None
    max_team_members: int | None = None

    @property
    def is_free(self) -> bool:
        return self.tier == PlanName.FREE.value

    def allows(self, feature: str) -> bool:
        if hasattr(self.permissions, feature) and feature != "editor_tools":
            return bool(getattr(self.permissions, feature))
        return bool(getattr(self.permissions.editor_tools, feature, False))


def _legacy_tier(plan_ref: PlanRef) -> str:
    for candidate in (plan_ref.plan_name, plan_ref.legacy_name):
        tier = candidate.removesuffix("_PLAN")
        if candidate in LEGACY_PRO_NAMES and tier in {PlanName.PRO.value, PlanName.ENTERPRISE.value}:
            return tier
    return PlanName.PRO.value


def effective_capabilities(organization: Organization, plan_ref: PlanRef) -> CapabilitySet:
    definition = plan_ref.definition
    permissions = definition.permissions if definition is not None else PlanPermissions()

    if plan_ref.diverges:
        logger.warning(
            "Plan sources disagree for org=%s plan=%s subscription_plan=%s",
            getattr(organization, "id", None),
            plan_ref.plan_name,
            plan_ref.legacy_name,
        )

    legacy_pro = plan_ref.is_legacy_pro
    if legacy_pro:
        permissions = permissions.widened(custom_templates=True, bulk_issuance=True)

    if definition is not None and definition.max_certificates_per_month:
        limit = definition.max_certificates_per_month
    elif legacy_pro:
        limit = LEGACY_PRO_CERTIFICATE_LIMIT
    else:
        limit = LEGACY_FREE_CERTIFICATE_LIMIT

    if definition is not None and definition.name != PlanName.FREE.value:
        tier = definition.name
    elif legacy_pro:
        tier = _legacy_tier(plan_ref)
    else:
        tier = PlanName.FREE.value

    return CapabilitySet(
        tier=tier,
        permissions=permissions,
        max_certificates_per_month=limit,
        max_templates=definition.max_templates if definition is not None else None,
        max_team_members=definition.max_team_members if definition is not None else None,
    )


async def resolve_plan_for(organization: Organization, registry: PlanRegistry) -> PlanRef:
    definition: PlanDefinition | None = None
    if organization.plan_id is not None:
        loaded = organization.__dict__.get("plan")
        if loaded is not None:
            definition = PlanDefinition.from_model(loaded)
        else:
            definition = await registry.get_by_id(organization.plan_id)
    if definition is None and organization.subscription_plan:
        definition = await registry.get_by_name(organization.subscription_plan)
    return PlanRef(definition=definition, subscription_plan=organization.subscription_plan or "")


def require_active_account(organization: Organization) -> None:
    if organization.account_status != ACCOUNT_ACTIVE:
        raise ForbiddenError(
            "Your organization account is not active. Please contact support.",
            account_status=organization.account_status,
        )


def require_current_subscription(organization: Organization, now: datetime | None = None) -> None:
    end_date = organization.subscription_end_date
    if end_date is None:
        return
    now = now or datetime.now(timezone.utc)
    if end_date.tzinfo is None:
        end_date = end_date.replace(tzinfo=timezone.utc)
    if now > end_date:
        raise ForbiddenError(
            "Your subscription has expired. Please renew to continue issuing certificates.",
            subscription_end_date=end_date.isoformat(),
        )


def require_feature(capabilities: CapabilitySet, feature: str, message: str) -> None:
    if not capabilities.allows(feature):
        raise ForbiddenError(message, feature=feature, plan=capabilities.tier)


async def capabilities_for(organization: Organization, registry: PlanRegistry) -> CapabilitySet:
    return effective_capabilities(organization, await resolve_plan_for(organization, registry))
