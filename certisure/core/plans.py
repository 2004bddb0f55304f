"""Plan registry: tier definitions, their capability matrix and a read-through cache."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import redis.asyncio as redis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.config import settings
from certisure.core.errors import NotFoundError, ValidationError
from certisure.models.base import utcnow
from certisure.models.certificate import Certificate
from certisure.models.organization import Organization
from certisure.models.plan import Plan

logger = logging.getLogger(__name__)


class PlanName(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"


LEGACY_PRO_NAMES = frozenset({"PRO", "ENTERPRISE", "PRO_PLAN", "ENTERPRISE_PLAN"})


def normalize_plan_name(value: str | None) -> str:
    return (value or "").strip().upper()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _flag(data: dict[str, Any], name: str, default: bool = False) -> bool:
    if name in data:
        return bool(data[name])
    return bool(data.get(_camel(name), default))


@dataclass(frozen=True, slots=True)
class EditorTools:
    # Text editing is allowed unless a plan turns it off explicitly.
    text_editing: bool = True
    font_style: bool = False
    font_size: bool = False
    font_color: bool = False
    shapes: bool = False
    background_image: bool = False
    background_color: bool = False
    logo_upload: bool = False
    signature_upload: bool = False
    size_control: bool = False
    orientation_control: bool = False
    qr_code: bool = False

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> EditorTools:
        data = data or {}
        return cls(**{item.name: _flag(data, item.name, item.default) for item in fields(cls)})

    @classmethod
    def all_enabled(cls) -> EditorTools:
        return cls(**{item.name: True for item in fields(cls)})


@dataclass(frozen=True, slots=True)
class PlanPermissions:
    custom_templates: bool = False
    bulk_issuance: bool = False
    email_templates: bool = False
    qr_verification: bool = False
    analytics: bool = False
    api_access: bool = False
    custom_backgrounds: bool = False
    teams: bool = False
    audit_logs: bool = False
    white_labeling: bool = False
    editor_tools: EditorTools = field(default_factory=EditorTools)

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> PlanPermissions:
        """Build from stored JSON; snake_case and camelCase keys are both accepted."""
        data = data or {}
        flags = {item.name: _flag(data, item.name) for item in fields(cls) if item.name != "editor_tools"}
        tools = data.get("editor_tools", data.get("editorTools"))
        return cls(**flags, editor_tools=EditorTools.from_mapping(tools))

    def widened(self, **flags: bool) -> PlanPermissions:
        """Return a copy where the given flags are switched on. Flags are never switched off."""
        return replace(self, **{name: True for name, value in flags.items() if value})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class PlanDefinition:
    name: str
    monthly_price: Decimal
    yearly_price: Decimal
    max_certificates_per_month: int
    max_team_members: int
    max_templates: int
    permissions: PlanPermissions
    features: tuple[str, ...] = ()
    is_active: bool = True
    id: UUID | None = None

    @classmethod
    def from_model(cls, plan: Plan) -> PlanDefinition:
        return cls(
            id=plan.id,
            name=normalize_plan_name(plan.name),
            monthly_price=Decimal(str(plan.monthly_price or 0)),
            yearly_price=Decimal(str(plan.yearly_price or 0)),
            max_certificates_per_month=int(plan.max_certificates_per_month or 0),
            max_team_members=int(plan.max_team_members or 0),
            max_templates=int(plan.max_templates or 0),
            permissions=PlanPermissions.from_mapping(plan.permissions),
            features=tuple(plan.features or ()),
            is_active=bool(plan.is_active),
        )

    def to_cache(self) -> str:
        return json.dumps(
            {
                "id": str(self.id) if self.id else None,
                "name": self.name,
                "monthly_price": str(self.monthly_price),
                "yearly_price": str(self.yearly_price),
                "max_certificates_per_month": self.max_certificates_per_month,
                "max_team_members": self.max_team_members,
                "max_templates": self.max_templates,
                "permissions": self.permissions.to_dict(),
                "features": list(self.features),
                "is_active": self.is_active,
            }
        )

    @classmethod
    def from_cache(cls, raw: str) -> PlanDefinition:
        data = json.loads(raw)
        return cls(
            id=UUID(data["id"]) if data.get("id") else None,
            name=data["name"],
            monthly_price=Decimal(data["monthly_price"]),
            yearly_price=Decimal(data["yearly_price"]),
            max_certificates_per_month=int(data["max_certificates_per_month"]),
            max_team_members=int(data["max_team_members"]),
            max_templates=int(data["max_templates"]),
            permissions=PlanPermissions.from_mapping(data.get("permissions")),
            features=tuple(data.get("features") or ()),
            is_active=bool(data.get("is_active", True)),
        )


_FREE_PERMISSIONS = PlanPermissions(
    qr_verification=True,
    editor_tools=EditorTools(text_editing=False, logo_upload=True, signature_upload=True),
)

_PRO_PERMISSIONS = PlanPermissions(
    custom_templates=True,
    bulk_issuance=True,
    email_templates=True,
    qr_verification=True,
    analytics=True,
    custom_backgrounds=True,
    teams=True,
    audit_logs=True,
    editor_tools=EditorTools.all_enabled(),
)

_ENTERPRISE_PERMISSIONS = replace(_PRO_PERMISSIONS, api_access=True, white_labeling=True)

DEFAULT_PLANS: dict[PlanName, PlanDefinition] = {
    PlanName.FREE: PlanDefinition(
        name=PlanName.FREE.value,
        monthly_price=Decimal("0"),
        yearly_price=Decimal("0"),
        max_certificates_per_month=50,
        max_team_members=1,
        max_templates=2,
        permissions=_FREE_PERMISSIONS,
        features=("50 Certificates/Month", "2 Default Templates", "Standard QR Verification", "Email Support"),
    ),
    PlanName.PRO: PlanDefinition(
        name=PlanName.PRO.value,
        monthly_price=Decimal("29"),
        yearly_price=Decimal("290"),
        max_certificates_per_month=500,
        max_team_members=5,
        max_templates=20,
        permissions=_PRO_PERMISSIONS,
        features=(
            "500 Certificates/Month",
            "Unlimited Templates",
            "Bulk Issuance",
            "Priority Support",
            "Advanced Editor Tools",
        ),
    ),
    PlanName.ENTERPRISE: PlanDefinition(
        name=PlanName.ENTERPRISE.value,
        monthly_price=Decimal("99"),
        yearly_price=Decimal("990"),
        max_certificates_per_month=5000,
        max_team_members=20,
        max_templates=100,
        permissions=_ENTERPRISE_PERMISSIONS,
        features=("5000 Certificates/Month", "White Labeling", "API Access", "Custom Domain", "Dedicated Support"),
    ),
}


class PlanCache:
    def __init__(self, redis_url: str | None = None, ttl_seconds: int | None = None) -> None:
        self.redis_url = redis_url or settings.redis_url
        self.ttl_seconds = ttl_seconds or settings.plan_cache_ttl_seconds

    @staticmethod
    def _key(name: str) -> str:
        return f"plans:definition:{name}"

    async def get(self, name: str) -> PlanDefinition | None:
        redis_client = redis.from_url(self.redis_url, decode_responses=True)
        try:
            raw = await redis_client.get(self._key(name))
        finally:
            await redis_client.aclose()
        return PlanDefinition.from_cache(raw) if raw else None

    async def set(self, definition: PlanDefinition) -> None:
        redis_client = redis.from_url(self.redis_url, decode_responses=True)
        try:
            await redis_client.set(self._key(definition.name), definition.to_cache(), ex=self.ttl_seconds)
        finally:
            await redis_client.aclose()

    async def invalidate(self, name: str) -> None:
        redis_client = redis.from_url(self.redis_url, decode_responses=True)
        try:
            await redis_client.delete(self._key(name))
        finally:
            await redis_client.aclose()


def default_plan_cache() -> PlanCache | None:
    return PlanCache() if settings.plan_cache_enabled else None


class PlanRegistry:
    def __init__(self, session: AsyncSession, cache: PlanCache | None = None) -> None:
        self.session = session
        self.cache = cache

    async def _cached(self, name: str) -> PlanDefinition | None:
        if self.cache is None:
            return None
        try:
            return await self.cache.get(name)
        except Exception:
            logger.exception("Plan cache read failed for plan=%s", name)
            return None

    async def _remember(self, definition: PlanDefinition) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(definition)
        except Exception:
            logger.exception("Plan cache write failed for plan=%s", definition.name)

    async def _forget(self, name: str) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.invalidate(name)
        except Exception:
            logger.exception("Plan cache invalidation failed for plan=%s", name)

    async def seed_defaults(self) -> bool:
        existing = int(await self.session.scalar(select(func.count(Plan.id))) or 0)
        if existing:
            return False

        for definition in DEFAULT_PLANS.values():
            self.session.add(
                Plan(
                    name=definition.name,
                    monthly_price=definition.monthly_price,
                    yearly_price=definition.yearly_price,
                    max_certificates_per_month=definition.max_certificates_per_month,
                    max_team_members=definition.max_team_members,
                    max_templates=definition.max_templates,
                    features=list(definition.features),
                    permissions=definition.permissions.to_dict(),
                    is_active=True,
                )
            )
        await self.session.flush()
        logger.info("Seeded default plans")
        return True

    async def list_plans(self) -> list[PlanDefinition]:
        await self.seed_defaults()
        result = await self.session.execute(select(Plan).order_by(Plan.monthly_price.asc()))
        return [PlanDefinition.from_model(plan) for plan in result.scalars().all()]

    async def get_by_name(self, name: str) -> PlanDefinition | None:
        normalized = normalize_plan_name(name)
        if not normalized:
            return None

        cached = await self._cached(normalized)
        if cached is not None:
            return cached

        plan = await self.session.scalar(select(Plan).where(Plan.name == normalized))
        if plan is None:
            return None
        definition = PlanDefinition.from_model(plan)
        await self._remember(definition)
        return definition

    async def get_by_id(self, plan_id: UUID) -> PlanDefinition | None:
        plan = await self.session.get(Plan, plan_id)
        return PlanDefinition.from_model(plan) if plan is not None else None

    async def get_model(self, name: str) -> Plan | None:
        return await self.session.scalar(select(Plan).where(Plan.name == normalize_plan_name(name)))

    async def update_plan(self, name: str, **changes: Any) -> PlanDefinition:
        normalized = normalize_plan_name(name)
        if normalized not in {tier.value for tier in PlanName}:
            raise ValidationError(f"Unknown plan '{name}'", plan=normalized)

        plan = await self.get_model(normalized)
        if plan is None:
            seed = DEFAULT_PLANS[PlanName(normalized)]
            plan = Plan(
                name=seed.name,
                features=list(seed.features),
                permissions=seed.permissions.to_dict(),
            )
            self.session.add(plan)

        for key, value in changes.items():
            if value is None or key in {"id", "name"}:
                continue
            if key == "permissions":
                value = PlanPermissions.from_mapping(value).to_dict()
            elif key == "features":
                value = list(value)
            setattr(plan, key, value)

        plan.last_updated = utcnow()
        await self.session.flush()
        await self._forget(normalized)
        logger.info("Plan updated plan=%s fields=%s", normalized, sorted(changes))
        return PlanDefinition.from_model(plan)

    async def require(self, name: str) -> PlanDefinition:
        definition = await self.get_by_name(name)
        if definition is None:
            raise NotFoundError(f"Plan '{name}' not found", plan=normalize_plan_name(name))
        return definition

    async def analytics(self) -> dict[str, Any]:
        plans = await self.list_plans()

        org_rows = await self.session.execute(
            select(
                Organization.subscription_plan,
                func.count(Organization.id),
                func.count(Organization.id).filter(Organization.account_status == "ACTIVE"),
            ).group_by(Organization.subscription_plan)
        )
        org_stats = {plan: (int(total), int(active)) for plan, total, active in org_rows.all()}

        cert_rows = await self.session.execute(
            select(Organization.subscription_plan, func.count(Certificate.id))
            .join(Organization, Organization.id == Certificate.org_id)
            .group_by(Organization.subscription_plan)
        )
        cert_stats = {plan: int(total) for plan, total in cert_rows.all()}

        breakdown = []
        total_revenue = Decimal("0")
        for plan in plans:
            total, active = org_stats.get(plan.name, (0, 0))
            revenue = plan.monthly_price * active
            total_revenue += revenue
            breakdown.append(
                {
                    "plan": plan.name,
                    "monthly_price": plan.monthly_price,
                    "org_count": total,
                    "active_subscriptions": active,
                    "expired_subscriptions": total - active,
                    "total_certificates_issued": cert_stats.get(plan.name, 0),
                    "estimated_monthly_revenue": revenue,
                }
            )

        return {
            "total_orgs": sum(total for total, _ in org_stats.values()),
            "total_active_orgs": sum(active for _, active in org_stats.values()),
            "total_revenue_estimate": total_revenue,
            "plan_breakdown": breakdown,
        }
