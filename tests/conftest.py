from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest
from cryptography.fernet import Fernet

from certisure.core.plans import DEFAULT_PLANS, PlanDefinition, PlanName
from certisure.core.security.crypto import SecurityCipher

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@dataclass
class _FakeScalars:
    data: list

    def all(self) -> list:
        return self.data


class FakeSession:
    def __init__(self, *, scalar_values: list | None = None, execute_values: list | None = None) -> None:
        self._scalar_values = list(scalar_values or [])
        self._execute_values = list(execute_values or [])
        self.commits = 0
        self.rollbacks = 0
        self.flushes = 0
        self.added: list = []

    @property
    def committed(self) -> bool:
        return self.commits > 0

    async def scalar(self, stmt):  # noqa: ANN001
        return self._scalar_values.pop(0) if self._scalar_values else None

    async def execute(self, stmt, params=None):  # noqa: ANN001
        if self._execute_values:
            return self._execute_values.pop(0)
        return SimpleNamespace(
            scalar_one_or_none=lambda: None,
            scalars=lambda: _FakeScalars([]),
            all=lambda: [],
            first=lambda: None,
            rowcount=0,
        )

    def add(self, instance) -> None:  # noqa: ANN001
        self.added.append(instance)

    async def flush(self) -> None:
        self.flushes += 1

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


class FakeCertificateRepository:
    def __init__(self, org_id: UUID | None = None, *, existing_count: int = 0, taken: set[str] | None = None) -> None:
        self.org_id = org_id
        self.existing_count = existing_count
        self.taken = set(taken or ())
        self.added: list[SimpleNamespace] = []
        self.items: dict[UUID, SimpleNamespace] = {}

    async def count_created_between(self, start: datetime, end: datetime) -> int:
        return self.existing_count + len(self.added)

    async def certificate_id_taken(self, certificate_id: str) -> bool:
        return certificate_id in self.taken

    async def add_many(self, rows: list[dict[str, object]]) -> list[SimpleNamespace]:
        created = [
            SimpleNamespace(id=uuid4(), org_id=self.org_id, created_at=FIXED_NOW, **row)
            for row in rows
        ]
        self.added.extend(created)
        for item in created:
            self.items[item.id] = item
        return created

    async def get(self, entity_id: UUID) -> SimpleNamespace | None:
        return self.items.get(entity_id)

    async def delete(self, entity_id: UUID) -> bool:
        return self.items.pop(entity_id, None) is not None


class FakeTemplateRepository:
    """Looks templates up by id only; ownership is left to the caller."""

    def __init__(self, templates: list | None = None) -> None:
        self.templates = {template.id: template for template in templates or []}
        self.created: list[SimpleNamespace] = []
        self.updated: list[tuple[UUID, dict]] = []
        self.cleared = 0

    async def get(self, entity_id: UUID):  # noqa: ANN201
        return self.templates.get(entity_id)

    async def list(self, *, limit: int = 100, offset: int = 0) -> list:
        return list(self.templates.values())[offset : offset + limit]

    async def count(self) -> int:
        return len(self.templates)

    async def create(self, **values: object) -> SimpleNamespace:
        canvas = values.pop("canvas", None)
        template = SimpleNamespace(id=uuid4(), org_id=values.pop("org_id", None), **values)
        if canvas is not None:
            template.canvas = canvas
        self.templates[template.id] = template
        self.created.append(template)
        return template

    async def update(self, entity_id: UUID, **values: object):  # noqa: ANN201
        template = self.templates.get(entity_id)
        if template is None:
            return None
        self.updated.append((entity_id, dict(values)))
        for key, value in values.items():
            setattr(template, key, value)
        return template

    async def delete(self, entity_id: UUID) -> bool:
        return self.templates.pop(entity_id, None) is not None

    async def clear_default(self, except_id: UUID | None = None) -> None:
        self.cleared += 1

    async def find_default_for(self, certificate_type: str | None):  # noqa: ANN201
        return None


class FakePlanRegistry:
    def __init__(self, overrides: dict[str, PlanDefinition] | None = None) -> None:
        self.plans = {name.value: definition for name, definition in DEFAULT_PLANS.items()}
        self.plans.update(overrides or {})

    async def get_by_name(self, name: str) -> PlanDefinition | None:
        return self.plans.get((name or "").strip().upper())

    async def get_by_id(self, plan_id: UUID) -> PlanDefinition | None:
        return next((plan for plan in self.plans.values() if plan.id == plan_id), None)


class RecordingAudit:
    def __init__(self) -> None:
        self.events: list = []

    async def record(self, event) -> bool:  # noqa: ANN001
        self.events.append(event)
        return True

    @property
    def actions(self) -> list[str]:
        return [event.action for event in self.events]


def make_org(plan: str = PlanName.FREE.value, **overrides: object) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "name": "Acme Academy",
        "type": None,
        "email": "admin@acme.test",
        "logo": None,
        "website": None,
        "subscription_plan": plan,
        "plan_id": None,
        "account_status": "ACTIVE",
        "subscription_status": "ACTIVE",
        "payment_status": "PAID",
        "subscription_start_date": None,
        "subscription_end_date": None,
        "certificate_prefixes": [],
        "default_certificate_prefix": None,
        "monthly_certificate_limit": 50,
        "certificates_issued_this_month": 0,
        "last_reset_date": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def cipher() -> SecurityCipher:
    return SecurityCipher(Fernet.generate_key().decode())


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def plan_registry() -> FakePlanRegistry:
    return FakePlanRegistry()


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()
