from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from certisure.api.dependencies import (
    get_audit_sink,
    get_capabilities,
    get_current_organization,
    get_notifier,
    get_plan_registry,
    request_actor,
)
from certisure.api.main import app
from certisure.core.audit import Actor
from certisure.core.auth import AuthContext, require_auth_context
from certisure.core.db import get_db_session
from certisure.core.entitlements import PlanRef, effective_capabilities
from certisure.core.errors import ForbiddenError, InternalError, NotFoundError, QuotaExceededError
from certisure.core.plans import DEFAULT_PLANS, PlanName
from certisure.core.tenancy import ROLE_ORG_ADMIN, ROLE_SUPER_ADMIN, ROLE_TEAM_MEMBER
from certisure.core.verification import PublicCertificate
from conftest import FIXED_NOW, FakePlanRegistry, FakeSession, RecordingAudit, make_org


def _certificate(**overrides: object) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "certificate_id": "CERT-2026-ABCDEFGH",
        "recipient_name": "Ada Lovelace",
        "recipient_email": "ada@example.com",
        "course_name": "Engines",
        "certificate_type": "Completion",
        "status": "ACTIVE",
        "batch_name": None,
        "template_id": None,
        "issue_date": FIXED_NOW,
        "expiry_date": None,
        "verification_url": "http://localhost:5173/verify/CERT-2026-ABCDEFGH",
        "render_data": {"elements": []},
        "created_at": FIXED_NOW,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def organization() -> SimpleNamespace:
    return make_org(PlanName.PRO.value)


@pytest.fixture
def auth_context(organization: SimpleNamespace) -> AuthContext:
    return AuthContext(org_id=organization.id, user_id=uuid4(), role=ROLE_ORG_ADMIN, subject="user_123")


@pytest.fixture
def fake_db() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(auth_context: AuthContext, organization: SimpleNamespace, fake_db: FakeSession):
    async def _auth_override() -> AuthContext:
        return auth_context

    async def _db_override():
        yield fake_db

    async def _organization_override() -> SimpleNamespace:
        return organization

    async def _capabilities_override():
        plan = DEFAULT_PLANS[PlanName(organization.subscription_plan)]
        return effective_capabilities(organization, PlanRef(plan, organization.subscription_plan))

    async def _registry_override() -> FakePlanRegistry:
        return FakePlanRegistry()

    async def _actor_override() -> Actor:
        return Actor(user_id=auth_context.user_id)

    app.dependency_overrides[require_auth_context] = _auth_override
    app.dependency_overrides[get_db_session] = _db_override
    app.dependency_overrides[get_current_organization] = _organization_override
    app.dependency_overrides[get_capabilities] = _capabilities_override
    app.dependency_overrides[get_plan_registry] = _registry_override
    app.dependency_overrides[get_audit_sink] = RecordingAudit
    app.dependency_overrides[get_notifier] = lambda: None
    app.dependency_overrides[request_actor] = _actor_override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health_endpoint(client: TestClient) -> None:
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_issue_certificate_uses_organization_scope(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    organization: SimpleNamespace,
) -> None:
    from certisure.api.routes import certificates

    seen = {}

    class FakeIssuance:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            seen["scope"] = scope

        async def issue(self, org, user_id, fields, *, actor=None):  # noqa: ANN001
            seen["fields"] = fields
            return _certificate(recipient_name=fields.recipient_name)

    monkeypatch.setattr(certificates, "get_security_cipher", lambda: object())
    monkeypatch.setattr(certificates, "IssuanceService", FakeIssuance)

    res = client.post(
        "/api/v1/certificates",
        json={"recipient_name": "Ada", "recipient_email": "ada@example.com", "course_name": "Engines"},
    )

    assert res.status_code == 201
    assert res.json()["recipient_name"] == "Ada"
    assert seen["scope"].org_id == organization.id
    assert seen["fields"].certificate_type is None


def test_issue_certificate_maps_quota_error(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.api.routes import certificates

    class FakeIssuance:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            pass

        async def issue(self, org, user_id, fields, *, actor=None):  # noqa: ANN001
            raise QuotaExceededError("Your monthly certificate limit (500) on the PRO plan has been reached", limit=500, plan="PRO")

    monkeypatch.setattr(certificates, "get_security_cipher", lambda: object())
    monkeypatch.setattr(certificates, "IssuanceService", FakeIssuance)

    res = client.post("/api/v1/certificates", json={"recipient_name": "Ada"})

    assert res.status_code == 403
    body = res.json()
    assert body["code"] == "quota_exceeded"
    assert body["limit"] == 500
    assert "500" in body["detail"]


def test_bulk_issue_applies_batch_defaults(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.api.routes import certificates

    template_id = uuid4()
    seen = {}

    class FakeIssuance:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            pass

        async def issue_many(self, org, user_id, rows, *, actor=None):  # noqa: ANN001
            seen["rows"] = rows
            return [_certificate(batch_name=row.batch_name, template_id=row.template_id) for row in rows]

    monkeypatch.setattr(certificates, "get_security_cipher", lambda: object())
    monkeypatch.setattr(certificates, "IssuanceService", FakeIssuance)

    res = client.post(
        "/api/v1/certificates/bulk",
        json={
            "template_id": str(template_id),
            "batch_name": "Cohort",
            "certificates": [
                {"recipient_name": "A", "recipient_email": "a@x.io", "course_name": "C"},
                {"recipient_name": "B", "recipient_email": "b@x.io", "course_name": "C", "batch_name": "Own"},
            ],
        },
    )

    assert res.status_code == 201
    assert res.json()["count"] == 2
    assert [row.batch_name for row in seen["rows"]] == ["Cohort", "Own"]
    assert all(row.template_id == template_id for row in seen["rows"])


def test_get_certificate_not_found(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.api.routes import certificates

    class FakeCertificates:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            pass

        async def get(self, certificate_pk):  # noqa: ANN001
            raise NotFoundError("Certificate not found")

    monkeypatch.setattr(certificates, "CertificateService", FakeCertificates)

    res = client.get(f"/api/v1/certificates/{uuid4()}")

    assert res.status_code == 404
    assert res.json() == {"detail": "Certificate not found", "code": "not_found"}


def test_template_update_gate_error(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.api.routes import templates

    class FakeTemplates:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            pass

        async def update(self, organization, capabilities, template_id, data, *, actor=None):  # noqa: ANN001
            raise ForbiddenError("Custom background colors are not available", plan="FREE", features=["background_color"])

    monkeypatch.setattr(templates, "get_security_cipher", lambda: object())
    monkeypatch.setattr(templates, "CertificateTemplateService", FakeTemplates)

    res = client.put(f"/api/v1/templates/{uuid4()}", json={"background_color": "#ff0000"})

    assert res.status_code == 403
    assert res.json()["features"] == ["background_color"]


def test_template_create_validates_size(client: TestClient) -> None:
    res = client.post("/api/v1/templates", json={"template_name": "T", "canvas": [], "width": 0})
    assert res.status_code == 422


def test_public_verify_hides_internal_fields(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.api.routes import verify

    class FakeVerification:
        def __init__(self, session):  # noqa: ANN001
            pass

        async def verify(self, certificate_id: str) -> PublicCertificate:
            return PublicCertificate(
                certificate_id=certificate_id,
                recipient_name="Ada",
                course_name="Engines",
                certificate_type="Completion",
                status="ACTIVE",
                issue_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
                expiry_date=None,
                batch_name=None,
                verification_url=None,
                render_data={"elements": []},
                organization_name="Acme Academy",
                organization_logo=None,
                organization_website=None,
            )

    monkeypatch.setattr(verify, "VerificationService", FakeVerification)

    res = client.get("/api/v1/verify/CERT-2026-ABCDEFGH")

    assert res.status_code == 200
    body = res.json()
    assert body["is_valid"] is True
    assert body["organization_name"] == "Acme Academy"
    for hidden in ("id", "issued_by", "recipient_email", "render_data", "org_id"):
        assert hidden not in body


def test_entitlements_reflect_plan(client: TestClient) -> None:
    res = client.get("/api/v1/billing/entitlements")

    assert res.status_code == 200
    body = res.json()
    assert body["tier"] == "PRO"
    assert body["max_certificates_per_month"] == 500
    assert body["permissions"]["bulk_issuance"] is True
    assert body["permissions"]["editor_tools"]["qr_code"] is True


def test_list_plans_commits_seed(client: TestClient, fake_db: FakeSession) -> None:
    from certisure.core.plans import PlanDefinition

    class _Registry(FakePlanRegistry):
        async def list_plans(self) -> list[PlanDefinition]:
            return list(self.plans.values())

    app.dependency_overrides[get_plan_registry] = lambda: _Registry()

    res = client.get("/api/v1/plans")

    assert res.status_code == 200
    assert [plan["name"] for plan in res.json()] == ["FREE", "PRO", "ENTERPRISE"]
    assert fake_db.committed is True


def test_plan_update_requires_super_admin(client: TestClient) -> None:
    res = client.put("/api/v1/plans/PRO", json={"max_certificates_per_month": 1000})
    assert res.status_code == 403


def test_organization_approval_requires_super_admin(client: TestClient) -> None:
    res = client.post(f"/api/v1/organizations/{uuid4()}/approve")
    assert res.status_code == 403


def test_certificate_delete_refused_for_team_member(client: TestClient, auth_context: AuthContext) -> None:
    auth_context.role = ROLE_TEAM_MEMBER

    res = client.delete(f"/api/v1/certificates/{uuid4()}")

    assert res.status_code == 403


def test_super_admin_can_approve(client: TestClient, monkeypatch: pytest.MonkeyPatch, auth_context: AuthContext) -> None:
    from certisure.api.routes import organizations

    auth_context.role = ROLE_SUPER_ADMIN
    approved = make_org("PRO")

    class FakeOrganizations:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            assert scope.is_super_admin

        async def approve(self, org_id, *, actor=None):  # noqa: ANN001
            return approved

    monkeypatch.setattr(organizations, "OrganizationService", FakeOrganizations)

    res = client.post(f"/api/v1/organizations/{approved.id}/approve")

    assert res.status_code == 200
    assert res.json()["account_status"] == "ACTIVE"


def test_super_admin_can_renew_with_plan(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    auth_context: AuthContext,
) -> None:
    from certisure.api.routes import organizations

    auth_context.role = ROLE_SUPER_ADMIN
    renewed = make_org("ENTERPRISE")
    calls: list = []

    class FakeOrganizations:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            assert scope.is_super_admin

        async def renew(self, org_id, plan_name=None, *, actor=None):  # noqa: ANN001
            calls.append((org_id, plan_name))
            return renewed

    monkeypatch.setattr(organizations, "OrganizationService", FakeOrganizations)

    res = client.post(f"/api/v1/organizations/{renewed.id}/renew", json={"plan": "ENTERPRISE"})

    assert res.status_code == 200
    assert calls == [(renewed.id, "ENTERPRISE")]


def test_renew_requires_super_admin(client: TestClient) -> None:
    res = client.post(f"/api/v1/organizations/{uuid4()}/renew", json={})
    assert res.status_code == 403


def test_team_roster_refused_for_team_member(client: TestClient, auth_context: AuthContext) -> None:
    auth_context.role = ROLE_TEAM_MEMBER

    res = client.get("/api/v1/team")

    assert res.status_code == 403


def test_add_team_member_returns_created_user(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
    organization: SimpleNamespace,
) -> None:
    from certisure.api.routes import team

    class FakeTeam:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            assert scope.org_id == organization.id

        async def add_member(self, org, capabilities, data, *, actor=None):  # noqa: ANN001
            return SimpleNamespace(
                id=uuid4(),
                org_id=org.id,
                name=data.name,
                email=data.email,
                role=ROLE_TEAM_MEMBER,
                is_active=True,
                created_at=FIXED_NOW,
            )

    monkeypatch.setattr(team, "TeamService", FakeTeam)

    res = client.post("/api/v1/team", json={"name": "Grace", "email": "grace@acme.test"})

    assert res.status_code == 201
    assert res.json()["role"] == ROLE_TEAM_MEMBER

def test_audit_logs_require_plan_feature(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.api.routes import audit_logs

    free_org = make_org("FREE")

    class FakeOrganizations:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            pass

        async def current(self):  # noqa: ANN201
            return free_org

    monkeypatch.setattr(audit_logs, "OrganizationService", FakeOrganizations)

    res = client.get("/api/v1/audit-logs")

    assert res.status_code == 403
    assert res.json()["feature"] == "audit_logs"


def test_internal_errors_are_masked_in_production(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from certisure.api import main
    from certisure.api.routes import certificates

    class FakeCertificates:
        def __init__(self, session, scope, **kwargs):  # noqa: ANN001, ANN003
            pass

        async def get(self, certificate_pk):  # noqa: ANN001
            raise InternalError("database exploded at host db-1")

    monkeypatch.setattr(certificates, "CertificateService", FakeCertificates)
    monkeypatch.setattr(main.settings, "environment", "production")

    res = client.get(f"/api/v1/certificates/{uuid4()}")

    assert res.status_code == 500
    assert res.json() == {"detail": main.GENERIC_ERROR_MESSAGE, "code": "internal"}
