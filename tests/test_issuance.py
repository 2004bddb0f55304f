from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from certisure.core import issuance
from certisure.core.elements import ElementTree, TextElement
from certisure.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from certisure.core.issuance import IssuanceService, IssueFields, resolve_prefix
from certisure.core.security.crypto import OpenedText
from certisure.core.templates import WATERMARK_TEXT
from certisure.core.tenancy import ROLE_ORG_ADMIN, ROLE_SUPER_ADMIN, TenantScope
from conftest import (
    FIXED_NOW,
    FakeCertificateRepository,
    FakePlanRegistry,
    FakeSession,
    FakeTemplateRepository,
    RecordingAudit,
    make_org,
)

USER_ID = uuid4()


class _Notifier:
    enabled = True

    def __init__(self) -> None:
        self.messages: list = []

    async def notify_certificate_issued(self, message) -> bool:  # noqa: ANN001
        self.messages.append(message)
        return True


def _fields(**overrides: object) -> IssueFields:
    values = {
        "recipient_name": "Ada Lovelace",
        "recipient_email": "Ada@Example.com",
        "course_name": "Analytical Engines",
        "certificate_type": "Achievement",
    }
    values.update(overrides)
    return IssueFields(**values)


def _service(cipher, organization, **kwargs):  # noqa: ANN001, ANN202
    certificates = kwargs.pop(
        "certificates",
        FakeCertificateRepository(
            organization.id,
            existing_count=kwargs.pop("existing", 0),
            taken=kwargs.pop("taken", None),
        ),
    )
    session = kwargs.pop("session", FakeSession())
    scope = kwargs.pop("scope", TenantScope(org_id=organization.id, role=ROLE_ORG_ADMIN, user_id=USER_ID))
    service = IssuanceService(
        session,
        scope,
        cipher=cipher,
        plans=FakePlanRegistry(),
        certificates=certificates,
        templates=kwargs.pop("templates", FakeTemplateRepository()),
        email_templates=FakeTemplateRepository(),
        audit=kwargs.pop("audit", RecordingAudit()),
        notifier=kwargs.pop("notifier", None),
        qr_renderer=lambda url: f"qr:{url}",
        clock=lambda: FIXED_NOW,
    )
    return service, certificates, session


def _contents(render_data: dict) -> list[str]:
    return [element.get("content") for element in render_data["elements"] if element["type"] == "text"]


@pytest.mark.asyncio
async def test_free_plan_issues_watermarked_builtin_layout(cipher) -> None:  # noqa: ANN001
    organization = make_org("FREE")
    audit = RecordingAudit()
    service, certificates, session = _service(cipher, organization, audit=audit)

    certificate = await service.issue(organization, USER_ID, _fields(), actor=None)

    contents = _contents(certificate.render_data)
    assert "CERTIFICATE OF ACHIEVEMENT" in contents
    assert WATERMARK_TEXT in contents
    assert "Ada Lovelace" in contents
    assert certificate.certificate_id.startswith("CERT-2026-")
    assert len(certificate.certificate_id.rsplit("-", 1)[1]) == 8
    assert certificate.recipient_email == "ada@example.com"
    assert certificate.template_id is None
    assert certificate.verification_url.endswith(f"/verify/{certificate.certificate_id}")
    assert any(
        element.get("imageUrl") == f"qr:{certificate.verification_url}"
        for element in certificate.render_data["elements"]
    )
    assert session.commits == 1
    assert audit.actions == ["CERTIFICATE_ISSUED"]
    assert len(certificates.added) == 1


@pytest.mark.asyncio
async def test_quota_at_limit_is_rejected_with_limit_and_plan(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    service, certificates, session = _service(cipher, organization, existing=500)

    with pytest.raises(QuotaExceededError) as exc_info:
        await service.issue(organization, USER_ID, _fields())

    assert "500" in exc_info.value.message
    assert "PRO" in exc_info.value.message
    assert certificates.added == []
    assert session.commits == 0


@pytest.mark.asyncio
async def test_free_plan_rejects_batch_name_on_single_issue(cipher) -> None:  # noqa: ANN001
    organization = make_org("FREE")
    service, certificates, _ = _service(cipher, organization)

    with pytest.raises(ForbiddenError) as exc_info:
        await service.issue(organization, USER_ID, _fields(batch_name="Spring cohort"))

    assert exc_info.value.context["feature"] == "bulk_issuance"
    assert certificates.added == []


@pytest.mark.asyncio
async def test_bulk_batch_with_one_invalid_row_persists_nothing(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    service, certificates, session = _service(cipher, organization)
    rows = [_fields(), _fields(), _fields(), _fields(recipient_email="")]

    with pytest.raises(ValidationError) as exc_info:
        await service.issue_many(organization, USER_ID, rows)

    assert exc_info.value.context["rows"] == [{"index": 3, "missing": ["recipient_email"]}]
    assert certificates.added == []
    assert session.commits == 0


@pytest.mark.asyncio
async def test_bulk_issue_creates_every_row_with_unique_ids(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    audit = RecordingAudit()
    service, certificates, session = _service(cipher, organization, audit=audit)
    rows = [_fields(recipient_name=f"Student {index}", batch_name="Cohort 1") for index in range(3)]

    created = await service.issue_many(organization, USER_ID, rows)

    assert len(created) == 3
    assert len({certificate.certificate_id for certificate in created}) == 3
    assert all(certificate.batch_name == "Cohort 1" for certificate in created)
    assert [
        "Student 0" in _contents(certificate.render_data) for certificate in created
    ] == [True, False, False]
    assert session.commits == 1
    assert audit.actions == ["BULK_CERTIFICATES_ISSUED"]
    assert audit.events[0].details == {"count": 3, "batch_name": "Cohort 1"}


@pytest.mark.asyncio
async def test_bulk_batch_must_fit_remaining_quota(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    service, certificates, _ = _service(cipher, organization, existing=498)

    with pytest.raises(QuotaExceededError) as exc_info:
        await service.issue_many(organization, USER_ID, [_fields(), _fields(), _fields()])

    assert exc_info.value.context["requested"] == 3
    assert certificates.added == []


@pytest.mark.asyncio
async def test_bulk_issue_requires_plan_feature(cipher) -> None:  # noqa: ANN001
    organization = make_org("FREE")
    service, _, _ = _service(cipher, organization)

    with pytest.raises(ForbiddenError, match="Bulk issuance"):
        await service.issue_many(organization, USER_ID, [_fields()])


@pytest.mark.asyncio
async def test_bulk_issue_rejects_empty_list(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    service, _, _ = _service(cipher, organization)

    with pytest.raises(ValidationError):
        await service.issue_many(organization, USER_ID, [])


@pytest.mark.asyncio
async def test_missing_fields_are_listed(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    service, _, _ = _service(cipher, organization)

    with pytest.raises(ValidationError) as exc_info:
        await service.issue(organization, USER_ID, _fields(recipient_name=" ", course_name=""))

    assert exc_info.value.context["missing"] == ["recipient_name", "course_name"]


@pytest.mark.asyncio
async def test_free_plan_requires_certificate_type(cipher) -> None:  # noqa: ANN001
    organization = make_org("FREE")
    service, _, _ = _service(cipher, organization)

    with pytest.raises(ValidationError) as exc_info:
        await service.issue(organization, USER_ID, _fields(certificate_type=None))

    assert exc_info.value.context["field"] == "certificate_type"


@pytest.mark.asyncio
async def test_blocked_account_cannot_issue(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO", account_status="PENDING_APPROVAL")
    service, certificates, _ = _service(cipher, organization)

    with pytest.raises(ForbiddenError, match="not active"):
        await service.issue(organization, USER_ID, _fields())
    assert certificates.added == []


@pytest.mark.asyncio
async def test_expired_subscription_cannot_issue(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO", subscription_end_date=FIXED_NOW - timedelta(days=1))
    service, _, _ = _service(cipher, organization)

    with pytest.raises(ForbiddenError, match="expired"):
        await service.issue(organization, USER_ID, _fields())


@pytest.mark.asyncio
async def test_organization_must_match_scope(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    other_scope = TenantScope(org_id=uuid4(), role=ROLE_ORG_ADMIN, user_id=USER_ID)
    service, _, _ = _service(cipher, organization, scope=other_scope)

    with pytest.raises(ForbiddenError):
        await service.issue(organization, USER_ID, _fields())


@pytest.mark.asyncio
async def test_super_admin_issues_through_pinned_scope(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    scope = TenantScope(org_id=None, role=ROLE_SUPER_ADMIN, user_id=USER_ID).pinned(organization.id)
    service, certificates, _ = _service(cipher, organization, scope=scope)

    await service.issue(organization, USER_ID, _fields())

    assert scope.is_super_admin is False
    assert len(certificates.added) == 1


@pytest.mark.asyncio
async def test_custom_template_is_materialized(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO", logo="https://cdn.test/logo.png")
    tree = ElementTree(elements=[TextElement(id="name", content="Awarded to {{recipient_name}}")])
    template = SimpleNamespace(id=uuid4(), org_id=organization.id, canvas=OpenedText(tree.to_json()).seal(cipher))
    service, _, _ = _service(cipher, organization, templates=FakeTemplateRepository([template]))

    certificate = await service.issue(organization, USER_ID, _fields(template_id=template.id))

    assert certificate.template_id == template.id
    assert "Awarded to Ada Lovelace" in _contents(certificate.render_data)
    assert {element["type"] for element in certificate.render_data["elements"]} == {"text", "logo", "qrcode"}


@pytest.mark.asyncio
async def test_foreign_template_is_not_found(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    foreign = SimpleNamespace(
        id=uuid4(),
        org_id=uuid4(),
        canvas=OpenedText(ElementTree().to_json()).seal(cipher),
    )
    service, certificates, _ = _service(cipher, organization, templates=FakeTemplateRepository([foreign]))

    with pytest.raises(NotFoundError):
        await service.issue(organization, USER_ID, _fields(template_id=foreign.id))
    assert certificates.added == []


@pytest.mark.asyncio
async def test_configured_prefix_is_used(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO", certificate_prefixes=["ACME", "BOOT"], default_certificate_prefix="ACME")
    service, _, _ = _service(cipher, organization)

    default = await service.issue(organization, USER_ID, _fields())
    chosen = await service.issue(organization, USER_ID, _fields(certificate_prefix="boot"))

    assert default.certificate_id.startswith("ACME-2026-")
    assert chosen.certificate_id.startswith("BOOT-2026-")


def test_unknown_prefix_is_rejected() -> None:
    organization = make_org("PRO", certificate_prefixes=["ACME"])

    with pytest.raises(ValidationError):
        resolve_prefix(organization, "OTHER")
    assert resolve_prefix(make_org("PRO"), None) == "CERT"


@pytest.mark.asyncio
async def test_taken_ids_are_skipped(cipher, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    candidates = iter(["CERT-2026-AAAAAAAA", "CERT-2026-BBBBBBBB"])
    monkeypatch.setattr(issuance, "generate_certificate_id", lambda prefix, year: next(candidates))
    organization = make_org("PRO")
    service, _, _ = _service(cipher, organization, taken={"CERT-2026-AAAAAAAA"})

    certificate = await service.issue(organization, USER_ID, _fields())

    assert certificate.certificate_id == "CERT-2026-BBBBBBBB"


@pytest.mark.asyncio
async def test_id_allocation_gives_up_after_max_attempts(cipher, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(issuance, "generate_certificate_id", lambda prefix, year: "CERT-2026-AAAAAAAA")
    organization = make_org("PRO")
    service, certificates, _ = _service(cipher, organization, taken={"CERT-2026-AAAAAAAA"})

    with pytest.raises(ConflictError):
        await service.issue(organization, USER_ID, _fields())
    assert certificates.added == []


@pytest.mark.asyncio
async def test_unique_violation_becomes_conflict(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    certificates = FakeCertificateRepository(organization.id)

    async def _reject(rows):  # noqa: ANN001, ANN202
        raise IntegrityError(
            "INSERT INTO certificates",
            {},
            Exception('duplicate key value violates unique constraint "ix_certificates_certificate_id"'),
        )

    certificates.add_many = _reject
    audit = RecordingAudit()
    service, _, session = _service(cipher, organization, certificates=certificates, audit=audit)

    with pytest.raises(ConflictError):
        await service.issue(organization, USER_ID, _fields())

    assert session.rollbacks == 1
    assert session.commits == 0
    assert audit.events == []


@pytest.mark.asyncio
async def test_other_integrity_errors_are_internal(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    certificates = FakeCertificateRepository(organization.id)

    async def _reject(rows):  # noqa: ANN001, ANN202
        raise IntegrityError(
            "INSERT INTO certificates",
            {},
            Exception('null value in column "template_id" violates not-null constraint'),
        )

    certificates.add_many = _reject
    service, _, session = _service(cipher, organization, certificates=certificates)

    with pytest.raises(InternalError):
        await service.issue(organization, USER_ID, _fields())

    assert session.rollbacks == 1


@pytest.mark.asyncio
async def test_issuing_without_user_account_is_refused(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    service, certificates, session = _service(
        cipher,
        organization,
        scope=TenantScope(org_id=organization.id, role=ROLE_ORG_ADMIN),
    )

    with pytest.raises(ForbiddenError):
        await service.issue(organization, None, _fields())
    with pytest.raises(ForbiddenError):
        await service.issue_many(organization, None, [_fields()])

    assert certificates.added == []
    assert session.commits == 0


@pytest.mark.asyncio
async def test_recipient_is_notified_after_commit(cipher) -> None:  # noqa: ANN001
    organization = make_org("PRO")
    notifier = _Notifier()
    service, _, _ = _service(cipher, organization, notifier=notifier)

    certificate = await service.issue(organization, USER_ID, _fields())

    [message] = notifier.messages
    assert message.recipient_email == "ada@example.com"
    assert message.subject == "Your certificate from Acme Academy"
    assert certificate.certificate_id in message.html
    assert message.verification_url == certificate.verification_url
