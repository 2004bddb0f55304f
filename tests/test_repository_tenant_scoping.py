from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from certisure.core.db import apply_rls_org_context
from certisure.core.repositories.base import TenantRepository
from certisure.core.repositories.certificate_templates import CertificateTemplateRepository
from certisure.core.repositories.certificates import CertificateRepository
from certisure.core.security.crypto import SealedText
from certisure.core.tenancy import (
    ROLE_ORG_ADMIN,
    ROLE_SUPER_ADMIN,
    ROLE_TEAM_MEMBER,
    TenantContextMissingError,
    TenantScope,
)
from certisure.models.certificate import Certificate


def _sql(stmt) -> str:  # noqa: ANN001
    return str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


def test_repository_requires_scope() -> None:
    with pytest.raises(TenantContextMissingError):
        TenantRepository(session=Mock(), model=Certificate, scope=None)


def test_org_id_missing_raises() -> None:
    repo = TenantRepository(session=Mock(), model=Certificate, scope=TenantScope(org_id=None))

    with pytest.raises(TenantContextMissingError):
        _ = repo.org_id


def test_scoped_select_contains_org_filter() -> None:
    org_id = uuid4()
    repo = TenantRepository(session=Mock(), model=Certificate, scope=TenantScope(org_id=org_id))

    sql = _sql(repo._scoped_select())

    assert "WHERE" in sql
    assert "certificates.org_id" in sql
    assert org_id.hex in sql.replace("-", "")


def test_super_admin_select_is_unfiltered() -> None:
    repo = TenantRepository(session=Mock(), model=Certificate, scope=TenantScope(org_id=None, role=ROLE_SUPER_ADMIN))

    assert "WHERE" not in _sql(repo._scoped_select())


def test_pinned_scope_filters_super_admin_to_one_org() -> None:
    org_id = uuid4()
    scope = TenantScope(org_id=None, role=ROLE_SUPER_ADMIN).pinned(org_id)

    assert scope.role == ROLE_ORG_ADMIN
    assert "certificates.org_id" in _sql(CertificateRepository(Mock(), scope)._scoped_select())


def test_pinned_scope_cannot_move_a_member_to_another_org() -> None:
    scope = TenantScope(org_id=uuid4(), role=ROLE_TEAM_MEMBER)

    assert scope.pinned(scope.org_id) == scope
    with pytest.raises(TenantContextMissingError):
        scope.pinned(uuid4())


def test_owns_checks_org_id() -> None:
    org_id = uuid4()
    scope = TenantScope(org_id=org_id)

    assert scope.owns(Mock(org_id=org_id)) is True
    assert scope.owns(Mock(org_id=uuid4())) is False
    assert TenantScope(org_id=None, role=ROLE_SUPER_ADMIN).owns(Mock(org_id=uuid4())) is True


@pytest.mark.asyncio
async def test_create_forces_scope_org_id() -> None:
    org_id = uuid4()
    session = Mock()
    session.add = Mock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()

    repo = CertificateRepository(session, TenantScope(org_id=org_id))
    repo._apply_rls = AsyncMock()

    created = await repo.create(
        org_id=uuid4(),
        issued_by=uuid4(),
        recipient_name="Ada",
        recipient_email="ada@example.com",
        course_name="Engines",
        certificate_id="CERT-2026-AAAAAAAA",
    )

    assert created.org_id == org_id
    session.add.assert_called_once_with(created)
    session.flush.assert_awaited_once()
    session.refresh.assert_awaited_once_with(created)


@pytest.mark.asyncio
async def test_add_many_stamps_org_id_on_every_row() -> None:
    org_id = uuid4()
    session = Mock()
    session.add_all = Mock()
    session.flush = AsyncMock()
    repo = CertificateRepository(session, TenantScope(org_id=org_id))
    repo._apply_rls = AsyncMock()

    rows = [{"certificate_id": f"CERT-2026-{index:08d}", "org_id": uuid4()} for index in range(2)]
    created = await repo.add_many(rows)

    assert [certificate.org_id for certificate in created] == [org_id, org_id]
    session.add_all.assert_called_once_with(created)


@pytest.mark.asyncio
async def test_template_repository_refuses_plaintext_canvas() -> None:
    session = Mock()
    session.add = Mock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    repo = CertificateTemplateRepository(session, TenantScope(org_id=uuid4()))
    repo._apply_rls = AsyncMock()

    with pytest.raises(TypeError):
        await repo.create(template_name="T", canvas='{"elements": []}')

    created = await repo.create(template_name="T", canvas=SealedText("token"), created_by=uuid4())
    assert created.canvas_json_encrypted == "token"


@pytest.mark.asyncio
async def test_count_created_between_is_scoped() -> None:
    org_id = uuid4()
    session = Mock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock(return_value=7)
    repo = CertificateRepository(session, TenantScope(org_id=org_id))

    count = await repo.count_created_between(
        datetime(2026, 10, 1, tzinfo=timezone.utc),
        datetime(2026, 11, 1, tzinfo=timezone.utc),
    )

    assert count == 7
    sql = str(session.scalar.await_args.args[0].compile(dialect=postgresql.dialect()))
    assert "certificates.org_id =" in sql
    assert "certificates.created_at >=" in sql


@pytest.mark.asyncio
async def test_apply_rls_org_context_sets_both_settings() -> None:
    session = Mock()
    session.execute = AsyncMock()
    org_id = uuid4()

    await apply_rls_org_context(session, org_id)
    await apply_rls_org_context(session, None, bypass=True)

    first, second = session.execute.await_args_list
    assert first.args[1] == {"org_id": str(org_id), "bypass": "off"}
    assert second.args[1] == {"org_id": "", "bypass": "on"}
    assert "app.current_org_id" in str(first.args[0])
