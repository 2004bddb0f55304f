"""enable row level security on tenant tables

Revision ID: 20261019_01
Revises: 20261019_00
Create Date: 2026-10-19 09:20:00

"""
from __future__ import annotations

from alembic import op


# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = "20261019_00"
branch_labels = None
depends_on = None

TENANT_TABLES = ("users", "certificate_templates", "email_templates", "certificates", "audit_logs")

ORG_MATCH = (
    "current_setting('app.bypass_org_filter', true) = 'on' "
    "OR org_id::text = current_setting('app.current_org_id', true)"
)


def upgrade() -> None:
    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"CREATE POLICY {table}_org_isolation ON {table} USING ({ORG_MATCH}) WITH CHECK ({ORG_MATCH})")

    op.execute("ALTER TABLE organizations ENABLE ROW LEVEL SECURITY")
    op.execute(
        "CREATE POLICY organizations_org_isolation ON organizations USING ("
        "current_setting('app.bypass_org_filter', true) = 'on' "
        "OR id::text = current_setting('app.current_org_id', true))"
    )


def downgrade() -> None:
    op.execute("DROP POLICY IF EXISTS organizations_org_isolation ON organizations")
    op.execute("ALTER TABLE organizations DISABLE ROW LEVEL SECURITY")

    for table in reversed(TENANT_TABLES):
        op.execute(f"DROP POLICY IF EXISTS {table}_org_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
