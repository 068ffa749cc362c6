"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("siret", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("siret", name="uq_tenants_siret"),
    )

    op.create_table(
        "zones",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        # Avoid index=True here because we create explicit indexes below.
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("zone_type", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_zones_tenant_id", "zones", ["tenant_id"])

    op.create_table(
        "observations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(), nullable=True),
        sa.Column("kind", sa.String(), nullable=False),
        # No foreign key to zones: deleting a zone must never touch the audit trail.
        sa.Column("zone_id", sa.Integer(), nullable=True),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("value", sa.Numeric(6, 2), nullable=True),
        sa.Column("responsible", sa.String(), nullable=True),
        sa.Column("product", sa.String(), nullable=True),
        sa.Column("supplier", sa.String(), nullable=True),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("client_ref", sa.String(), nullable=True),
        sa.Column("conforme", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "client_ref", name="uq_observations_tenant_client_ref"),
    )
    # Report windows scan one tenant's month ordered by observed_at.
    op.create_index("ix_observations_tenant_observed_at", "observations", ["tenant_id", "observed_at"])


def downgrade() -> None:
    op.drop_index("ix_observations_tenant_observed_at", table_name="observations")
    op.drop_table("observations")
    op.drop_index("ix_zones_tenant_id", table_name="zones")
    op.drop_table("zones")
    op.drop_table("tenants")
