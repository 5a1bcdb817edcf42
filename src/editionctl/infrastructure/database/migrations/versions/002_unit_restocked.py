"""Track restocked units separately from refunds.

Revision ID: 002_unit_restocked
Revises: 001_baseline
Create Date: 2026-09-14
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "002_unit_restocked"
down_revision: str | None = "001_baseline"
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    with op.batch_alter_table("unit_facts") as batch:
        batch.add_column(
            sa.Column("restocked", sa.Integer, nullable=False, server_default="0"),
        )


def downgrade() -> None:
    with op.batch_alter_table("unit_facts") as batch:
        batch.drop_column("restocked")
