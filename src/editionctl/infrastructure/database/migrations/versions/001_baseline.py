"""Baseline schema — editions, units, facts, audit log, event WAL.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-08-03

Existing databases get stamped at this revision without running it;
fresh databases created after this migration was added get it applied
during ``editionctl upgrade``.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    op.create_table(
        "editions",
        sa.Column("edition_id", sa.Text, primary_key=True),
        sa.Column("title", sa.Text),
        sa.Column("edition_size", sa.Integer),
        sa.Column("revision", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("modified", sa.Text, nullable=False),
    )

    op.create_table(
        "units",
        sa.Column("unit_id", sa.Text, primary_key=True),
        sa.Column("edition_id", sa.Text, sa.ForeignKey("editions.edition_id"), nullable=False),
        sa.Column("order_id", sa.Text),
        sa.Column("acquired_at", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="inactive"),
        sa.Column("rank", sa.Integer),
        sa.Column("edition_size", sa.Integer),
        sa.Column("certificate_id", sa.Text, unique=True),
        sa.Column("certificate_url", sa.Text),
        sa.Column("certificate_issued_at", sa.Text),
        sa.Column("owner_name", sa.Text),
        sa.Column("owner_email", sa.Text),
        sa.Column("owner_account_id", sa.Text),
        sa.Column("inactive_reason", sa.Text),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("modified", sa.Text, nullable=False),
    )
    op.create_index("ix_units_edition", "units", ["edition_id"])
    op.create_index("ix_units_status", "units", ["status"])
    op.create_index("ix_units_owner_email", "units", ["owner_email"])
    op.create_index("ix_units_owner_account", "units", ["owner_account_id"])

    op.create_table(
        "unit_facts",
        sa.Column("unit_id", sa.Text, sa.ForeignKey("units.unit_id"), primary_key=True),
        sa.Column("financial_state", sa.Text),
        sa.Column("fulfillment_state", sa.Text),
        sa.Column("order_cancelled_at", sa.Text),
        sa.Column("in_refund_record", sa.Integer, nullable=False, server_default="0"),
        sa.Column("manual_removed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated", sa.Text, nullable=False),
    )

    op.create_table(
        "edition_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("unit_id", sa.Text, nullable=False),
        sa.Column("edition_id", sa.Text, nullable=False),
        sa.Column("event_type", sa.Text, nullable=False),
        sa.Column("rank", sa.Integer),
        sa.Column("detail", sa.Text),
        sa.Column("previous_owner", sa.Text),
        sa.Column("new_owner", sa.Text),
        sa.Column("reason", sa.Text),
        sa.Column("timestamp", sa.Text, nullable=False),
    )
    op.create_index("ix_edition_events_unit", "edition_events", ["unit_id"])
    op.create_index("ix_edition_events_type", "edition_events", ["event_type"])

    op.create_table(
        "event_wal",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("hook_name", sa.Text, nullable=False),
        sa.Column("payload", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("error", sa.Text),
        sa.Column("retries", sa.Integer, server_default="0"),
        sa.Column("created", sa.Text, nullable=False),
        sa.Column("completed", sa.Text),
    )


def downgrade() -> None:
    op.drop_table("event_wal")
    op.drop_index("ix_edition_events_type", table_name="edition_events")
    op.drop_index("ix_edition_events_unit", table_name="edition_events")
    op.drop_table("edition_events")
    op.drop_table("unit_facts")
    op.drop_index("ix_units_owner_account", table_name="units")
    op.drop_index("ix_units_owner_email", table_name="units")
    op.drop_index("ix_units_status", table_name="units")
    op.drop_index("ix_units_edition", table_name="units")
    op.drop_table("units")
    op.drop_table("editions")
