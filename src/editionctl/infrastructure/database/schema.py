"""SQLAlchemy Core table definitions for the editionctl database.

Timestamps are stored as fixed-width ISO 8601 text in UTC so that
lexical order equals chronological order.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
)

metadata = MetaData()

editions = Table(
    "editions",
    metadata,
    Column("edition_id", Text, primary_key=True),
    Column("title", Text),
    Column("edition_size", Integer),  # authoritative cap, owned upstream
    # Optimistic concurrency token, bumped by every mutating reconciliation
    Column("revision", Integer, nullable=False, default=0, server_default="0"),
    Column("created", Text, nullable=False),
    Column("modified", Text, nullable=False),
)

units = Table(
    "units",
    metadata,
    Column("unit_id", Text, primary_key=True),
    Column("edition_id", Text, ForeignKey("editions.edition_id"), nullable=False),
    Column("order_id", Text),
    Column("acquired_at", Text, nullable=False),  # immutable once set
    Column("status", Text, nullable=False, default="inactive", server_default="inactive"),
    Column("rank", Integer),  # owned by the sequencer
    Column("edition_size", Integer),  # copied at last reconciliation
    Column("certificate_id", Text, unique=True),  # write-once
    Column("certificate_url", Text),
    Column("certificate_issued_at", Text),
    Column("owner_name", Text),
    Column("owner_email", Text),
    Column("owner_account_id", Text),
    Column("inactive_reason", Text),
    Column("created", Text, nullable=False),
    Column("modified", Text, nullable=False),
)

unit_facts = Table(
    "unit_facts",
    metadata,
    Column("unit_id", Text, ForeignKey("units.unit_id"), primary_key=True),
    Column("financial_state", Text),
    Column("fulfillment_state", Text),
    Column("order_cancelled_at", Text),
    Column("in_refund_record", Integer, nullable=False, default=0, server_default="0"),
    Column("manual_removed", Integer, nullable=False, default=0, server_default="0"),
    Column("restocked", Integer, nullable=False, default=0, server_default="0"),
    Column("updated", Text, nullable=False),
)

edition_events = Table(
    "edition_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("unit_id", Text, nullable=False),
    Column("edition_id", Text, nullable=False),
    Column("event_type", Text, nullable=False),
    Column("rank", Integer),
    Column("detail", Text),  # JSON object
    Column("previous_owner", Text),  # JSON object
    Column("new_owner", Text),  # JSON object
    Column("reason", Text),
    Column("timestamp", Text, nullable=False),
)

event_wal = Table(
    "event_wal",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hook_name", Text, nullable=False),
    Column("payload", Text, nullable=False),  # JSON
    Column("status", Text, nullable=False),
    Column("error", Text),
    Column("retries", Integer, default=0, server_default="0"),
    Column("created", Text, nullable=False),
    Column("completed", Text),
)

# ---------------------------------------------------------------------------
# Indexes for frequently filtered columns
# ---------------------------------------------------------------------------

Index("ix_units_edition", units.c.edition_id)
Index("ix_units_status", units.c.status)
Index("ix_units_owner_email", units.c.owner_email)
Index("ix_units_owner_account", units.c.owner_account_id)
Index("ix_edition_events_unit", edition_events.c.unit_id)
Index("ix_edition_events_type", edition_events.c.event_type)
