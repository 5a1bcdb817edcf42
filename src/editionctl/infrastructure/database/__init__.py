"""Database engine, schema, and edition locks via SQLAlchemy Core."""

from editionctl.infrastructure.database.engine import create_db_engine, init_database
from editionctl.infrastructure.database.locks import EditionLocks
from editionctl.infrastructure.database.schema import (
    edition_events,
    editions,
    event_wal,
    metadata,
    unit_facts,
    units,
)

__all__ = [
    "EditionLocks",
    "create_db_engine",
    "edition_events",
    "editions",
    "event_wal",
    "init_database",
    "metadata",
    "unit_facts",
    "units",
]
