"""Database engine setup — SQLite with WAL mode by default.

SQLite is the default persistence layer: WAL mode for concurrent reads,
a busy timeout so writers queue instead of failing, and an explicit
``BEGIN`` so edition-scoped transactions can request ``IMMEDIATE`` mode
and take the write lock before reading. The DB is stored at
``{ledger_root}/.editionctl/editionctl.db`` unless a URL is configured.

SQLAlchemy Core (not ORM) is used: each reconciliation is a short,
explicit read-compute-write with no benefit from an identity map.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine

from editionctl.infrastructure.database.schema import metadata

LEDGER_DIRNAME = ".editionctl"
DB_FILENAME = "editionctl.db"
BUSY_TIMEOUT_SECONDS = 30.0

# Execution option read by the ``begin`` listener: DEFERRED or IMMEDIATE.
SQLITE_BEGIN_OPTION = "sqlite_begin"


def database_path(ledger_root: Path) -> Path:
    """Location of the default SQLite database for a ledger root."""
    return ledger_root / LEDGER_DIRNAME / DB_FILENAME


def _install_sqlite_listeners(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        # Hand transaction control to SQLAlchemy's ``begin`` event.
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn: Connection) -> None:
        mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION, "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")


def create_db_engine(url: str) -> Engine:
    """Create an engine for *url*; SQLite URLs get WAL + explicit BEGIN."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            connect_args={"timeout": BUSY_TIMEOUT_SECONDS, "check_same_thread": False},
        )
        _install_sqlite_listeners(engine)
        return engine
    return create_engine(url, echo=False, pool_pre_ping=True)


def init_database(ledger_root: Path, url: str | None = None) -> Engine:
    """Initialize the editionctl database.

    Creates the ``.editionctl/`` directory structure and all tables from
    :data:`schema.metadata`. Idempotent — safe to call on an existing
    ledger. Returns the engine ready for use.
    """
    ledger_dir = ledger_root / LEDGER_DIRNAME
    ledger_dir.mkdir(parents=True, exist_ok=True)
    (ledger_dir / "backups").mkdir(exist_ok=True)
    (ledger_dir / "plugins").mkdir(exist_ok=True)

    engine = create_db_engine(url or f"sqlite:///{database_path(ledger_root)}")
    metadata.create_all(engine)
    return engine
