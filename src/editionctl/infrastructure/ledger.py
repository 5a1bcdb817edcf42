"""Ledger — repository pattern with edition-scoped transaction coordination.

The Ledger is the single dependency injected into every service. It owns
the database engine, the per-edition lock registry, and the plugin event
bus. Two transaction shapes are offered:

- :meth:`Ledger.transaction` — a write transaction for row-scoped
  changes (fact ingestion, ownership transfer).
- :meth:`Ledger.edition_transaction` — read-compute-write for one
  edition: holds the in-process edition lock, begins an IMMEDIATE
  transaction on SQLite (``SELECT ... FOR UPDATE`` elsewhere), and lets
  the caller finish with a revision compare-and-swap.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, insert, or_, select, update

from editionctl.infrastructure.database.engine import (
    SQLITE_BEGIN_OPTION,
    database_path,
    init_database,
)
from editionctl.infrastructure.database.locks import EditionLocks
from editionctl.infrastructure.database.schema import (
    edition_events,
    editions,
    unit_facts,
    units,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from sqlalchemy import Connection, Row
    from sqlalchemy.engine import Engine

    from editionctl.config.settings import EditionSettings

logger = logging.getLogger(__name__)

# Columns of ``units`` joined with the fact columns, in one row.
_UNIT_WITH_FACTS = [
    *units.c,
    unit_facts.c.financial_state,
    unit_facts.c.fulfillment_state,
    unit_facts.c.order_cancelled_at,
    unit_facts.c.in_refund_record,
    unit_facts.c.manual_removed,
    unit_facts.c.restocked,
    unit_facts.c.updated.label("facts_updated"),
]


def _dump(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, sort_keys=True)


# ---------------------------------------------------------------------------
# LedgerTransaction: yielded to callers within transaction()
# ---------------------------------------------------------------------------


@dataclass
class LedgerTransaction:
    """Active transaction context with consolidated data-access helpers."""

    conn: Connection

    def get_edition(self, edition_id: str, *, for_update: bool = False) -> Row[Any] | None:
        stmt = select(editions).where(editions.c.edition_id == edition_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.conn.execute(stmt).first()

    def get_unit(self, unit_id: str) -> Row[Any] | None:
        """Fetch one unit joined with its latest facts (facts may be NULL)."""
        return self.conn.execute(
            select(*_UNIT_WITH_FACTS)
            .select_from(units.outerjoin(unit_facts, units.c.unit_id == unit_facts.c.unit_id))
            .where(units.c.unit_id == unit_id)
        ).first()

    def get_unit_by_certificate(self, certificate_id: str) -> Row[Any] | None:
        return self.conn.execute(
            select(units).where(units.c.certificate_id == certificate_id)
        ).first()

    def load_units(self, edition_id: str) -> Sequence[Row[Any]]:
        """All units of an edition with their facts, in acquisition order."""
        return self.conn.execute(
            select(*_UNIT_WITH_FACTS)
            .select_from(units.outerjoin(unit_facts, units.c.unit_id == unit_facts.c.unit_id))
            .where(units.c.edition_id == edition_id)
            .order_by(units.c.acquired_at, units.c.unit_id)
        ).fetchall()

    def list_editions(self) -> Sequence[Row[Any]]:
        return self.conn.execute(select(editions).order_by(editions.c.edition_id)).fetchall()

    def insert_edition(self, **values: Any) -> None:
        self.conn.execute(insert(editions).values(**values))

    def update_edition(self, edition_id: str, **values: Any) -> int:
        result = self.conn.execute(
            update(editions).where(editions.c.edition_id == edition_id).values(**values)
        )
        return result.rowcount

    def insert_unit(self, **values: Any) -> None:
        self.conn.execute(insert(units).values(**values))

    def upsert_facts(self, unit_id: str, **values: Any) -> None:
        """Replace the stored facts of a unit wholesale."""
        exists = self.conn.execute(
            select(unit_facts.c.unit_id).where(unit_facts.c.unit_id == unit_id)
        ).first()
        if exists is None:
            self.conn.execute(insert(unit_facts).values(unit_id=unit_id, **values))
        else:
            self.conn.execute(
                update(unit_facts).where(unit_facts.c.unit_id == unit_id).values(**values)
            )

    def units_for_owner(
        self,
        *,
        email: str | None = None,
        account_id: str | None = None,
    ) -> Sequence[Row[Any]]:
        """Units whose owner matches *email* or *account_id*."""
        clauses = []
        if email is not None:
            clauses.append(units.c.owner_email == email)
        if account_id is not None:
            clauses.append(units.c.owner_account_id == account_id)
        if not clauses:
            return []
        return self.conn.execute(
            select(units)
            .where(or_(*clauses))
            .order_by(units.c.edition_id, units.c.acquired_at, units.c.unit_id)
        ).fetchall()

    def events_for_unit(
        self,
        unit_id: str,
        event_types: Sequence[str] | None = None,
    ) -> Sequence[Row[Any]]:
        stmt = select(edition_events).where(edition_events.c.unit_id == unit_id)
        if event_types:
            stmt = stmt.where(edition_events.c.event_type.in_(list(event_types)))
        return self.conn.execute(stmt.order_by(edition_events.c.id)).fetchall()

    def count_events(self, edition_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(edition_events)
        if edition_id is not None:
            stmt = stmt.where(edition_events.c.edition_id == edition_id)
        return int(self.conn.execute(stmt).scalar_one())

    def list_edition_ids(self) -> list[str]:
        return list(
            self.conn.execute(select(editions.c.edition_id).order_by(editions.c.edition_id))
            .scalars()
            .all()
        )

    def update_unit(self, unit_id: str, **values: Any) -> int:
        """Apply column updates to one unit. Returns affected row count."""
        result = self.conn.execute(
            update(units).where(units.c.unit_id == unit_id).values(**values)
        )
        return result.rowcount

    def set_certificate(
        self,
        unit_id: str,
        *,
        certificate_id: str,
        certificate_url: str,
        issued_at: str,
    ) -> bool:
        """Write a certificate onto a unit that has none.

        Returns False (and writes nothing) when the unit already carries
        a certificate: the columns are write-once.
        """
        result = self.conn.execute(
            update(units)
            .where(units.c.unit_id == unit_id, units.c.certificate_id.is_(None))
            .values(
                certificate_id=certificate_id,
                certificate_url=certificate_url,
                certificate_issued_at=issued_at,
                modified=issued_at,
            )
        )
        return result.rowcount == 1

    def append_event(
        self,
        *,
        unit_id: str,
        edition_id: str,
        event_type: str,
        timestamp: str,
        rank: int | None = None,
        detail: dict[str, Any] | None = None,
        previous_owner: dict[str, Any] | None = None,
        new_owner: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> int:
        """Append a row to the edition event log. Returns the row id."""
        result = self.conn.execute(
            insert(edition_events).values(
                unit_id=unit_id,
                edition_id=edition_id,
                event_type=event_type,
                rank=rank,
                detail=_dump(detail),
                previous_owner=_dump(previous_owner),
                new_owner=_dump(new_owner),
                reason=reason,
                timestamp=timestamp,
            )
        )
        assert result.inserted_primary_key is not None
        return int(result.inserted_primary_key[0])


@dataclass
class EditionTransaction(LedgerTransaction):
    """Transaction scoped to one edition, carrying the revision it read."""

    edition_id: str = ""
    seen_revision: int = 0
    edition: Row[Any] | None = None

    def bump_revision(self, modified: str) -> bool:
        """Compare-and-swap the edition revision.

        Returns False when another writer committed a newer revision since
        this transaction read the edition row.
        """
        result = self.conn.execute(
            update(editions)
            .where(
                editions.c.edition_id == self.edition_id,
                editions.c.revision == self.seen_revision,
            )
            .values(revision=self.seen_revision + 1, modified=modified)
        )
        if result.rowcount != 1:
            return False
        self.seen_revision += 1
        return True


# ---------------------------------------------------------------------------
# Ledger: the repository
# ---------------------------------------------------------------------------


class Ledger:
    """Repository encapsulating database access and edition serialization.

    Constructed once at CLI startup from :class:`EditionSettings` and stored
    on the click context. Services receive the Ledger via their
    :class:`BaseService` constructor.
    """

    def __init__(self, settings: EditionSettings) -> None:
        self._settings = settings
        self._engine: Engine = init_database(self.root, settings.ledger.database_url)
        self._locks = EditionLocks()
        self._event_bus: Any | None = None

    @property
    def root(self) -> Path:
        """The ledger root directory."""
        return self._settings.ledger_root

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine (for direct access when needed)."""
        return self._engine

    @property
    def settings(self) -> EditionSettings:
        """The resolved settings for this ledger."""
        return self._settings

    @property
    def locks(self) -> EditionLocks:
        """Per-edition in-process locks."""
        return self._locks

    @property
    def database_url(self) -> str:
        """The configured database URL, or the default SQLite file."""
        return self._settings.ledger.database_url or f"sqlite:///{database_path(self.root)}"

    @property
    def event_bus(self) -> Any | None:
        """The plugin event bus (None if not initialized)."""
        return self._event_bus

    def init_event_bus(self, *, sync: bool = False) -> None:
        """Initialize the plugin event bus.

        Creates a PluginManager, discovers entry-point and local plugins,
        and wires up the EventBus. Called by AppContext when the ledger is
        first accessed.
        """
        from editionctl.plugins.event_bus import EventBus
        from editionctl.plugins.manager import PluginManager

        pm = PluginManager()
        if self._settings.plugins.enabled:
            pm.discover_and_load(local_dir=self.root / ".editionctl" / "plugins")
        self._event_bus = EventBus(self._engine, pm, sync=sync)

    def close(self) -> None:
        """Drain the event bus and release pooled connections."""
        if self._event_bus is not None:
            self._event_bus.shutdown()
            self._event_bus = None
        self._engine.dispose()

    @contextmanager
    def _write_connection(self) -> Iterator[Connection]:
        # SQLite writers take the database write lock at BEGIN so that two
        # read-then-write transactions queue on the busy timeout instead of
        # failing on lock upgrade.
        with self._engine.connect() as conn:
            if conn.dialect.name == "sqlite":
                conn.execution_options(**{SQLITE_BEGIN_OPTION: "IMMEDIATE"})
            with conn.begin():
                yield conn

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        """Write transaction: commit on success, roll back on exception.

        Usage::

            with ledger.transaction() as txn:
                txn.update_unit(unit_id, owner_name="...")
        """
        with self._write_connection() as conn:
            yield LedgerTransaction(conn=conn)

    @contextmanager
    def read(self) -> Iterator[LedgerTransaction]:
        """Read-only access; nothing written through it is committed."""
        with self._engine.connect() as conn:
            yield LedgerTransaction(conn=conn)

    @contextmanager
    def edition_transaction(self, edition_id: str) -> Iterator[EditionTransaction | None]:
        """Serialized read-compute-write for one edition.

        Yields None (inside an open transaction) when the edition does not
        exist. Otherwise yields an :class:`EditionTransaction` whose
        ``seen_revision`` is the revision read under the lock; callers
        finish with :meth:`EditionTransaction.bump_revision`.
        """
        with self._locks.hold(edition_id), self._write_connection() as conn:
            txn = EditionTransaction(conn=conn, edition_id=edition_id)
            row = txn.get_edition(edition_id, for_update=True)
            if row is None:
                yield None
                return
            txn.edition = row
            txn.seen_revision = int(row.revision)
            logger.debug("edition %s locked at revision %s", edition_id, row.revision)
            yield txn
