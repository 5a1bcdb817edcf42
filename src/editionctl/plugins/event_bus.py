"""WAL-backed event dispatch via pluggy + ThreadPoolExecutor.

Each event is written to ``event_wal`` before any hook runs, so a crash
between commit and delivery leaves a ``pending`` row that ``drain()``
replays. Hooks run on a small thread pool unless ``sync`` is set.

INVARIANT: Plugin failures are warnings, never errors.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, insert, select, update

from editionctl.domain.facts import to_iso
from editionctl.infrastructure.database.schema import event_wal

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from editionctl.plugins.manager import PluginManager

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_DEAD = "dead_letter"


def _now() -> str:
    return to_iso(datetime.now(UTC))


class EventBus:
    """Durable hook dispatch.

    Parameters:
        engine: SQLAlchemy engine with the ``event_wal`` table.
        plugin_manager: Loaded PluginManager for hook dispatch.
        sync: Run hooks inline (tests and ``--sync``).
        max_retries: Failed deliveries before an event is dead-lettered.
        max_workers: Thread pool size for async delivery.
    """

    def __init__(
        self,
        engine: Engine,
        plugin_manager: PluginManager,
        *,
        sync: bool = False,
        max_retries: int = 3,
        max_workers: int = 2,
    ) -> None:
        self._engine = engine
        self._pm = plugin_manager
        self._sync = sync
        self._max_retries = max_retries
        self._executor: ThreadPoolExecutor | None = (
            None if sync else ThreadPoolExecutor(max_workers=max_workers)
        )
        self._futures: list[Future[None]] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def dispatch(self, hook_name: str, payload: dict[str, Any]) -> int:
        """Record the event, then deliver it. Returns the WAL row id."""
        event_id = self._write_wal(hook_name, payload)
        if self._executor is None:
            self._deliver(event_id, hook_name, payload)
        else:
            self._futures.append(
                self._executor.submit(self._deliver, event_id, hook_name, payload)
            )
        return event_id

    def drain(self) -> list[dict[str, Any]]:
        """Redeliver pending and failed events synchronously.

        Returns ``{id, hook_name, status}`` for each redelivered event.
        """
        self._wait_futures()
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(event_wal.c.id, event_wal.c.hook_name, event_wal.c.payload)
                .where(event_wal.c.status.in_([STATUS_PENDING, STATUS_FAILED]))
                .order_by(event_wal.c.id)
            ).fetchall()

        results: list[dict[str, Any]] = []
        for row in rows:
            status = self._deliver(row.id, row.hook_name, json.loads(row.payload))
            results.append({"id": row.id, "hook_name": row.hook_name, "status": status})
        return results

    def counts(self) -> dict[str, int]:
        """Number of WAL rows per delivery status."""
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(event_wal.c.status, func.count()).group_by(event_wal.c.status)
            ).fetchall()
        return {status: int(n) for status, n in rows}

    def shutdown(self) -> None:
        """Wait for in-flight deliveries and stop the pool."""
        self._wait_futures()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _write_wal(self, hook_name: str, payload: dict[str, Any]) -> int:
        with self._engine.begin() as conn:
            result = conn.execute(
                insert(event_wal).values(
                    hook_name=hook_name,
                    payload=json.dumps(payload, sort_keys=True),
                    status=STATUS_PENDING,
                    retries=0,
                    created=_now(),
                )
            )
            assert result.inserted_primary_key is not None
            return int(result.inserted_primary_key[0])

    def _deliver(self, event_id: int, hook_name: str, payload: dict[str, Any]) -> str:
        """Run the hook and record the outcome. Returns the new WAL status."""
        hook_fn = getattr(self._pm.hook, hook_name, None)
        if hook_fn is None:
            logger.debug("No hook named %s; marking event %d completed", hook_name, event_id)
            return self._mark_completed(event_id)
        try:
            hook_fn(**payload)
        except Exception as exc:
            logger.warning("Hook %s failed: %s", hook_name, exc)
            return self._mark_failed(event_id, str(exc))
        return self._mark_completed(event_id)

    def _mark_completed(self, event_id: int) -> str:
        with self._engine.begin() as conn:
            conn.execute(
                update(event_wal)
                .where(event_wal.c.id == event_id)
                .values(status=STATUS_COMPLETED, completed=_now(), error=None)
            )
        return STATUS_COMPLETED

    def _mark_failed(self, event_id: int, error: str) -> str:
        # One UPDATE so concurrent deliveries never upgrade a read lock.
        exhausted = event_wal.c.retries + 1 >= self._max_retries
        with self._engine.begin() as conn:
            conn.execute(
                update(event_wal)
                .where(event_wal.c.id == event_id)
                .values(
                    retries=event_wal.c.retries + 1,
                    error=error,
                    status=case((exhausted, STATUS_DEAD), else_=STATUS_FAILED),
                    completed=case((exhausted, _now()), else_=None),
                )
            )
            status = conn.execute(
                select(event_wal.c.status).where(event_wal.c.id == event_id)
            ).scalar_one()
        return str(status)

    def _wait_futures(self) -> None:
        for future in self._futures:
            try:
                future.result(timeout=30)
            except Exception:
                # _deliver records hook failures itself; this is a WAL write error.
                logger.warning("Event delivery did not complete", exc_info=True)
        self._futures.clear()
