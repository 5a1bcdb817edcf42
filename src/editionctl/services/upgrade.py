"""UpgradeService — database migration with Alembic.

Pipeline: BACKUP → MIGRATE → VALIDATE → REPORT
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from pathlib import Path

from sqlalchemy import inspect

from editionctl.infrastructure.database.engine import LEDGER_DIRNAME, database_path
from editionctl.infrastructure.database.migrations import (
    current_revision,
    head_revision,
    pending_revisions,
    stamp_head,
    upgrade_head,
)
from editionctl.services._helpers import now_compact
from editionctl.services.base import BaseService
from editionctl.services.result import ServiceError, ServiceResult
from editionctl.services.telemetry import traced

logger = logging.getLogger(__name__)


class UpgradeService(BaseService):
    """Handles database schema migrations via Alembic."""

    def _unversioned_ledger(self) -> bool:
        """Tables exist but Alembic has never stamped the database."""
        return "units" in inspect(self._ledger.engine).get_table_names()

    def backup(self) -> Path | None:
        """Copy the SQLite file into ``.editionctl/backups/``.

        Returns None for non-SQLite databases, which must be backed up
        with their own tooling.
        """
        if self._ledger.settings.ledger.database_url is not None:
            return None
        source = database_path(self._ledger.root)
        backups = self._ledger.root / LEDGER_DIRNAME / "backups"
        backups.mkdir(parents=True, exist_ok=True)
        target = backups / f"editionctl-{now_compact()}.db"
        # Online backup API: includes pages still sitting in the WAL.
        raw = self._ledger.engine.raw_connection()
        try:
            with closing(sqlite3.connect(target)) as dest:
                raw.driver_connection.backup(dest)
        finally:
            raw.close()
        logger.info("backed up %s to %s", source, target)
        return target

    @traced
    def check_pending(self) -> ServiceResult:
        """List pending migrations without applying."""
        op = "upgrade"
        url = self._ledger.database_url
        try:
            current = current_revision(self._ledger.engine)
            head = head_revision(url)
            pending = pending_revisions(url, current)
        except Exception as exc:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code="CHECK_FAILED",
                    message=f"Failed to check migrations: {exc}",
                ),
            )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "pending_count": len(pending),
                "pending": pending,
                "current": current,
                "head": head,
            },
        )

    @traced
    def apply(self) -> ServiceResult:
        """BACKUP → MIGRATE → VALIDATE → REPORT pipeline."""
        op = "upgrade"
        warnings: list[str] = []

        status = self.check_pending()
        if not status.ok:
            return status
        if status.data["pending_count"] == 0:
            return ServiceResult(
                ok=True,
                op=op,
                data={
                    "applied_count": 0,
                    "current": status.data["head"],
                    "message": "Database is already up to date",
                },
            )

        # BACKUP
        try:
            backup_path = self.backup()
        except (OSError, sqlite3.Error) as exc:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(code="BACKUP_FAILED", message=f"Backup failed: {exc}"),
            )
        if backup_path is None:
            warnings.append("No backup taken: database is not a local SQLite file")

        # MIGRATE (or STAMP a ledger created from metadata before versioning)
        url = self._ledger.database_url
        try:
            if status.data["current"] is None and self._unversioned_ledger():
                stamp_head(url)
            else:
                upgrade_head(url)
        except Exception as exc:
            logger.exception("migration failed")
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code="MIGRATION_FAILED",
                    message=f"Migration failed: {exc}. Backup at: {backup_path}",
                    detail={"backup_path": str(backup_path) if backup_path else None},
                ),
            )

        # VALIDATE
        from editionctl.services.check import CheckService

        integrity = CheckService(self._ledger).check()
        errors = integrity.data.get("errors", 0)
        if errors:
            warnings.append(f"Post-migration integrity check found {errors} errors")

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "applied_count": status.data["pending_count"],
                "applied": status.data["pending"],
                "current": status.data["head"],
                "backup_path": str(backup_path) if backup_path else None,
            },
            warnings=warnings,
        )

    def stamp_current(self) -> ServiceResult:
        """Stamp the DB at head (for freshly created ledgers)."""
        op = "upgrade"
        url = self._ledger.database_url
        try:
            stamp_head(url)
        except Exception as exc:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(code="STAMP_FAILED", message=f"Failed to stamp database: {exc}"),
            )
        return ServiceResult(
            ok=True,
            op=op,
            data={"stamped": True, "current": head_revision(url)},
        )
