"""InitService — create a new ledger in a directory.

Writes a sparse ``editionctl.toml``, creates the database, stamps it at
the current migration head, and fires ``post_init``. Runs before any
Ledger exists, so the entry point is a static method.
"""

from __future__ import annotations

import logging
from pathlib import Path

from editionctl.config.discovery import CONFIG_FILENAME, render_config
from editionctl.config.settings import EditionSettings
from editionctl.infrastructure.database.engine import database_path
from editionctl.services.base import BaseService
from editionctl.services.result import ServiceError, ServiceResult
from editionctl.services.telemetry import traced

logger = logging.getLogger(__name__)


class InitService:
    """Bootstraps a ledger directory."""

    @staticmethod
    @traced
    def init_ledger(
        path: Path,
        *,
        name: str,
        base_url: str,
        sync: bool = True,
    ) -> ServiceResult:
        """Create ``editionctl.toml`` and the database under *path*.

        Refuses to overwrite an existing config file.
        """
        op = "init_ledger"
        root = Path(path).resolve()
        config_file = root / CONFIG_FILENAME
        if config_file.exists():
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code="LEDGER_EXISTS",
                    message=f"A ledger is already configured at {config_file}",
                    detail={"config_path": str(config_file)},
                ),
            )

        try:
            root.mkdir(parents=True, exist_ok=True)
            config_file.write_text(render_config(name=name, base_url=base_url), encoding="utf-8")
        except OSError as exc:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(code="INIT_FAILED", message=f"Cannot write config: {exc}"),
            )

        from editionctl.infrastructure.ledger import Ledger
        from editionctl.services.upgrade import UpgradeService

        settings = EditionSettings.from_cli(config_path=str(config_file), ledger_root=root)
        ledger = Ledger(settings)
        warnings: list[str] = []
        try:
            stamped = UpgradeService(ledger).stamp_current()
            if not stamped.ok:
                return stamped.model_copy(update={"op": op})
            ledger.init_event_bus(sync=sync)
            BaseService(ledger)._dispatch_event(
                "post_init",
                {"ledger_name": settings.ledger.name, "base_url": settings.certificates.base_url},
                warnings,
            )
        finally:
            ledger.close()

        logger.info("initialized ledger %s at %s", settings.ledger.name, root)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "name": settings.ledger.name,
                "root": str(root),
                "config_path": str(config_file),
                "database": str(database_path(root)),
                "base_url": settings.certificates.base_url,
                "revision": stamped.data["current"],
            },
            warnings=warnings,
        )
