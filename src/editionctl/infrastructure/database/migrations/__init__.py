"""Alembic migrations for the editionctl ledger.

Configured in code (no alembic.ini); the revision scripts live in
``versions/`` next to this module.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine


def build_config(db_url: str) -> Config:
    """Alembic Config for *db_url* using the bundled scripts."""
    cfg = Config()
    cfg.set_main_option("script_location", str(Path(__file__).parent))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def head_revision(db_url: str) -> str | None:
    return ScriptDirectory.from_config(build_config(db_url)).get_current_head()


def current_revision(engine: Engine) -> str | None:
    """Revision recorded in ``alembic_version``, or None if never stamped."""
    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def pending_revisions(db_url: str, current: str | None) -> list[dict[str, Any]]:
    """Revisions between *current* and head, oldest first."""
    script = ScriptDirectory.from_config(build_config(db_url))
    if current is not None and current == script.get_current_head():
        return []
    pending = [
        {"revision": rev.revision, "description": (rev.doc or "").strip()}
        for rev in script.iterate_revisions("head", current)
    ]
    pending.reverse()
    return pending


def stamp_head(db_url: str) -> None:
    """Mark a database created from the current schema as up to date.

    ``editionctl init`` builds tables straight from metadata, so there is
    nothing to migrate; recording the head revision keeps later upgrades
    from replaying the baseline.
    """
    command.stamp(build_config(db_url), "head")


def upgrade_head(db_url: str) -> None:
    command.upgrade(build_config(db_url), "head")
