"""Command: bring an existing ledger's schema up to date."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from editionctl.commands._base import EditionCommand

if TYPE_CHECKING:
    from editionctl.commands._context import AppContext


@click.command(
    cls=EditionCommand,
    examples="""\
  editionctl upgrade --check
  editionctl upgrade
  editionctl -c /srv/editions/editionctl.toml --json upgrade""",
)
@click.option(
    "--check",
    "check_only",
    is_flag=True,
    help="List pending ledger migrations and exit; editions and units are untouched.",
)
@click.pass_obj
def upgrade(app: AppContext, check_only: bool) -> None:
    """Migrate the edition ledger schema.

    The SQLite ledger is copied to .editionctl/backups/ first, so edition
    numbers and certificates can be restored if a migration fails.
    """
    from editionctl.services.upgrade import UpgradeService

    svc = UpgradeService(app.ledger)
    if check_only:
        app.emit(svc.check_pending())
        return
    app.emit(svc.apply())
