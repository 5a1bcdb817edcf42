"""Command: ledger integrity checking and repair."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from editionctl.commands._base import EditionCommand

if TYPE_CHECKING:
    from editionctl.commands._context import AppContext


@click.command(
    cls=EditionCommand,
    examples="""\
  editionctl check
  editionctl check --edition ED-001
  editionctl check --fix
  editionctl --json check""",
)
@click.option("--edition", "edition_id", default=None, help="Limit the audit to one edition.")
@click.option("--fix", is_flag=True, help="Reconcile editions with repairable issues.")
@click.pass_obj
def check(app: AppContext, edition_id: str | None, fix: bool) -> None:
    """Check numbering integrity and optionally repair it."""
    from editionctl.services.check import CheckService

    svc = CheckService(app.ledger)
    app.emit(svc.fix(edition_id) if fix else svc.check(edition_id))
