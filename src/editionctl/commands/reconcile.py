"""Command: recompute edition numbering."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from editionctl.commands._base import EditionCommand

if TYPE_CHECKING:
    from editionctl.commands._context import AppContext


@click.command(
    cls=EditionCommand,
    examples="""\
  editionctl reconcile ED-001
  editionctl reconcile ED-001 ED-002
  editionctl reconcile --all
  editionctl --json reconcile ED-001""",
)
@click.argument("edition_ids", nargs=-1)
@click.option("--all", "sweep", is_flag=True, help="Reconcile every edition in the ledger.")
@click.pass_obj
def reconcile(app: AppContext, edition_ids: tuple[str, ...], sweep: bool) -> None:
    """Reconcile one or more editions."""
    if sweep and edition_ids:
        raise click.UsageError("Pass edition ids or --all, not both.")
    if not sweep and not edition_ids:
        raise click.UsageError("Pass at least one edition id, or --all.")

    from editionctl.services.reconcile import ReconcileService

    svc = ReconcileService(app.ledger)
    if sweep:
        app.emit(svc.sweep())
    elif len(edition_ids) == 1:
        app.emit(svc.reconcile(edition_ids[0]))
    else:
        app.emit(svc.reconcile_many(edition_ids))
