"""Command: ownership transfer."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from editionctl.commands._base import EditionCommand

if TYPE_CHECKING:
    from editionctl.commands._context import AppContext


@click.command(
    cls=EditionCommand,
    examples="""\
  editionctl transfer U-1001 --email new@example.com --name "Ada L."
  editionctl transfer U-1001 --account-id cust_42 --reason gift""",
)
@click.argument("unit_id")
@click.option("--name", default=None, help="New owner's display name.")
@click.option("--email", default=None, help="New owner's email.")
@click.option("--account-id", default=None, help="New owner's customer account id.")
@click.option("--reason", default=None, help="Reason recorded in the audit log.")
@click.pass_obj
def transfer(
    app: AppContext,
    unit_id: str,
    name: str | None,
    email: str | None,
    account_id: str | None,
    reason: str | None,
) -> None:
    """Transfer an active unit to a new owner."""
    from editionctl.domain.facts import Owner
    from editionctl.services.transfer import TransferService

    owner = Owner(name=name, email=email, account_id=account_id)
    if owner.is_empty:
        raise click.UsageError("Give at least one of --name, --email, --account-id.")
    app.emit(TransferService(app.ledger).transfer_ownership(unit_id, owner, reason=reason))
