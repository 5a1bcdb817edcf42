"""Command group: read-only views of units, editions, and collectors."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from editionctl.commands._base import EditionGroup
from editionctl.domain.types import UnitStatus

if TYPE_CHECKING:
    from editionctl.commands._context import AppContext

_SHOW_EXAMPLES = """\
  editionctl show unit U-1001
  editionctl show edition ED-001 --status active
  editionctl show editions
  editionctl show history U-1001
  editionctl show owners U-1001
  editionctl show collector --email ada@example.com"""


@click.group(cls=EditionGroup, examples=_SHOW_EXAMPLES)
@click.pass_obj
def show(app: AppContext) -> None:
    """Look up units, editions, and collectors."""


@show.command(
    examples="""\
  editionctl show unit U-1001
  editionctl --json show unit U-1001"""
)
@click.argument("unit_id")
@click.pass_obj
def unit(app: AppContext, unit_id: str) -> None:
    """Show a unit's edition number, certificate, and owner."""
    from editionctl.services.query import QueryService

    app.emit(QueryService(app.ledger).get_unit(unit_id))


@show.command(
    examples="""\
  editionctl show edition ED-001
  editionctl show edition ED-001 --status inactive
  editionctl --json show edition ED-001 --history"""
)
@click.argument("edition_id")
@click.option(
    "--status",
    type=click.Choice([s.value for s in UnitStatus]),
    default=None,
    help="Only units with this status.",
)
@click.option("--history", "include_history", is_flag=True, help="Include each unit's events.")
@click.pass_obj
def edition(app: AppContext, edition_id: str, status: str | None, include_history: bool) -> None:
    """List the units of an edition in acquisition order."""
    from editionctl.services.query import QueryService

    svc = QueryService(app.ledger)
    app.emit(svc.list_edition(edition_id, status=status, include_history=include_history))


@show.command(examples="  editionctl show editions")
@click.pass_obj
def editions(app: AppContext) -> None:
    """List every edition with its active count and capacity."""
    from editionctl.services.query import QueryService

    app.emit(QueryService(app.ledger).list_editions())


@show.command(examples="  editionctl show history U-1001")
@click.argument("unit_id")
@click.pass_obj
def history(app: AppContext, unit_id: str) -> None:
    """Show a unit's full audit trail."""
    from editionctl.services.query import QueryService

    app.emit(QueryService(app.ledger).history(unit_id))


@show.command(examples="  editionctl show owners U-1001")
@click.argument("unit_id")
@click.pass_obj
def owners(app: AppContext, unit_id: str) -> None:
    """Show a unit's chain of custody."""
    from editionctl.services.query import QueryService

    app.emit(QueryService(app.ledger).ownership_history(unit_id))


@show.command(
    examples="""\
  editionctl show collector --email ada@example.com
  editionctl show collector --account-id cust_42 --all"""
)
@click.option("--email", default=None, help="Collector email.")
@click.option("--account-id", default=None, help="Collector account id.")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive units.")
@click.pass_obj
def collector(
    app: AppContext,
    email: str | None,
    account_id: str | None,
    include_inactive: bool,
) -> None:
    """List the units a collector holds."""
    from editionctl.services.query import QueryService

    svc = QueryService(app.ledger)
    app.emit(
        svc.collector_units(email=email, account_id=account_id, include_inactive=include_inactive)
    )
