"""Command group: the inbound fact feed and operator removal markers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import click
from pydantic import ValidationError

from editionctl.commands._base import EditionGroup
from editionctl.domain.types import RemovalReason

if TYPE_CHECKING:
    from editionctl.commands._context import AppContext

_FACTS_EXAMPLES = """\
  editionctl facts edition ED-001 --size 50 --title "Harbour at Dusk"
  editionctl facts unit U-1001 --edition ED-001 --acquired-at 2026-03-01T10:00:00Z --financial paid
  editionctl facts ingest feed.jsonl
  editionctl facts remove U-1001 --reason refunded --note "chargeback"
  editionctl facts restore U-1001"""


def parse_feed(text: str) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Split a JSON or JSON Lines feed into ``(editions, units)``.

    Accepted shapes: an object with ``editions`` and ``units`` arrays, a
    bare array of unit records, or one JSON object per line. A line
    without ``unit_id`` but with ``edition_id`` is an edition record.
    """
    stripped = text.strip()
    if not stripped:
        return [], []
    try:
        document = json.loads(stripped)
    except json.JSONDecodeError:
        document = None
        lines = []
        for number, line in enumerate(stripped.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                lines.append(json.loads(line))
            except json.JSONDecodeError as exc:
                msg = f"line {number}: {exc.msg}"
                raise click.BadParameter(msg, param_hint="FEED") from exc
        entries = lines
    else:
        if isinstance(document, dict) and ("units" in document or "editions" in document):
            return list(document.get("editions", [])), list(document.get("units", []))
        entries = document if isinstance(document, list) else [document]

    editions: list[dict[str, Any]] = []
    units: list[dict[str, Any]] = []
    for entry in entries:
        if isinstance(entry, dict) and "unit_id" not in entry and "edition_id" in entry:
            editions.append(entry)
        else:
            units.append(entry)
    return editions, units


@click.group(cls=EditionGroup, examples=_FACTS_EXAMPLES)
@click.pass_obj
def facts(app: AppContext) -> None:
    """Record editions, units, and their order facts."""


@facts.command(
    examples="""\
  editionctl facts edition ED-001 --size 50
  editionctl facts edition ED-001 --title "Harbour at Dusk (reissue)\""""
)
@click.argument("edition_id")
@click.option("--size", "edition_size", type=int, default=None, help="Edition size.")
@click.option("--title", default=None, help="Display title.")
@click.pass_obj
def edition(app: AppContext, edition_id: str, edition_size: int | None, title: str | None) -> None:
    """Create or update an edition."""
    from editionctl.services.facts import FactService

    svc = FactService(app.ledger)
    app.emit(svc.record_edition(edition_id, edition_size=edition_size, title=title))


@facts.command(
    examples="""\
  editionctl facts unit U-1001 --edition ED-001 --acquired-at 2026-03-01T10:00:00Z \\
      --financial paid --fulfillment fulfilled --owner-email ada@example.com
  editionctl facts unit U-1001 --edition ED-001 --acquired-at 2026-03-01T10:00:00Z --refunded"""
)
@click.argument("unit_id")
@click.option("--edition", "edition_id", required=True, help="Edition the unit belongs to.")
@click.option("--acquired-at", required=True, help="Acquisition time (ISO 8601).")
@click.option("--order", "order_id", default=None, help="Upstream order id.")
@click.option("--financial", "financial_state", default=None, help="Order financial state.")
@click.option("--fulfillment", "fulfillment_state", default=None, help="Fulfillment state.")
@click.option("--cancelled-at", default=None, help="Order cancellation time (ISO 8601).")
@click.option("--refunded", is_flag=True, help="The unit appears in a refund record.")
@click.option("--restocked", is_flag=True, help="The unit was restocked.")
@click.option("--owner-name", default=None, help="Owner's display name.")
@click.option("--owner-email", default=None, help="Owner's email.")
@click.option("--owner-account", default=None, help="Owner's customer account id.")
@click.option("--no-reconcile", is_flag=True, help="Record facts without reconciling.")
@click.pass_obj
def unit(
    app: AppContext,
    unit_id: str,
    edition_id: str,
    acquired_at: str,
    order_id: str | None,
    financial_state: str | None,
    fulfillment_state: str | None,
    cancelled_at: str | None,
    refunded: bool,
    restocked: bool,
    owner_name: str | None,
    owner_email: str | None,
    owner_account: str | None,
    no_reconcile: bool,
) -> None:
    """Record one unit's facts, then reconcile its edition."""
    from editionctl.domain.facts import UnitRecord
    from editionctl.services.facts import FactService

    try:
        record = UnitRecord.model_validate(
            {
                "unit_id": unit_id,
                "edition_id": edition_id,
                "acquired_at": acquired_at,
                "order_id": order_id,
                "owner": {"name": owner_name, "email": owner_email, "account_id": owner_account},
                "facts": {
                    "financial_state": financial_state,
                    "fulfillment_state": fulfillment_state,
                    "order_cancelled_at": cancelled_at,
                    "in_refund_record": refunded,
                    "restocked": restocked,
                },
            }
        )
    except ValidationError as exc:
        raise click.UsageError(f"Invalid unit record: {exc}") from exc

    svc = FactService(app.ledger)
    app.emit(svc.ingest([record], reconcile=not no_reconcile))


@facts.command(
    examples="""\
  editionctl facts ingest feed.json
  editionctl facts ingest feed.jsonl --no-reconcile
  cat feed.jsonl | editionctl facts ingest -"""
)
@click.argument("feed", type=click.File("r", encoding="utf-8"))
@click.option("--no-reconcile", is_flag=True, help="Record facts without reconciling.")
@click.pass_obj
def ingest(app: AppContext, feed: Any, no_reconcile: bool) -> None:
    """Apply a JSON or JSON Lines feed of editions and units."""
    from editionctl.services.facts import FactService

    editions, units = parse_feed(feed.read())
    app.emit(FactService(app.ledger).ingest(units, editions=editions, reconcile=not no_reconcile))


@facts.command(
    examples="""\
  editionctl facts remove U-1001
  editionctl facts remove U-1001 --reason restocked --note "returned to stock\""""
)
@click.argument("unit_id")
@click.option(
    "--reason",
    type=click.Choice([r.value for r in RemovalReason]),
    default=RemovalReason.MANUAL.value,
    help="Reason recorded in the audit log.",
)
@click.option("--note", default=None, help="Free-text note for the audit log.")
@click.pass_obj
def remove(app: AppContext, unit_id: str, reason: str, note: str | None) -> None:
    """Take a unit out of its edition."""
    from editionctl.services.facts import FactService

    app.emit(FactService(app.ledger).mark_removed(unit_id, reason, note=note))


@facts.command(examples="  editionctl facts restore U-1001 --note \"removed in error\"")
@click.argument("unit_id")
@click.option("--note", default=None, help="Free-text note for the audit log.")
@click.pass_obj
def restore(app: AppContext, unit_id: str, note: str | None) -> None:
    """Lift an operator removal."""
    from editionctl.services.facts import FactService

    app.emit(FactService(app.ledger).restore(unit_id, note=note))
