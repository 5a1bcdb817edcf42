"""FactService — the inbound fact feed and admin removal markers.

Facts are stored as delivered and never interpreted here; the classifier
reads them during reconciliation. Writes through this service touch
single rows and do not take edition locks. Callers that need the
numbering to reflect new facts reconcile afterwards (``ingest`` does so
by default).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from editionctl.domain.facts import EditionRecord, UnitRecord, parse_iso, to_iso
from editionctl.domain.types import EventType, RemovalReason
from editionctl.services._helpers import now_iso, owner_columns
from editionctl.services.base import BaseService
from editionctl.services.errors import EditionError, UnitNotFound
from editionctl.services.reconcile import ReconcileService
from editionctl.services.result import ServiceError, ServiceResult
from editionctl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from editionctl.infrastructure.ledger import LedgerTransaction

logger = logging.getLogger(__name__)


def _fact_columns(record: UnitRecord, *, keep_removed: bool, timestamp: str) -> dict[str, Any]:
    facts = record.facts
    cancelled = facts.order_cancelled_at
    return {
        "financial_state": facts.financial_state,
        "fulfillment_state": facts.fulfillment_state,
        "order_cancelled_at": to_iso(cancelled) if cancelled is not None else None,
        "in_refund_record": int(facts.in_refund_record),
        # An operator's removal stays in force until restore().
        "manual_removed": int(facts.manual_removed or keep_removed),
        "restocked": int(facts.restocked),
        "updated": timestamp,
    }


def _stored_facts(row: Any) -> dict[str, Any] | None:
    if row.facts_updated is None:
        return None
    return {
        "financial_state": row.financial_state,
        "fulfillment_state": row.fulfillment_state,
        "order_cancelled_at": row.order_cancelled_at,
        "in_refund_record": int(row.in_refund_record),
        "manual_removed": int(row.manual_removed),
        "restocked": int(row.restocked),
    }


def _invalid_edition(op: str, edition_id: Any, exc: ValidationError) -> ServiceResult:
    first = exc.errors()[0]
    field = str(first["loc"][0]) if first["loc"] else "edition"
    return ServiceResult(
        ok=False,
        op=op,
        error=ServiceError(
            code="INVALID_EDITION_SIZE" if field == "edition_size" else "INVALID_EDITION",
            message=f"Invalid {field} for edition {edition_id!r}: {first['msg']}",
            detail={"edition_id": edition_id, "field": field, "input": first.get("input")},
        ),
    )


class FactService(BaseService):
    """Record editions, units, and their facts."""

    # ------------------------------------------------------------------
    # Editions
    # ------------------------------------------------------------------

    @traced
    def record_edition(
        self,
        edition_id: str,
        *,
        edition_size: int | None = None,
        title: str | None = None,
    ) -> ServiceResult:
        """Create or update an edition's configuration.

        Omitted fields keep their stored values on update.
        """
        op = "record_edition"
        try:
            record = EditionRecord(edition_id=edition_id, edition_size=edition_size, title=title)
        except ValidationError as exc:
            return _invalid_edition(op, edition_id, exc)
        edition_id, edition_size, title = record.edition_id, record.edition_size, record.title
        timestamp = now_iso()
        with self._ledger.transaction() as txn:
            existing = txn.get_edition(edition_id)
            if existing is None:
                txn.insert_edition(
                    edition_id=edition_id,
                    title=title,
                    edition_size=edition_size,
                    revision=0,
                    created=timestamp,
                    modified=timestamp,
                )
                created = True
            else:
                values: dict[str, Any] = {}
                if edition_size is not None:
                    values["edition_size"] = edition_size
                if title is not None:
                    values["title"] = title
                txn.update_edition(edition_id, **values, modified=timestamp)
                created = False
            row = txn.get_edition(edition_id)
        assert row is not None
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "edition_id": row.edition_id,
                "title": row.title,
                "edition_size": row.edition_size,
                "revision": row.revision,
                "created": created,
            },
        )

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    @traced
    def record_unit(self, record: UnitRecord) -> ServiceResult:
        """Create a unit or replace its facts.

        ``acquired_at`` and ``edition_id`` are immutable: differing values
        for an existing unit are ignored with a warning. The owner is
        only seeded when the unit is first created.
        """
        warnings: list[str] = []
        with self._ledger.transaction() as txn:
            data = self._record(txn, record, now_iso(), warnings)
        return ServiceResult(ok=True, op="record_unit", data=data, warnings=warnings)

    @traced
    def ingest(
        self,
        records: Iterable[UnitRecord | Mapping[str, Any]],
        *,
        editions: Iterable[EditionRecord | Mapping[str, Any]] = (),
        reconcile: bool = True,
    ) -> ServiceResult:
        """Apply a batch of feed records, then reconcile the affected editions.

        Invalid records are rejected individually and reported in
        ``data["rejected"]``; the rest of the batch is still applied.
        """
        op = "ingest"
        warnings: list[str] = []
        rejected: list[dict[str, Any]] = []
        touched: list[str] = []
        recorded = 0
        created = 0

        for entry in editions:
            try:
                edition = EditionRecord.model_validate(entry)
            except ValidationError as exc:
                raw_id = entry.get("edition_id") if isinstance(entry, Mapping) else None
                rejected.append({"index": None, "edition_id": raw_id, "error": str(exc)})
                continue
            self.record_edition(
                edition.edition_id, edition_size=edition.edition_size, title=edition.title
            )
            touched.append(edition.edition_id)

        timestamp = now_iso()
        with trace_span("record_units"), self._ledger.transaction() as txn:
            for index, raw in enumerate(records):
                try:
                    record = raw if isinstance(raw, UnitRecord) else UnitRecord.model_validate(raw)
                except ValidationError as exc:
                    rejected.append({"index": index, "error": str(exc)})
                    continue
                unit = self._record(txn, record, timestamp, warnings)
                recorded += 1
                created += int(unit["created"])
                touched.append(unit["edition_id"])

        for item in rejected:
            if item["index"] is None:
                label = f"edition {item['edition_id']!r}"
            else:
                label = f"record {item['index']}"
            warnings.append(f"Rejected {label}: {item['error'].splitlines()[0]}")

        affected = list(dict.fromkeys(touched))
        data: dict[str, Any] = {
            "recorded": recorded,
            "created": created,
            "rejected": rejected,
            "editions": affected,
        }
        if not reconcile or not affected:
            return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

        batch = ReconcileService(self._ledger).reconcile_many(affected)
        data["reconcile"] = batch.data
        return ServiceResult(
            ok=batch.ok,
            op=op,
            data=data,
            warnings=warnings + batch.warnings,
            error=batch.error,
        )

    # ------------------------------------------------------------------
    # Admin removal
    # ------------------------------------------------------------------

    @traced
    def mark_removed(
        self,
        unit_id: str,
        reason: RemovalReason | str = RemovalReason.MANUAL,
        *,
        note: str | None = None,
    ) -> ServiceResult:
        """Take a unit out of its edition by operator decision."""
        removal = RemovalReason(reason)
        return self._set_removed(unit_id, removed=True, reason=str(removal), note=note)

    @traced
    def restore(self, unit_id: str, *, note: str | None = None) -> ServiceResult:
        """Lift an operator removal; current facts decide the unit's status again."""
        return self._set_removed(unit_id, removed=False, reason=None, note=note)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_removed(
        self,
        unit_id: str,
        *,
        removed: bool,
        reason: str | None,
        note: str | None,
    ) -> ServiceResult:
        op = "mark_removed" if removed else "restore"
        timestamp = now_iso()
        try:
            with self._ledger.transaction() as txn:
                row = txn.get_unit(unit_id)
                if row is None:
                    raise UnitNotFound(unit_id)
                if bool(row.manual_removed) == removed:
                    state = "removed" if removed else "not removed"
                    return ServiceResult(
                        ok=True,
                        op=op,
                        data={"unit_id": unit_id, "edition_id": row.edition_id, "changed": False},
                        warnings=[f"Unit {unit_id} is already {state}"],
                    )
                txn.upsert_facts(unit_id, manual_removed=int(removed), updated=timestamp)
                txn.append_event(
                    unit_id=unit_id,
                    edition_id=row.edition_id,
                    event_type=EventType.MANUAL_REMOVAL if removed else EventType.MANUAL_RESTORE,
                    timestamp=timestamp,
                    rank=row.rank,
                    detail={"note": note} if note else None,
                    reason=reason,
                )
        except EditionError as exc:
            return exc.to_result(op)

        logger.info("unit %s %s (%s)", unit_id, op, reason or "-")
        result = ReconcileService(self._ledger).reconcile(row.edition_id)
        data = {
            "unit_id": unit_id,
            "edition_id": row.edition_id,
            "changed": True,
            "reason": reason,
            "reconcile": result.data,
        }
        return ServiceResult(
            ok=result.ok,
            op=op,
            data=data,
            warnings=result.warnings,
            error=result.error,
        )

    def _record(
        self,
        txn: LedgerTransaction,
        record: UnitRecord,
        timestamp: str,
        warnings: list[str],
    ) -> dict[str, Any]:
        row = txn.get_unit(record.unit_id)
        if row is None:
            if txn.get_edition(record.edition_id) is None:
                txn.insert_edition(
                    edition_id=record.edition_id,
                    revision=0,
                    created=timestamp,
                    modified=timestamp,
                )
                warnings.append(f"Edition {record.edition_id} created implicitly without a size")
            txn.insert_unit(
                unit_id=record.unit_id,
                edition_id=record.edition_id,
                order_id=record.order_id,
                acquired_at=to_iso(record.acquired_at),
                status="inactive",
                **owner_columns(record.owner),
                created=timestamp,
                modified=timestamp,
            )
            columns = _fact_columns(record, keep_removed=False, timestamp=timestamp)
            txn.upsert_facts(record.unit_id, **columns)
            return {
                "unit_id": record.unit_id,
                "edition_id": record.edition_id,
                "created": True,
                "facts_changed": True,
            }

        if row.edition_id != record.edition_id:
            warnings.append(
                f"Unit {record.unit_id} belongs to edition {row.edition_id}; "
                f"ignoring edition {record.edition_id}"
            )
        if parse_iso(row.acquired_at) != record.acquired_at:
            warnings.append(
                f"Unit {record.unit_id} acquisition time is immutable; "
                f"keeping {row.acquired_at}"
            )
        if row.order_id is None and record.order_id is not None:
            txn.update_unit(record.unit_id, order_id=record.order_id, modified=timestamp)

        columns = _fact_columns(record, keep_removed=bool(row.manual_removed), timestamp=timestamp)
        stored = _stored_facts(row)
        changed = stored != {k: v for k, v in columns.items() if k != "updated"}
        if changed:
            txn.upsert_facts(record.unit_id, **columns)
        return {
            "unit_id": record.unit_id,
            "edition_id": row.edition_id,
            "created": False,
            "facts_changed": changed,
        }
