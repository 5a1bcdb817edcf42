"""QueryService — read-only views over the ledger.

Six surfaces, all through ``ledger.read()`` (no write lock):
- get_unit: verify one unit's edition number and certificate
- list_edition: every unit of an edition, optionally with history
- history / ownership_history: the audit log of one unit
- collector_units: active units held by one collector
- list_editions: per-edition counts and capacity
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any

from editionctl.domain.sequencing import format_edition_number, overflow
from editionctl.domain.types import EventType, UnitStatus
from editionctl.services._helpers import facts_from_row, owner_from_row
from editionctl.services.base import BaseService
from editionctl.services.errors import EditionNotFound, UnitNotFound
from editionctl.services.result import ServiceError, ServiceResult
from editionctl.services.telemetry import traced


def _load(value: str | None) -> Any:
    return json.loads(value) if value else None


def event_to_dict(row: Any) -> dict[str, Any]:
    """Decode one ``edition_events`` row."""
    return {
        "id": row.id,
        "unit_id": row.unit_id,
        "edition_id": row.edition_id,
        "event_type": row.event_type,
        "rank": row.rank,
        "detail": _load(row.detail),
        "previous_owner": _load(row.previous_owner),
        "new_owner": _load(row.new_owner),
        "reason": row.reason,
        "timestamp": row.timestamp,
    }


def unit_to_dict(row: Any, edition_size: int | None) -> dict[str, Any]:
    return {
        "unit_id": row.unit_id,
        "edition_id": row.edition_id,
        "order_id": row.order_id,
        "acquired_at": row.acquired_at,
        "status": row.status,
        "inactive_reason": row.inactive_reason,
        "rank": row.rank,
        "edition_number": format_edition_number(row.rank, edition_size),
        "certificate_id": row.certificate_id,
        "certificate_url": row.certificate_url,
        "owner": owner_from_row(row).as_dict(),
    }


class QueryService(BaseService):
    """Lookups for collectors, operators, and the certificate page."""

    @traced
    def get_unit(self, unit_id: str) -> ServiceResult:
        """Verify a unit's edition number, as printed on its certificate."""
        op = "get_unit"
        with self._ledger.read() as txn:
            row = txn.get_unit(unit_id)
            if row is None:
                return UnitNotFound(unit_id).to_result(op)
            edition = txn.get_edition(row.edition_id)

        size = edition.edition_size if edition is not None else row.edition_size
        facts = facts_from_row(row)
        data = unit_to_dict(row, size)
        data.update(
            {
                "edition_size": size,
                "title": edition.title if edition is not None else None,
                "verified": row.status == UnitStatus.ACTIVE and row.rank is not None,
                "facts": facts.model_dump(mode="json") if facts is not None else None,
            }
        )
        return ServiceResult(ok=True, op=op, data=data)

    @traced
    def list_edition(
        self,
        edition_id: str,
        *,
        status: UnitStatus | str | None = None,
        include_history: bool = False,
    ) -> ServiceResult:
        """All units of an edition in acquisition order."""
        op = "list_edition"
        with self._ledger.read() as txn:
            edition = txn.get_edition(edition_id)
            if edition is None:
                return EditionNotFound(edition_id).to_result(op)
            rows = txn.load_units(edition_id)
            items: list[dict[str, Any]] = []
            for row in rows:
                if status is not None and row.status != str(status):
                    continue
                item = unit_to_dict(row, edition.edition_size)
                if include_history:
                    item["history"] = [event_to_dict(e) for e in txn.events_for_unit(row.unit_id)]
                items.append(item)

        active = sum(1 for r in rows if r.status == UnitStatus.ACTIVE)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "edition_id": edition.edition_id,
                "title": edition.title,
                "edition_size": edition.edition_size,
                "revision": edition.revision,
                "active_count": active,
                "over_capacity": overflow(active, edition.edition_size),
                "items": items,
                "count": len(items),
            },
        )

    @traced
    def history(self, unit_id: str) -> ServiceResult:
        """Every audit event for a unit, oldest first."""
        op = "history"
        with self._ledger.read() as txn:
            if txn.get_unit(unit_id) is None:
                return UnitNotFound(unit_id).to_result(op)
            events = [event_to_dict(e) for e in txn.events_for_unit(unit_id)]
        return ServiceResult(
            ok=True,
            op=op,
            data={"unit_id": unit_id, "items": events, "count": len(events)},
        )

    @traced
    def ownership_history(self, unit_id: str) -> ServiceResult:
        """Chain of custody: past transfers plus the current owner."""
        op = "ownership_history"
        with self._ledger.read() as txn:
            row = txn.get_unit(unit_id)
            if row is None:
                return UnitNotFound(unit_id).to_result(op)
            transfers = [
                event_to_dict(e)
                for e in txn.events_for_unit(unit_id, [EventType.OWNERSHIP_TRANSFER])
            ]
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "unit_id": unit_id,
                "current_owner": owner_from_row(row).as_dict(),
                "items": transfers,
                "count": len(transfers),
            },
        )

    @traced
    def collector_units(
        self,
        *,
        email: str | None = None,
        account_id: str | None = None,
        include_inactive: bool = False,
    ) -> ServiceResult:
        """Units held by a collector, matched by email or account id."""
        op = "collector_units"
        email = email.strip().lower() if email else None
        account_id = account_id.strip() if account_id else None
        if email is None and account_id is None:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code="NO_COLLECTOR",
                    message="Provide an email or an account id to look up a collector",
                ),
            )

        with self._ledger.read() as txn:
            rows = txn.units_for_owner(email=email, account_id=account_id)
            sizes = {e.edition_id: e.edition_size for e in txn.list_editions()}

        items = [
            unit_to_dict(row, sizes.get(row.edition_id))
            for row in rows
            if include_inactive or (row.status == UnitStatus.ACTIVE and row.rank is not None)
        ]
        per_edition = Counter(item["edition_id"] for item in items)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "email": email,
                "account_id": account_id,
                "items": items,
                "count": len(items),
                "editions": dict(sorted(per_edition.items())),
            },
        )

    @traced
    def list_editions(self) -> ServiceResult:
        """Every edition with its active count and capacity."""
        with self._ledger.read() as txn:
            items = []
            for edition in txn.list_editions():
                rows = txn.load_units(edition.edition_id)
                active = sum(1 for r in rows if r.status == UnitStatus.ACTIVE)
                items.append(
                    {
                        "edition_id": edition.edition_id,
                        "title": edition.title,
                        "edition_size": edition.edition_size,
                        "revision": edition.revision,
                        "units": len(rows),
                        "active_count": active,
                        "over_capacity": overflow(active, edition.edition_size),
                        "modified": edition.modified,
                    }
                )
        return ServiceResult(
            ok=True,
            op="list_editions",
            data={"items": items, "count": len(items)},
        )
