"""TransferService — change a unit's custodian without touching its number.

Ownership is independent of rank and certificate identity: a transfer
rewrites only the owner columns and appends one audit row. It needs
row-level atomicity on the single unit and never takes an edition lock.
"""

from __future__ import annotations

import logging

from editionctl.domain.facts import Owner
from editionctl.domain.sequencing import format_edition_number
from editionctl.domain.types import EventType, UnitStatus
from editionctl.services._helpers import now_iso, owner_columns, owner_from_row
from editionctl.services.base import BaseService
from editionctl.services.errors import EditionError, OwnershipPrecondition, UnitNotFound
from editionctl.services.result import ServiceResult
from editionctl.services.telemetry import traced

logger = logging.getLogger(__name__)


class TransferService(BaseService):
    """Ownership transfer with an audit trail."""

    @traced
    def transfer_ownership(
        self,
        unit_id: str,
        new_owner: Owner,
        reason: str | None = None,
    ) -> ServiceResult:
        """Overwrite the owner of an active, numbered unit.

        Identical owner fields are a no-change result: ``ok`` with
        ``changed`` False, a warning, and no audit row.
        """
        op = "transfer_ownership"
        warnings: list[str] = []
        timestamp = now_iso()
        try:
            with self._ledger.transaction() as txn:
                row = txn.get_unit(unit_id)
                if row is None:
                    raise UnitNotFound(unit_id)
                if row.status != UnitStatus.ACTIVE or row.rank is None:
                    raise OwnershipPrecondition(unit_id, status=row.status, rank=row.rank)

                previous = owner_from_row(row)
                if previous == new_owner:
                    return ServiceResult(
                        ok=True,
                        op=op,
                        data={
                            "unit_id": unit_id,
                            "changed": False,
                            "owner": previous.as_dict(),
                        },
                        warnings=[f"Unit {unit_id} already belongs to this owner"],
                    )

                txn.update_unit(unit_id, **owner_columns(new_owner), modified=timestamp)
                event_id = txn.append_event(
                    unit_id=unit_id,
                    edition_id=row.edition_id,
                    event_type=EventType.OWNERSHIP_TRANSFER,
                    timestamp=timestamp,
                    rank=row.rank,
                    previous_owner=previous.as_dict(),
                    new_owner=new_owner.as_dict(),
                    reason=reason,
                )
        except EditionError as exc:
            return exc.to_result(op)

        logger.info("unit %s transferred (audit event %d)", unit_id, event_id)
        audit = {
            "id": event_id,
            "unit_id": unit_id,
            "previous_owner": previous.as_dict(),
            "new_owner": new_owner.as_dict(),
            "reason": reason,
            "timestamp": timestamp,
        }
        self._dispatch_event(
            "post_transfer",
            {
                "unit_id": unit_id,
                "edition_id": row.edition_id,
                "previous_owner": previous.as_dict(),
                "new_owner": new_owner.as_dict(),
                "reason": reason,
            },
            warnings,
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "unit_id": unit_id,
                "edition_id": row.edition_id,
                "changed": True,
                "rank": row.rank,
                "edition_number": format_edition_number(row.rank, row.edition_size),
                "certificate_id": row.certificate_id,
                "owner": new_owner.as_dict(),
                "audit": audit,
            },
            warnings=warnings,
        )
