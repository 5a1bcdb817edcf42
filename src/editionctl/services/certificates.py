"""CertificateService — write-once certificate identity per unit.

A certificate is minted the first time a unit is seen active and is
never replaced. Issuance runs inside a savepoint so that one failure
rolls back only that unit's certificate, leaving the surrounding
reconciliation intact.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from editionctl.domain.certificates import UrlBuilder, generate_certificate_id
from editionctl.domain.sequencing import format_edition_number
from editionctl.domain.types import EventType, UnitStatus
from editionctl.services._helpers import now_iso, owner_from_row, url_builder_from_config
from editionctl.services.base import BaseService
from editionctl.services.errors import (
    CertificateIssuanceFailed,
    CertificateNotFound,
    EditionError,
    NotEligible,
    UnitNotFound,
)
from editionctl.services.result import ServiceResult
from editionctl.services.telemetry import traced

if TYPE_CHECKING:
    from sqlalchemy import Row

    from editionctl.infrastructure.ledger import Ledger, LedgerTransaction

logger = logging.getLogger(__name__)


def issue_certificate(
    txn: LedgerTransaction,
    row: Row[Any],
    url_builder: UrlBuilder,
    *,
    timestamp: str,
) -> tuple[str, str] | None:
    """Mint and persist a certificate for the unit in *row*.

    Returns ``(certificate_id, certificate_url)``, or None when the unit
    already carries a certificate. Raises :class:`CertificateIssuanceFailed`
    with the savepoint rolled back on any failure.
    """
    certificate_id = generate_certificate_id()
    try:
        url = url_builder(row.unit_id, certificate_id)
    except Exception as exc:
        raise CertificateIssuanceFailed(row.unit_id, f"URL derivation failed: {exc}") from exc

    try:
        with txn.conn.begin_nested():
            written = txn.set_certificate(
                row.unit_id,
                certificate_id=certificate_id,
                certificate_url=url,
                issued_at=timestamp,
            )
            if not written:
                return None
            txn.append_event(
                unit_id=row.unit_id,
                edition_id=row.edition_id,
                event_type=EventType.CERTIFICATE_ISSUED,
                timestamp=timestamp,
                rank=row.rank,
                detail={"certificate_id": certificate_id, "certificate_url": url},
            )
    except SQLAlchemyError as exc:
        raise CertificateIssuanceFailed(row.unit_id, str(exc.__cause__ or exc)) from exc

    logger.info("issued certificate %s for unit %s", certificate_id, row.unit_id)
    return certificate_id, url


def certificate_view(row: Row[Any], edition_size: int | None = None) -> dict[str, Any]:
    size = edition_size if edition_size is not None else row.edition_size
    return {
        "unit_id": row.unit_id,
        "edition_id": row.edition_id,
        "status": row.status,
        "rank": row.rank,
        "edition_number": format_edition_number(row.rank, size),
        "certificate_id": row.certificate_id,
        "certificate_url": row.certificate_url,
        "certificate_issued_at": row.certificate_issued_at,
    }


class CertificateService(BaseService):
    """Standalone certificate issuance and reverse lookup."""

    def __init__(self, ledger: Ledger, *, url_builder: UrlBuilder | None = None) -> None:
        super().__init__(ledger)
        self._url_builder = url_builder or url_builder_from_config(ledger.settings.certificates)

    @traced
    def ensure_certificate(self, unit_id: str) -> ServiceResult:
        """Return the unit's certificate, issuing one if it has none.

        Only active units with an edition number are issued a new
        certificate; an existing certificate is returned regardless of
        the unit's current status.
        """
        op = "ensure_certificate"
        warnings: list[str] = []
        try:
            with self._ledger.transaction() as txn:
                row = txn.get_unit(unit_id)
                if row is None:
                    raise UnitNotFound(unit_id)
                issued = False
                if row.certificate_id is None:
                    if row.status != UnitStatus.ACTIVE or row.rank is None:
                        raise NotEligible(
                            unit_id,
                            status=row.status,
                            rank=row.rank,
                            action="certificate issuance",
                        )
                    minted = issue_certificate(txn, row, self._url_builder, timestamp=now_iso())
                    issued = minted is not None
                    row = txn.get_unit(unit_id)
                    assert row is not None
        except EditionError as exc:
            return exc.to_result(op)

        data = {**certificate_view(row), "issued": issued}
        if issued:
            self._dispatch_event(
                "post_certificate_issued",
                {
                    "unit_id": row.unit_id,
                    "edition_id": row.edition_id,
                    "certificate_id": row.certificate_id,
                    "certificate_url": row.certificate_url,
                },
                warnings,
            )
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    @traced
    def verify(self, certificate_id: str) -> ServiceResult:
        """Resolve a certificate token back to its unit.

        ``valid`` is True only while the unit still counts toward its
        edition; certificates of inactive units remain resolvable.
        """
        op = "verify_certificate"
        with self._ledger.read() as txn:
            row = txn.get_unit_by_certificate(certificate_id)
            if row is None:
                return CertificateNotFound(certificate_id).to_result(op)
            edition = txn.get_edition(row.edition_id)

        size = edition.edition_size if edition is not None else row.edition_size
        owner = owner_from_row(row)
        data = {
            **certificate_view(row, size),
            "valid": row.status == UnitStatus.ACTIVE and row.rank is not None,
            "owner": owner.as_dict(),
            "title": edition.title if edition is not None else None,
        }
        return ServiceResult(ok=True, op=op, data=data)
