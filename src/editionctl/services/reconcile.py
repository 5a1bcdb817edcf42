"""ReconcileService — the single entry point for every resequencing trigger.

One reconciliation of one edition, inside one serialized transaction:

1. classify every unit of the edition from its current facts
2. recompute dense ranks over the active set
3. issue certificates to active units that have none
4. write changed units, audit the changes, and bump the edition revision

Webhook-driven sync, the admin "resequence" action, and the scheduled
sweep all call :meth:`ReconcileService.reconcile` (or its batch forms);
none of them reimplements any of the steps above.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import OperationalError

from editionctl.domain.certificates import UrlBuilder
from editionctl.domain.classification import classify
from editionctl.domain.facts import parse_iso
from editionctl.domain.sequencing import (
    SequenceEntry,
    assign_ranks,
    diff_ranks,
    overflow,
)
from editionctl.domain.types import EventType, UnitStatus
from editionctl.services._helpers import (
    facts_from_row,
    now_iso,
    policy_from_config,
    url_builder_from_config,
)
from editionctl.services.base import BaseService
from editionctl.services.certificates import issue_certificate
from editionctl.services.errors import (
    CertificateIssuanceFailed,
    ConcurrentModification,
    EditionError,
    EditionNotFound,
)
from editionctl.services.result import ServiceError, ServiceResult
from editionctl.services.telemetry import get_current_span, trace_span, traced

if TYPE_CHECKING:
    from editionctl.infrastructure.ledger import EditionTransaction, Ledger

logger = logging.getLogger(__name__)


def _is_lock_contention(exc: OperationalError) -> bool:
    message = str(exc.orig or exc).lower()
    return "database is locked" in message or "database is busy" in message


@dataclass
class _Pass:
    """Mutable accumulator for one reconciliation attempt."""

    edition_id: str
    edition_size: int | None
    revision: int = 0
    ranks: dict[str, int | None] = field(default_factory=dict)
    activated: list[str] = field(default_factory=list)
    deactivated: list[str] = field(default_factory=list)
    rank_changes: list[dict[str, Any]] = field(default_factory=list)
    issued: dict[str, tuple[str, str]] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)
    ambiguous: list[str] = field(default_factory=list)
    units_updated: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.units_updated > 0 or bool(self.issued)

    def to_data(self) -> dict[str, Any]:
        active = {uid: r for uid, r in self.ranks.items() if r is not None}
        excess = overflow(len(active), self.edition_size)
        return {
            "edition_id": self.edition_id,
            "edition_size": self.edition_size,
            "revision": self.revision,
            "changed": self.changed,
            "active_count": len(active),
            "over_capacity": excess,
            "ranks": dict(sorted(active.items(), key=lambda item: item[1])),
            "activated": self.activated,
            "deactivated": self.deactivated,
            "rank_changes": self.rank_changes,
            "certificates_issued": list(self.issued),
            "certificate_failures": self.failed,
            "ambiguous": self.ambiguous,
        }


class ReconcileService(BaseService):
    """Classify, resequence, and certify editions."""

    def __init__(
        self,
        ledger: Ledger,
        *,
        url_builder: UrlBuilder | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(ledger)
        settings = ledger.settings
        self._policy = policy_from_config(settings.classification)
        self._url_builder = url_builder or url_builder_from_config(settings.certificates)
        self._retry = settings.reconcile
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @traced
    def reconcile(self, edition_id: str) -> ServiceResult:
        """Bring one edition to a consistent numbering.

        Lost races are retried with capped exponential backoff. The
        caller sees either a committed result or a retryable
        ``CONCURRENT_MODIFICATION`` error, never a partial edition.
        """
        op = "reconcile"
        delay = self._retry.backoff_initial
        attempt = 0
        while True:
            attempt += 1
            try:
                with trace_span(f"attempt.{attempt}"):
                    outcome = self._reconcile_once(edition_id)
                break
            except ConcurrentModification as exc:
                cause: Exception = exc
            except OperationalError as exc:
                if not _is_lock_contention(exc):
                    raise
                cause = exc
            except EditionError as exc:
                return exc.to_result(op)

            if attempt >= self._retry.max_attempts:
                logger.warning(
                    "edition %s: giving up after %d attempts (%s)", edition_id, attempt, cause
                )
                return ConcurrentModification(edition_id, attempts=attempt).to_result(op)
            logger.info("edition %s: attempt %d lost a race, retrying", edition_id, attempt)
            self._sleep(min(delay, self._retry.backoff_max))
            delay = min(max(delay, 0.001) * 2, self._retry.backoff_max)

        span = get_current_span()
        if span is not None:
            span.annotate("attempts", attempt)

        data = outcome.to_data()
        warnings = list(outcome.warnings)
        if data["over_capacity"]:
            warnings.append(
                f"Edition {edition_id} has {data['active_count']} active units, "
                f"exceeding its size of {outcome.edition_size}"
            )
        if outcome.changed:
            self._dispatch_event(
                "post_reconcile",
                {
                    "edition_id": edition_id,
                    "revision": outcome.revision,
                    "ranks": data["ranks"],
                    "activated": outcome.activated,
                    "deactivated": outcome.deactivated,
                },
                warnings,
            )
            for unit_id, (certificate_id, url) in outcome.issued.items():
                self._dispatch_event(
                    "post_certificate_issued",
                    {
                        "unit_id": unit_id,
                        "edition_id": edition_id,
                        "certificate_id": certificate_id,
                        "certificate_url": url,
                    },
                    warnings,
                )
        return ServiceResult(
            ok=True,
            op=op,
            data=data,
            warnings=warnings,
            meta={"attempts": attempt},
        )

    @traced
    def reconcile_many(self, edition_ids: Iterable[str]) -> ServiceResult:
        """Reconcile each edition independently.

        A failure on one edition is recorded in its own result and never
        stops the others.
        """
        results: list[ServiceResult] = []
        seen: set[str] = set()
        for edition_id in edition_ids:
            if edition_id in seen:
                continue
            seen.add(edition_id)
            try:
                result = self.reconcile(edition_id)
            except Exception as exc:
                logger.exception("edition %s: reconciliation failed", edition_id)
                result = ServiceResult(
                    ok=False,
                    op="reconcile",
                    error=ServiceError(
                        code="RECONCILE_FAILED",
                        message=f"Reconciliation of edition '{edition_id}' failed: {exc}",
                        detail={"edition_id": edition_id},
                    ),
                )
            results.append(result)
        return self._batch_result("reconcile_many", results)

    @traced
    def sweep(self) -> ServiceResult:
        """Reconcile every known edition (the scheduled global pass)."""
        with self._ledger.read() as txn:
            edition_ids = txn.list_edition_ids()
        result = self.reconcile_many(edition_ids)
        return result.model_copy(update={"op": "sweep"})

    @staticmethod
    def _batch_result(op: str, results: list[ServiceResult]) -> ServiceResult:
        succeeded = [r.data["edition_id"] for r in results if r.ok]
        failed = [
            {
                "edition_id": r.error.detail.get("edition_id"),
                "code": r.error.code,
                "message": r.error.message,
            }
            for r in results
            if not r.ok and r.error is not None
        ]
        warnings = [w for r in results for w in r.warnings]
        data = {
            "results": [r.model_dump(exclude={"meta"}) for r in results],
            "succeeded": succeeded,
            "failed": failed,
            "count": len(results),
        }
        if failed:
            return ServiceResult(
                ok=False,
                op=op,
                data=data,
                warnings=warnings,
                error=ServiceError(
                    code="PARTIAL_FAILURE",
                    message=f"{len(failed)} of {len(results)} edition(s) failed to reconcile",
                    detail={"failed": [f["edition_id"] for f in failed]},
                ),
            )
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    # ------------------------------------------------------------------
    # One attempt
    # ------------------------------------------------------------------

    def _reconcile_once(self, edition_id: str) -> _Pass:
        with self._ledger.edition_transaction(edition_id) as txn:
            if txn is None:
                raise EditionNotFound(edition_id)
            assert txn.edition is not None
            outcome = _Pass(
                edition_id=edition_id,
                edition_size=txn.edition.edition_size,
                revision=txn.seen_revision,
            )
            timestamp = now_iso()
            with trace_span("resequence"):
                self._resequence(txn, outcome, timestamp)
            with trace_span("certify"):
                self._certify(txn, outcome, timestamp)

            if outcome.changed:
                if not txn.bump_revision(timestamp):
                    raise ConcurrentModification(edition_id)
                outcome.revision = txn.seen_revision
        return outcome

    def _resequence(self, txn: EditionTransaction, outcome: _Pass, timestamp: str) -> None:
        rows = txn.load_units(outcome.edition_id)
        verdicts = {row.unit_id: classify(facts_from_row(row), self._policy) for row in rows}
        entries = [
            SequenceEntry(
                unit_id=row.unit_id,
                acquired_at=parse_iso(row.acquired_at),
                active=verdicts[row.unit_id].active,
            )
            for row in rows
        ]
        before = {row.unit_id: row.rank for row in rows}
        outcome.ranks = assign_ranks(entries)
        changed_ranks = {c.unit_id: c for c in diff_ranks(before, outcome.ranks)}
        outcome.rank_changes = [
            {"unit_id": c.unit_id, "before": c.before, "after": c.after}
            for c in changed_ranks.values()
        ]

        for row in rows:
            verdict = verdicts[row.unit_id]
            if verdict.ambiguous:
                outcome.ambiguous.append(row.unit_id)
            new_rank = outcome.ranks[row.unit_id]
            new_reason = str(verdict.reason) if verdict.reason is not None else None

            values: dict[str, Any] = {}
            if row.status != verdict.status:
                values["status"] = str(verdict.status)
            if row.inactive_reason != new_reason:
                values["inactive_reason"] = new_reason
            if row.rank != new_rank:
                values["rank"] = new_rank
            if row.edition_size != outcome.edition_size:
                values["edition_size"] = outcome.edition_size
            if not values:
                continue

            values["modified"] = timestamp
            txn.update_unit(row.unit_id, **values)
            outcome.units_updated += 1

            if "status" in values:
                if verdict.active:
                    outcome.activated.append(row.unit_id)
                else:
                    outcome.deactivated.append(row.unit_id)
                txn.append_event(
                    unit_id=row.unit_id,
                    edition_id=outcome.edition_id,
                    event_type=EventType.STATUS_CHANGED,
                    timestamp=timestamp,
                    rank=new_rank,
                    detail={"from": row.status, "to": str(verdict.status), "reason": new_reason},
                )
            if row.unit_id in changed_ranks:
                txn.append_event(
                    unit_id=row.unit_id,
                    edition_id=outcome.edition_id,
                    event_type=EventType.RANK_CHANGED,
                    timestamp=timestamp,
                    rank=new_rank,
                    detail={"from": row.rank, "to": new_rank},
                )

        if outcome.ambiguous:
            logger.warning(
                "edition %s: %d unit(s) held inactive on incomplete facts",
                outcome.edition_id,
                len(outcome.ambiguous),
            )

    def _certify(self, txn: EditionTransaction, outcome: _Pass, timestamp: str) -> None:
        for row in txn.load_units(outcome.edition_id):
            if row.status != UnitStatus.ACTIVE or row.certificate_id is not None:
                continue
            try:
                minted = issue_certificate(txn, row, self._url_builder, timestamp=timestamp)
            except CertificateIssuanceFailed as exc:
                logger.warning("edition %s: %s", outcome.edition_id, exc.message)
                outcome.failed.append(row.unit_id)
                outcome.warnings.append(exc.message)
                continue
            if minted is not None:
                outcome.issued[row.unit_id] = minted
