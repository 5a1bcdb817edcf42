"""CheckService — integrity audit and repair.

Follows the linter pattern: ``check`` reports, ``fix`` repairs. Three
categories:
- sequencing: the stored numbering breaks a rank invariant
- classification: stored status differs from what current facts say
- certification: active units without certificates, capacity, stale sizes

Every repair is a reconciliation, so ``fix`` never writes anything a
normal reconciliation would not.
"""

from __future__ import annotations

from typing import Any

from editionctl.domain.classification import classify
from editionctl.domain.facts import parse_iso
from editionctl.domain.sequencing import SequenceEntry, find_rank_issues, overflow
from editionctl.domain.types import UnitStatus
from editionctl.services._helpers import facts_from_row, policy_from_config
from editionctl.services.base import BaseService
from editionctl.services.errors import EditionNotFound
from editionctl.services.reconcile import ReconcileService
from editionctl.services.result import ServiceResult
from editionctl.services.telemetry import trace_span, traced

# ---------------------------------------------------------------------------
# Issue severity and category constants
# ---------------------------------------------------------------------------

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

CAT_SEQUENCING = "sequencing"
CAT_CLASSIFICATION = "classification"
CAT_CERTIFICATION = "certification"

FIX_RECONCILE = "reconcile"


def _issue(
    category: str,
    severity: str,
    edition_id: str,
    kind: str,
    message: str,
    *,
    unit_ids: tuple[str, ...] | list[str] = (),
    fix_action: str | None = FIX_RECONCILE,
) -> dict[str, Any]:
    return {
        "category": category,
        "severity": severity,
        "edition_id": edition_id,
        "kind": kind,
        "message": message,
        "unit_ids": list(unit_ids),
        "fix_action": fix_action,
    }


class CheckService(BaseService):
    """Audits stored editions against the numbering invariants."""

    @traced
    def check(self, edition_id: str | None = None) -> ServiceResult:
        """Report integrity issues without modifying anything."""
        op = "check"
        policy = policy_from_config(self._ledger.settings.classification)
        issues: list[dict[str, Any]] = []
        with self._ledger.read() as txn:
            if edition_id is not None:
                edition = txn.get_edition(edition_id)
                if edition is None:
                    return EditionNotFound(edition_id).to_result(op)
                editions = [edition]
            else:
                editions = list(txn.list_editions())

            for edition in editions:
                rows = txn.load_units(edition.edition_id)
                with trace_span("sequencing"):
                    issues.extend(self._check_sequencing(edition.edition_id, rows))
                with trace_span("classification"):
                    issues.extend(self._check_classification(edition.edition_id, rows, policy))
                with trace_span("certification"):
                    issues.extend(self._check_certification(edition, rows))

        warnings: list[str] = []
        errors = sum(1 for i in issues if i["severity"] == SEVERITY_ERROR)
        self._dispatch_event(
            "post_check",
            {"issues_found": len(issues), "errors": errors, "editions_checked": len(editions)},
            warnings,
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "issues": issues,
                "count": len(issues),
                "errors": errors,
                "editions_checked": len(editions),
            },
            warnings=warnings,
        )

    @traced
    def fix(self, edition_id: str | None = None) -> ServiceResult:
        """Reconcile every edition that has a repairable issue."""
        report = self.check(edition_id)
        if not report.ok:
            return report.model_copy(update={"op": "fix"})

        targets = list(
            dict.fromkeys(
                issue["edition_id"]
                for issue in report.data["issues"]
                if issue["fix_action"] == FIX_RECONCILE
            )
        )
        if not targets:
            return ServiceResult(
                ok=True,
                op="fix",
                data={"fixes": [], "count": 0, "remaining": report.data["issues"]},
                warnings=report.warnings,
            )

        batch = ReconcileService(self._ledger).reconcile_many(targets)
        fixes = [f"Reconciled edition {eid}" for eid in batch.data["succeeded"]]
        after = self.check(edition_id)
        return ServiceResult(
            ok=batch.ok,
            op="fix",
            data={
                "fixes": fixes,
                "count": len(fixes),
                "reconcile": batch.data,
                "remaining": after.data.get("issues", []),
            },
            warnings=report.warnings + batch.warnings,
            error=batch.error,
        )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @staticmethod
    def _check_sequencing(edition_id: str, rows: Any) -> list[dict[str, Any]]:
        entries = [
            SequenceEntry(
                unit_id=row.unit_id,
                acquired_at=parse_iso(row.acquired_at),
                active=row.status == UnitStatus.ACTIVE,
            )
            for row in rows
        ]
        ranks = {row.unit_id: row.rank for row in rows}
        return [
            _issue(
                CAT_SEQUENCING,
                SEVERITY_ERROR,
                edition_id,
                problem.kind,
                problem.message,
                unit_ids=problem.unit_ids,
            )
            for problem in find_rank_issues(entries, ranks)
        ]

    @staticmethod
    def _check_classification(edition_id: str, rows: Any, policy: Any) -> list[dict[str, Any]]:
        issues = []
        for row in rows:
            verdict = classify(facts_from_row(row), policy)
            if row.status != verdict.status:
                issues.append(
                    _issue(
                        CAT_CLASSIFICATION,
                        SEVERITY_ERROR,
                        edition_id,
                        "status_drift",
                        f"Unit {row.unit_id} is stored {row.status} but current facts say "
                        f"{verdict.status}",
                        unit_ids=[row.unit_id],
                    )
                )
        return issues

    @staticmethod
    def _check_certification(edition: Any, rows: Any) -> list[dict[str, Any]]:
        edition_id = edition.edition_id
        issues = []
        for row in rows:
            if row.status == UnitStatus.ACTIVE and row.certificate_id is None:
                issues.append(
                    _issue(
                        CAT_CERTIFICATION,
                        SEVERITY_WARNING,
                        edition_id,
                        "missing_certificate",
                        f"Active unit {row.unit_id} has no certificate",
                        unit_ids=[row.unit_id],
                    )
                )
            if row.rank is not None and row.edition_size != edition.edition_size:
                issues.append(
                    _issue(
                        CAT_CERTIFICATION,
                        SEVERITY_WARNING,
                        edition_id,
                        "stale_edition_size",
                        f"Unit {row.unit_id} records size {row.edition_size}, "
                        f"edition is {edition.edition_size}",
                        unit_ids=[row.unit_id],
                    )
                )

        active = sum(1 for r in rows if r.status == UnitStatus.ACTIVE)
        excess = overflow(active, edition.edition_size)
        if excess:
            issues.append(
                _issue(
                    CAT_CERTIFICATION,
                    SEVERITY_WARNING,
                    edition_id,
                    "over_capacity",
                    f"{active} active units exceed the edition size of {edition.edition_size}",
                    fix_action=None,
                )
            )
        return issues
