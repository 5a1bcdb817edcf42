"""Tests for CheckService — integrity audit and repair."""

from __future__ import annotations

from editionctl.infrastructure.ledger import Ledger
from editionctl.services.check import CheckService
from tests.conftest import active_ranks, add_edition, add_unit, reconcile, seed_abc


def kinds(result) -> set[str]:
    return {issue["kind"] for issue in result.data["issues"]}


class TestCheck:
    def test_clean_ledger(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        result = CheckService(ledger).check()
        assert result.ok
        assert result.data["count"] == 0
        assert result.data["editions_checked"] == 1

    def test_duplicate_rank(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        with ledger.transaction() as txn:
            txn.update_unit("C", rank=2)
        result = CheckService(ledger).check("ED-1")
        assert "duplicate_rank" in kinds(result)
        assert "rank_gap" in kinds(result)
        assert result.data["errors"] >= 2

    def test_status_drift(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        with ledger.transaction() as txn:
            txn.upsert_facts("B", in_refund_record=1)
        result = CheckService(ledger).check()
        (drift,) = [i for i in result.data["issues"] if i["kind"] == "status_drift"]
        assert drift["unit_ids"] == ["B"]
        assert drift["category"] == "classification"

    def test_missing_certificate(self, ledger: Ledger) -> None:
        add_edition(ledger)
        add_unit(ledger, "A")
        with ledger.transaction() as txn:
            txn.update_unit("A", status="active", rank=1, edition_size=50)
        result = CheckService(ledger).check()
        assert kinds(result) == {"missing_certificate"}
        assert result.data["errors"] == 0

    def test_over_capacity_is_not_fixable(self, ledger: Ledger) -> None:
        add_edition(ledger, size=1)
        add_unit(ledger, "A", minute=1)
        add_unit(ledger, "B", minute=2)
        reconcile(ledger)
        (issue,) = CheckService(ledger).check().data["issues"]
        assert issue["kind"] == "over_capacity"
        assert issue["fix_action"] is None

    def test_unknown_edition(self, ledger: Ledger) -> None:
        assert CheckService(ledger).check("ED-404").error.code == "EDITION_NOT_FOUND"


class TestFix:
    def test_fix_repairs_by_reconciling(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        with ledger.transaction() as txn:
            txn.update_unit("C", rank=7)
            txn.upsert_facts("A", in_refund_record=1)
        result = CheckService(ledger).fix()
        assert result.ok
        assert result.data["fixes"] == ["Reconciled edition ED-1"]
        assert result.data["remaining"] == []
        assert active_ranks(ledger) == {"B": 1, "C": 2}

    def test_nothing_to_fix(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        result = CheckService(ledger).fix()
        assert result.ok
        assert result.data["count"] == 0

    def test_over_capacity_remains(self, ledger: Ledger) -> None:
        add_edition(ledger, size=1)
        add_unit(ledger, "A", minute=1)
        add_unit(ledger, "B", minute=2)
        reconcile(ledger)
        result = CheckService(ledger).fix()
        assert result.data["count"] == 0
        assert [i["kind"] for i in result.data["remaining"]] == ["over_capacity"]
