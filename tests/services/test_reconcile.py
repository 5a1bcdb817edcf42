"""Tests for ReconcileService — classify, resequence, certify."""

from __future__ import annotations

from typing import Any

import pytest

from editionctl.infrastructure.ledger import EditionTransaction, Ledger
from editionctl.services.facts import FactService
from editionctl.services.reconcile import ReconcileService
from tests.conftest import active_ranks, add_edition, add_unit, reconcile, seed_abc, unit_row


def refund(ledger: Ledger, unit_id: str, minute: float) -> None:
    add_unit(ledger, unit_id, minute=minute, in_refund_record=True)


# ---------------------------------------------------------------------------
# Worked scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_all_active_in_acquisition_order(self, ledger: Ledger) -> None:
        data = seed_abc(ledger)
        assert active_ranks(ledger) == {"A": 1, "B": 2, "C": 3}
        assert data["ranks"] == {"A": 1, "B": 2, "C": 3}
        assert data["activated"] == ["A", "B", "C"]
        assert sorted(data["certificates_issued"]) == ["A", "B", "C"]
        assert data["revision"] == 1

    def test_refund_compacts_and_keeps_certificate(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        b_certificate = unit_row(ledger, "B").certificate_id
        refund(ledger, "B", 2)

        data = reconcile(ledger)
        assert active_ranks(ledger) == {"A": 1, "C": 2}
        b = unit_row(ledger, "B")
        assert b.rank is None
        assert b.status == "inactive"
        assert b.inactive_reason == "refunded"
        assert b.certificate_id == b_certificate
        assert data["deactivated"] == ["B"]
        assert data["rank_changes"] == [
            {"unit_id": "B", "before": 2, "after": None},
            {"unit_id": "C", "before": 3, "after": 2},
        ]

    def test_late_payment_inserts_in_the_past(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        refund(ledger, "B", 2)
        reconcile(ledger)

        add_unit(ledger, "D", minute=1.5, financial="unpaid")
        data = reconcile(ledger)
        assert unit_row(ledger, "D").inactive_reason == "awaiting_payment"
        assert data["certificates_issued"] == []

        add_unit(ledger, "D", minute=1.5, financial="paid")
        data = reconcile(ledger)
        assert active_ranks(ledger) == {"A": 1, "D": 2, "C": 3}
        assert {"unit_id": "C", "before": 2, "after": 3} in data["rank_changes"]
        assert data["certificates_issued"] == ["D"]

    def test_transfer_leaves_rank_and_certificate(self, ledger: Ledger) -> None:
        from editionctl.domain.facts import Owner
        from editionctl.services.transfer import TransferService

        seed_abc(ledger)
        before = unit_row(ledger, "C")
        result = TransferService(ledger).transfer_ownership(
            "C", Owner(name="Dana", email="dana@example.com"), reason="gift"
        )
        assert result.ok
        after = unit_row(ledger, "C")
        assert (after.rank, after.certificate_id) == (before.rank, before.certificate_id)
        with ledger.read() as txn:
            transfers = txn.events_for_unit("C", ["ownership_transfer"])
        assert len(transfers) == 1
        assert '"cleo@example.com"' in transfers[0].previous_owner
        assert '"dana@example.com"' in transfers[0].new_owner


# ---------------------------------------------------------------------------
# Idempotence and certificate stability
# ---------------------------------------------------------------------------


class TestIdempotence:
    def test_second_pass_is_a_no_op(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        with ledger.read() as txn:
            rows_before = [tuple(r) for r in txn.load_units("ED-1")]
            events_before = txn.count_events("ED-1")

        data = reconcile(ledger)
        assert data["changed"] is False
        assert data["revision"] == 1
        assert data["rank_changes"] == []
        assert data["certificates_issued"] == []
        with ledger.read() as txn:
            assert [tuple(r) for r in txn.load_units("ED-1")] == rows_before
            assert txn.count_events("ED-1") == events_before

    def test_certificates_survive_resequencing(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        tokens = {u: unit_row(ledger, u).certificate_id for u in "ABC"}
        add_unit(ledger, "Z", minute=0)
        reconcile(ledger)
        assert active_ranks(ledger) == {"Z": 1, "A": 2, "B": 3, "C": 4}
        assert {u: unit_row(ledger, u).certificate_id for u in "ABC"} == tokens

    def test_reactivated_unit_keeps_its_certificate(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        token = unit_row(ledger, "B").certificate_id
        add_unit(ledger, "B", minute=2, restocked=True)
        reconcile(ledger)
        add_unit(ledger, "B", minute=2)
        data = reconcile(ledger)
        assert data["activated"] == ["B"]
        assert data["certificates_issued"] == []
        assert unit_row(ledger, "B").certificate_id == token


# ---------------------------------------------------------------------------
# Edge cases
# ---------------------------------------------------------------------------


class TestEdgeCases:
    def test_unknown_edition(self, ledger: Ledger) -> None:
        result = ReconcileService(ledger).reconcile("missing")
        assert not result.ok
        assert result.error.code == "EDITION_NOT_FOUND"
        assert not result.error.retryable

    def test_zero_active_units(self, ledger: Ledger) -> None:
        add_edition(ledger)
        add_unit(ledger, "U1", financial="unpaid")
        data = reconcile(ledger)
        assert data["active_count"] == 0
        assert data["ranks"] == {}

    def test_empty_edition(self, ledger: Ledger) -> None:
        add_edition(ledger)
        data = reconcile(ledger)
        assert data["changed"] is False
        assert data["revision"] == 0

    def test_over_capacity_is_reported_not_rejected(self, ledger: Ledger) -> None:
        add_edition(ledger, size=2)
        for i, unit_id in enumerate(["U1", "U2", "U3"]):
            add_unit(ledger, unit_id, minute=i)
        result = ReconcileService(ledger).reconcile("ED-1")
        assert result.ok
        assert result.data["over_capacity"] == 1
        assert result.data["ranks"] == {"U1": 1, "U2": 2, "U3": 3}
        assert any("exceeding its size of 2" in w for w in result.warnings)

    def test_ambiguous_units_fail_closed(self, ledger: Ledger) -> None:
        add_edition(ledger)
        add_unit(ledger, "U1", financial=None, fulfillment="in_transit")
        data = reconcile(ledger)
        assert data["ambiguous"] == ["U1"]
        assert unit_row(ledger, "U1").inactive_reason == "ambiguous_facts"

    def test_edition_size_copied_to_units(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        assert unit_row(ledger, "A").edition_size == 50
        FactService(ledger).record_edition("ED-1", edition_size=60)
        data = reconcile(ledger)
        assert data["changed"] is True
        assert data["rank_changes"] == []
        assert unit_row(ledger, "A").edition_size == 60

    def test_audit_events_per_activation(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        with ledger.read() as txn:
            kinds = [e.event_type for e in txn.events_for_unit("A")]
        assert kinds == ["status_changed", "rank_changed", "certificate_issued"]


# ---------------------------------------------------------------------------
# Retry on lost races
# ---------------------------------------------------------------------------


class TestRetry:
    def _lose(self, monkeypatch: pytest.MonkeyPatch, times: int) -> list[int]:
        calls: list[int] = []
        original = EditionTransaction.bump_revision

        def flaky(self: EditionTransaction, modified: str) -> bool:
            calls.append(1)
            if len(calls) <= times:
                return False
            return original(self, modified)

        monkeypatch.setattr(EditionTransaction, "bump_revision", flaky)
        return calls

    def test_retries_until_it_wins(self, ledger: Ledger, monkeypatch: pytest.MonkeyPatch) -> None:
        add_edition(ledger)
        add_unit(ledger, "U1")
        self._lose(monkeypatch, times=2)
        delays: list[float] = []

        result = ReconcileService(ledger, sleep=delays.append).reconcile("ED-1")
        assert result.ok
        assert result.meta["attempts"] == 3
        assert delays == [0.05, 0.1]
        assert active_ranks(ledger) == {"U1": 1}
        with ledger.read() as txn:
            # Only the winning attempt left audit rows behind.
            assert txn.count_events("ED-1") == 3
            assert txn.get_edition("ED-1").revision == 1

    def test_gives_up_with_retryable_error(
        self, ledger: Ledger, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        add_edition(ledger)
        add_unit(ledger, "U1")
        self._lose(monkeypatch, times=1000)
        delays: list[float] = []

        result = ReconcileService(ledger, sleep=delays.append).reconcile("ED-1")
        assert not result.ok
        assert result.error.code == "CONCURRENT_MODIFICATION"
        assert result.error.retryable
        assert result.error.detail["attempts"] == 8
        assert len(delays) == 7
        assert max(delays) <= 2.0
        assert active_ranks(ledger) == {}


# ---------------------------------------------------------------------------
# Certificate failures
# ---------------------------------------------------------------------------


class TestCertificateFailure:
    def test_failure_is_isolated_to_one_unit(self, ledger: Ledger) -> None:
        add_edition(ledger)
        for i, unit_id in enumerate(["A", "B", "C"]):
            add_unit(ledger, unit_id, minute=i)

        def builder(unit_id: str, token: str) -> str:
            if unit_id == "B":
                raise ValueError("no route for B")
            return f"https://x.test/certificate/{unit_id}?token={token}"

        result = ReconcileService(ledger, url_builder=builder).reconcile("ED-1")
        assert result.ok
        assert result.data["certificate_failures"] == ["B"]
        assert sorted(result.data["certificates_issued"]) == ["A", "C"]
        assert active_ranks(ledger) == {"A": 1, "B": 2, "C": 3}
        assert any("no route for B" in w for w in result.warnings)
        assert unit_row(ledger, "B").certificate_id is None

        retry = reconcile(ledger)
        assert retry["certificates_issued"] == ["B"]
        assert retry["rank_changes"] == []


# ---------------------------------------------------------------------------
# Batch mode
# ---------------------------------------------------------------------------


class TestBatch:
    def test_failure_does_not_stop_other_editions(self, ledger: Ledger) -> None:
        add_edition(ledger, "ED-1")
        add_edition(ledger, "ED-2")
        add_unit(ledger, "U1", edition_id="ED-1")
        add_unit(ledger, "U2", edition_id="ED-2")

        result = ReconcileService(ledger).reconcile_many(["ED-1", "missing", "ED-2", "ED-1"])
        assert not result.ok
        assert result.error.code == "PARTIAL_FAILURE"
        assert result.data["succeeded"] == ["ED-1", "ED-2"]
        assert result.data["failed"][0]["edition_id"] == "missing"
        assert result.data["failed"][0]["code"] == "EDITION_NOT_FOUND"
        assert result.data["count"] == 3
        assert active_ranks(ledger, "ED-2") == {"U2": 1}

    def test_unexpected_error_is_contained(
        self, ledger: Ledger, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        add_edition(ledger, "ED-1")
        add_edition(ledger, "ED-2")
        add_unit(ledger, "U1", edition_id="ED-1")
        add_unit(ledger, "U2", edition_id="ED-2")
        original = ReconcileService._resequence

        def broken(self: ReconcileService, txn: Any, outcome: Any, timestamp: str) -> None:
            if outcome.edition_id == "ED-1":
                raise RuntimeError("disk on fire")
            original(self, txn, outcome, timestamp)

        monkeypatch.setattr(ReconcileService, "_resequence", broken)
        result = ReconcileService(ledger).reconcile_many(["ED-1", "ED-2"])
        assert result.data["failed"][0]["code"] == "RECONCILE_FAILED"
        assert "disk on fire" in result.data["failed"][0]["message"]
        assert active_ranks(ledger, "ED-2") == {"U2": 1}
        assert active_ranks(ledger, "ED-1") == {}

    def test_sweep_covers_every_edition(self, ledger: Ledger) -> None:
        for edition_id in ("ED-1", "ED-2", "ED-3"):
            add_edition(ledger, edition_id)
            add_unit(ledger, f"{edition_id}-U", edition_id=edition_id)
        result = ReconcileService(ledger).sweep()
        assert result.ok
        assert result.op == "sweep"
        assert result.data["succeeded"] == ["ED-1", "ED-2", "ED-3"]

    def test_sweep_on_empty_ledger(self, ledger: Ledger) -> None:
        result = ReconcileService(ledger).sweep()
        assert result.ok
        assert result.data["count"] == 0
