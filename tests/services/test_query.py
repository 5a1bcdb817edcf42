"""Tests for QueryService — read-only lookups."""

from __future__ import annotations

from editionctl.domain.facts import Owner
from editionctl.infrastructure.ledger import Ledger
from editionctl.services.facts import FactService
from editionctl.services.query import QueryService
from editionctl.services.transfer import TransferService
from tests.conftest import add_edition, add_unit, reconcile, seed_abc


class TestGetUnit:
    def test_verified_unit(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        result = QueryService(ledger).get_unit("C")
        assert result.ok
        data = result.data
        assert data["verified"] is True
        assert data["rank"] == 3
        assert data["edition_number"] == "#3 of 50"
        assert data["owner"]["email"] == "cleo@example.com"
        assert data["facts"]["financial_state"] == "paid"

    def test_inactive_unit_not_verified(self, ledger: Ledger) -> None:
        add_edition(ledger)
        add_unit(ledger, "A", financial="unpaid")
        reconcile(ledger)
        data = QueryService(ledger).get_unit("A").data
        assert data["verified"] is False
        assert data["inactive_reason"] == "awaiting_payment"
        assert data["edition_number"] is None

    def test_not_found(self, ledger: Ledger) -> None:
        result = QueryService(ledger).get_unit("nope")
        assert result.error.code == "UNIT_NOT_FOUND"


class TestListEdition:
    def test_acquisition_order(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        add_unit(ledger, "Z", minute=0, financial="unpaid")
        result = QueryService(ledger).list_edition("ED-1")
        assert [i["unit_id"] for i in result.data["items"]] == ["Z", "A", "B", "C"]
        assert result.data["active_count"] == 3
        assert result.data["over_capacity"] == 0

    def test_status_filter(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        add_unit(ledger, "B", minute=2, in_refund_record=True)
        reconcile(ledger)
        result = QueryService(ledger).list_edition("ED-1", status="inactive")
        assert [i["unit_id"] for i in result.data["items"]] == ["B"]
        assert result.data["count"] == 1

    def test_with_history(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        result = QueryService(ledger).list_edition("ED-1", include_history=True)
        kinds = {e["event_type"] for e in result.data["items"][0]["history"]}
        assert kinds == {"status_changed", "rank_changed", "certificate_issued"}

    def test_unknown_edition(self, ledger: Ledger) -> None:
        result = QueryService(ledger).list_edition("ED-404")
        assert result.error.code == "EDITION_NOT_FOUND"


class TestHistory:
    def test_rank_changes_recorded(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        add_unit(ledger, "A", minute=1, in_refund_record=True)
        reconcile(ledger)
        events = QueryService(ledger).history("C").data["items"]
        rank_moves = [e["detail"] for e in events if e["event_type"] == "rank_changed"]
        assert rank_moves == [{"from": None, "to": 3}, {"from": 3, "to": 2}]

    def test_ownership_history(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        transfer = TransferService(ledger)
        transfer.transfer_ownership("A", Owner(name="Bo"), reason="sale")
        transfer.transfer_ownership("A", Owner(name="Cy"), reason="gift")
        data = QueryService(ledger).ownership_history("A").data
        assert data["current_owner"]["name"] == "Cy"
        assert [e["reason"] for e in data["items"]] == ["sale", "gift"]
        assert data["items"][1]["previous_owner"]["name"] == "Bo"

    def test_history_unknown_unit(self, ledger: Ledger) -> None:
        assert QueryService(ledger).history("nope").error.code == "UNIT_NOT_FOUND"
        assert QueryService(ledger).ownership_history("nope").error.code == "UNIT_NOT_FOUND"


class TestCollectorUnits:
    def test_by_email_case_insensitive(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        result = QueryService(ledger).collector_units(email=" CLEO@example.com ")
        assert result.ok
        assert [i["unit_id"] for i in result.data["items"]] == ["C"]
        assert result.data["editions"] == {"ED-1": 1}

    def test_inactive_hidden_unless_requested(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        add_unit(ledger, "C", minute=3, in_refund_record=True)
        reconcile(ledger)
        svc = QueryService(ledger)
        assert svc.collector_units(email="cleo@example.com").data["count"] == 0
        everything = svc.collector_units(email="cleo@example.com", include_inactive=True)
        assert everything.data["count"] == 1

    def test_by_account(self, ledger: Ledger) -> None:
        add_edition(ledger)
        add_unit(ledger, "A", owner={"account_id": "cust_1"})
        reconcile(ledger)
        result = QueryService(ledger).collector_units(account_id="cust_1")
        assert result.data["items"][0]["edition_number"] == "#1 of 50"

    def test_requires_identity(self, ledger: Ledger) -> None:
        result = QueryService(ledger).collector_units()
        assert not result.ok
        assert result.error.code == "NO_COLLECTOR"


class TestListEditions:
    def test_counts_and_capacity(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        FactService(ledger).record_edition("ED-2", edition_size=1)
        add_unit(ledger, "X", edition_id="ED-2")
        add_unit(ledger, "Y", edition_id="ED-2", minute=1)
        reconcile(ledger, "ED-2")

        items = {i["edition_id"]: i for i in QueryService(ledger).list_editions().data["items"]}
        assert items["ED-1"]["active_count"] == 3
        assert items["ED-1"]["over_capacity"] == 0
        assert items["ED-2"]["units"] == 2
        assert items["ED-2"]["over_capacity"] == 1

    def test_empty_ledger(self, ledger: Ledger) -> None:
        assert QueryService(ledger).list_editions().data == {"items": [], "count": 0}
