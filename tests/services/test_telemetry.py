"""Tests for the span tree behind ``--verbose``."""

from __future__ import annotations

import time
from collections.abc import Generator
from pathlib import Path

import pytest

from editionctl.infrastructure.ledger import Ledger
from editionctl.services.check import CheckService
from editionctl.services.init import InitService
from editionctl.services.reconcile import ReconcileService
from editionctl.services.result import ServiceError, ServiceResult
from editionctl.services.telemetry import (
    Span,
    _current_span,
    enable_telemetry,
    get_current_span,
    trace_span,
    traced,
)
from tests.conftest import add_edition, add_unit, seed_abc


@pytest.fixture
def root_span() -> Generator[Span]:
    """Telemetry on, with a root span installed as the current span."""
    enable_telemetry()
    root = Span(name="ReconcileService.reconcile")
    token = _current_span.set(root)
    yield root
    _current_span.reset(token)


class TestSpan:
    def test_open_span_has_no_duration(self) -> None:
        assert Span(name="resequence").duration_ms == 0.0

    def test_closed_span_is_timed(self) -> None:
        span = Span(name="resequence")
        time.sleep(0.002)
        span.end()
        assert span.duration_ms > 0

    def test_leaf_serializes_without_optional_keys(self) -> None:
        span = Span(name="certify")
        span.end()
        assert set(span.to_dict()) == {"name", "duration_ms"}

    def test_tree_serializes_children_and_annotations(self) -> None:
        root = Span(name="reconcile")
        attempt = Span(name="attempt.1", parent=root)
        root.children.append(attempt)
        root.annotate("attempts", 1)
        attempt.end()
        root.end()
        out = root.to_dict()
        assert out["annotations"] == {"attempts": 1}
        assert [c["name"] for c in out["children"]] == ["attempt.1"]


class TestTraceSpan:
    def test_yields_none_while_disabled(self) -> None:
        with trace_span("resequence") as span:
            assert span is None

    def test_yields_none_without_a_root(self) -> None:
        enable_telemetry()
        with trace_span("resequence") as span:
            assert span is None

    def test_nests_under_the_current_span(self, root_span: Span) -> None:
        with trace_span("attempt.1"), trace_span("certify"):
            assert get_current_span().name == "certify"
        (attempt,) = root_span.children
        assert attempt.children[0].name == "certify"
        assert attempt.end_time is not None
        assert get_current_span() is root_span


class TestTraced:
    def test_leaves_meta_alone_while_disabled(self) -> None:
        @traced
        def op() -> ServiceResult:
            return ServiceResult(ok=True, op="reconcile")

        assert op().meta is None

    def test_merges_span_tree_into_meta(self) -> None:
        @traced
        def op() -> ServiceResult:
            with trace_span("resequence"):
                pass
            return ServiceResult(ok=True, op="reconcile", meta={"attempts": 1})

        enable_telemetry()
        meta = op().meta
        assert meta["attempts"] == 1
        assert meta["telemetry"]["children"][0]["name"] == "resequence"

    def test_failed_result_still_traced(self) -> None:
        @traced
        def op() -> ServiceResult:
            error = ServiceError(code="EDITION_NOT_FOUND", message="gone")
            return ServiceResult(ok=False, op="reconcile", error=error)

        enable_telemetry()
        assert "telemetry" in op().meta

    def test_exception_resets_current_span(self) -> None:
        @traced
        def op() -> ServiceResult:
            msg = "ledger unavailable"
            raise RuntimeError(msg)

        enable_telemetry()
        with pytest.raises(RuntimeError, match="ledger unavailable"):
            op()
        assert _current_span.get() is None

    def test_plain_return_values_pass_through(self) -> None:
        @traced
        def op() -> int:
            return 3

        enable_telemetry()
        assert op() == 3

    def test_current_span_hidden_while_disabled(self) -> None:
        _current_span.set(Span(name="stale"))
        assert get_current_span() is None


class TestServiceSpans:
    def test_reconcile_span_tree(self, ledger: Ledger) -> None:
        add_edition(ledger)
        add_unit(ledger, "A")
        enable_telemetry()
        result = ReconcileService(ledger).reconcile("ED-1")
        tel = result.meta["telemetry"]
        assert "ReconcileService.reconcile" in tel["name"]
        assert tel["annotations"] == {"attempts": 1}
        (attempt,) = tel["children"]
        assert attempt["name"] == "attempt.1"
        assert [c["name"] for c in attempt["children"]] == ["resequence", "certify"]
        assert result.meta["attempts"] == 1

    def test_check_has_category_spans(self, ledger: Ledger) -> None:
        seed_abc(ledger)
        enable_telemetry()
        result = CheckService(ledger).check()
        names = [c["name"] for c in result.meta["telemetry"]["children"]]
        assert names == ["sequencing", "classification", "certification"]

    def test_static_init_with_telemetry(self, tmp_path: Path) -> None:
        enable_telemetry()
        result = InitService.init_ledger(tmp_path / "l", name="t", base_url="http://x")
        assert result.ok
        assert "telemetry" in result.meta
