"""Shared pytest fixtures and test helpers for editionctl tests."""

from __future__ import annotations

import json
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from editionctl.cli import cli
from editionctl.config.settings import EditionSettings
from editionctl.infrastructure.database.engine import init_database
from editionctl.infrastructure.ledger import Ledger
from editionctl.services.telemetry import _current_span, disable_telemetry

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's EDITIONCTL_* environment out of the tests."""
    monkeypatch.delenv("EDITIONCTL_CONFIG", raising=False)


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Generator[None]:
    """`-v` turns telemetry on for the calling thread; switch it back off."""
    yield
    disable_telemetry()
    _current_span.set(None)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_engine(tmp_path: Path) -> Engine:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def ledger_root(tmp_path: Path) -> Path:
    """Temporary ledger directory (no config file: code defaults apply)."""
    return tmp_path


@pytest.fixture
def ledger(ledger_root: Path) -> Ledger:
    """Ledger on a temp directory, with no event bus."""
    settings = EditionSettings.from_cli(ledger_root=ledger_root)
    led = Ledger(settings)
    try:
        yield led
    finally:
        led.close()


@pytest.fixture
def _isolated_ledger(ledger_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp ledger root so the CLI opens an isolated ledger.

    Use via ``@pytest.mark.usefixtures("_isolated_ledger")`` on command test
    classes.
    """
    monkeypatch.chdir(ledger_root)


# ---------------------------------------------------------------------------
# Shared test helpers (used across service test modules)
# ---------------------------------------------------------------------------


def at(minutes: float) -> datetime:
    """A timestamp *minutes* after the fixed test epoch."""
    return T0 + timedelta(minutes=minutes)


def add_edition(
    ledger: Ledger,
    edition_id: str = "ED-1",
    *,
    size: int | None = 50,
    title: str | None = None,
) -> dict[str, Any]:
    """Record an edition via FactService, asserting success."""
    from editionctl.services.facts import FactService

    result = FactService(ledger).record_edition(edition_id, edition_size=size, title=title)
    assert result.ok, result.error
    return result.data


def add_unit(
    ledger: Ledger,
    unit_id: str,
    *,
    edition_id: str = "ED-1",
    minute: float = 0,
    financial: str | None = "paid",
    fulfillment: str | None = None,
    owner: dict[str, str] | None = None,
    **facts: Any,
) -> dict[str, Any]:
    """Record one unit's facts via FactService (without reconciling)."""
    from editionctl.domain.facts import UnitRecord
    from editionctl.services.facts import FactService

    record = UnitRecord.model_validate(
        {
            "unit_id": unit_id,
            "edition_id": edition_id,
            "acquired_at": at(minute),
            "owner": owner or {},
            "facts": {"financial_state": financial, "fulfillment_state": fulfillment, **facts},
        }
    )
    result = FactService(ledger).record_unit(record)
    assert result.ok, result.error
    return result.data


def reconcile(ledger: Ledger, edition_id: str = "ED-1") -> dict[str, Any]:
    """Reconcile one edition via ReconcileService, asserting success."""
    from editionctl.services.reconcile import ReconcileService

    result = ReconcileService(ledger, sleep=lambda _: None).reconcile(edition_id)
    assert result.ok, result.error
    return result.data


def unit_row(ledger: Ledger, unit_id: str) -> Any:
    """Read the stored unit row (joined with its facts)."""
    with ledger.read() as txn:
        row = txn.get_unit(unit_id)
    assert row is not None
    return row


def active_ranks(ledger: Ledger, edition_id: str = "ED-1") -> dict[str, int]:
    """``unit_id -> rank`` for every active unit of an edition."""
    with ledger.read() as txn:
        rows = txn.load_units(edition_id)
    return {r.unit_id: r.rank for r in rows if r.status == "active"}


def seed_abc(ledger: Ledger, edition_id: str = "ED-1") -> dict[str, Any]:
    """Edition with three paid units A, B, C acquired at t=1, 2, 3, reconciled."""
    add_edition(ledger, edition_id, size=50)
    add_unit(ledger, "A", edition_id=edition_id, minute=1)
    add_unit(ledger, "B", edition_id=edition_id, minute=2)
    add_unit(
        ledger,
        "C",
        edition_id=edition_id,
        minute=3,
        owner={"name": "Cleo", "email": "cleo@example.com"},
    )
    return reconcile(ledger, edition_id)


# ---------------------------------------------------------------------------
# CLI helpers (used across command test modules)
# ---------------------------------------------------------------------------


def invoke_json(runner: CliRunner, *args: str, exit_code: int = 0) -> dict[str, Any]:
    """Invoke ``editionctl --json ARGS`` and decode the payload.

    Success payloads are read from stdout, failures from stderr.
    """
    result = runner.invoke(cli, ["--json", *args])
    assert result.exit_code == exit_code, result.output
    if exit_code == 0:
        return json.loads(result.stdout)
    assert result.stdout == ""
    return json.loads(result.stderr)


def seed_cli(runner: CliRunner) -> None:
    """Edition ED-1 (size 50) with paid units A, B, C via the CLI."""
    invoke_json(runner, "facts", "edition", "ED-1", "--size", "50", "--title", "Dusk")
    for minute, unit_id in enumerate(("A", "B", "C"), start=1):
        invoke_json(
            runner,
            "facts",
            "unit",
            unit_id,
            "--edition",
            "ED-1",
            "--acquired-at",
            f"2026-01-01T12:0{minute}:00Z",
            "--financial",
            "paid",
            "--owner-email",
            f"{unit_id.lower()}@example.com",
        )
