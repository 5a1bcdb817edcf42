"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a StringIO-backed Rich Console; the caller reads
the text back with ``get_output(console)``. Renderers are dispatched by
``result.op`` in :func:`render_result`; unknown ops fall through to a
generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from editionctl.output.console import create_console, get_output, style_for_status

if TYPE_CHECKING:
    from collections.abc import Callable

    from rich.console import Console

    from editionctl.services.result import ServiceResult

    Renderer = Callable[..., None]


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to text via Rich."""
    console = create_console()
    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)
    if verbose:
        _render_meta(console, result)
    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Minimal output for ``--quiet``: identifiers only, one per line."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    items = result.data.get("items")
    if isinstance(items, list) and items:
        return "\n".join(i for i in (_extract_id(item) for item in items) if i)
    if "unit_id" in result.data and result.data.get("edition_number"):
        return f"{result.data['unit_id']} {result.data['edition_number']}"
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _extract_id(item: Any) -> str:
    if isinstance(item, dict):
        for key in ("unit_id", "edition_id", "id"):
            val = item.get(key)
            if val is not None:
                return str(val)
    return ""


def _status_line(console: Console, result: ServiceResult) -> None:
    console.print(Text("OK", style="ed.ok"), Text(f"  {result.op}", style="ed.op"))


def _field(console: Console, key: str, value: Any) -> None:
    if isinstance(value, (dict, list)):
        value = json.dumps(value, separators=(",", ":"))
    k = Text(f"  {key}: ", style="ed.key")
    if key.endswith("_id"):
        v = Text(str(value), style="ed.id")
    elif key in ("rank", "edition_number"):
        v = Text(str(value), style="ed.rank")
    elif key == "status":
        v = Text(str(value), style=style_for_status(str(value)))
    else:
        v = Text(str(value))
    console.print(Text.assemble(k, v))


def _fields(console: Console, data: dict[str, Any], keys: tuple[str, ...]) -> None:
    for key in keys:
        if key in data:
            _field(console, key, data[key])


def _owner_label(owner: dict[str, Any] | None) -> str:
    if not owner:
        return "-"
    parts = [owner.get("name"), owner.get("email"), owner.get("account_id")]
    label = " / ".join(str(p) for p in parts if p)
    return label or "-"


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Meta block, including the telemetry span tree."""
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(console: Console, span: dict[str, Any], indent: int = 4) -> None:
    duration = span.get("duration_ms", 0.0)
    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"
    line = f"{' ' * indent}[{style}]{duration:>8.2f}ms[/{style}]  {span.get('name', '?')}"
    annotations = span.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)
    for child in span.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _unit_table(items: list[dict[str, Any]], *, verbose: bool = False) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Unit", style="ed.id", no_wrap=True)
    table.add_column("Edition", no_wrap=True)
    table.add_column("No.", style="ed.rank", justify="right")
    table.add_column("Status")
    table.add_column("Acquired")
    table.add_column("Owner")
    if verbose:
        table.add_column("Reason", style="dim")
        table.add_column("Certificate", style="ed.token")
    for item in items:
        status = str(item.get("status", ""))
        row: list[Any] = [
            str(item.get("unit_id", "")),
            str(item.get("edition_id", "")),
            item.get("edition_number") or "-",
            Text(status, style=style_for_status(status)),
            str(item.get("acquired_at", "")),
            _owner_label(item.get("owner")),
        ]
        if verbose:
            row.append(str(item.get("inactive_reason") or ""))
            row.append(str(item.get("certificate_id") or ""))
        table.add_row(*row)
    return table


def _event_table(items: list[dict[str, Any]]) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("When")
    table.add_column("Event", style="ed.op")
    table.add_column("Rank", style="ed.rank", justify="right")
    table.add_column("Detail")
    for item in items:
        if item["event_type"] == "ownership_transfer":
            before = _owner_label(item.get("previous_owner"))
            detail = f"{before} → {_owner_label(item.get('new_owner'))}"
        else:
            detail = json.dumps(item.get("detail") or {}, separators=(",", ":"))
        if item.get("reason"):
            detail += f" ({item['reason']})"
        rank = item.get("rank")
        table.add_row(
            str(item["id"]),
            str(item["timestamp"]),
            str(item["event_type"]),
            "-" if rank is None else str(rank),
            detail,
        )
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    console.print(Text("ERROR", style="ed.error"), Text(f"  {result.op}", style="ed.op"), "—", msg)
    if err is not None and err.retryable:
        console.print(Text("  retryable: try again shortly", style="ed.warning"))
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")
    failed = result.data.get("failed")
    if isinstance(failed, list):
        for item in failed:
            console.print(
                f"  [ed.error]failed[/ed.error] {item.get('edition_id')}: {item.get('message')}"
            )


# ── Reconciliation renderers ──────────────────────────────────────────


def _render_reconcile(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _fields(console, d, ("edition_id", "revision", "changed", "active_count", "edition_size"))
    if d.get("over_capacity"):
        _field(console, "over_capacity", d["over_capacity"])
    for key in ("activated", "deactivated", "certificates_issued", "certificate_failures"):
        if d.get(key):
            _field(console, key, ", ".join(d[key]))

    changes = d.get("rank_changes") or []
    if changes:
        table = Table(show_header=True, pad_edge=False, expand=False)
        table.add_column("Unit", style="ed.id")
        table.add_column("Before", justify="right")
        table.add_column("After", style="ed.rank", justify="right")
        for change in changes:
            before, after = change["before"], change["after"]
            table.add_row(
                change["unit_id"],
                "-" if before is None else str(before),
                "-" if after is None else str(after),
            )
        console.print(table)
    if verbose and d.get("ranks"):
        _field(console, "ranks", d["ranks"])


def _render_batch(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("recorded", "created", "editions"):
        if key in d:
            _field(console, key, d[key])
    batch = d.get("reconcile", d)
    results = batch.get("results", [])
    if not results:
        _field(console, "reconciled", 0)
        return
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Edition", style="ed.id")
    table.add_column("Result")
    table.add_column("Active", justify="right")
    table.add_column("Changed")
    table.add_column("Rank changes", justify="right")
    for item in results:
        data = item.get("data") or {}
        error = item.get("error")
        edition_id = data.get("edition_id") or (error or {}).get("detail", {}).get("edition_id")
        outcome = Text("ok", style="ed.ok") if item["ok"] else Text(error["code"], style="ed.error")
        table.add_row(
            str(edition_id),
            outcome,
            str(data.get("active_count", "-")),
            str(data.get("changed", "-")),
            str(len(data.get("rank_changes", []))),
        )
    console.print(table)
    console.print(f"\n{batch.get('count', len(results))} editions")


# ── Mutation renderers ────────────────────────────────────────────────


def _render_mutation(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    keys = (
        "edition_id",
        "unit_id",
        "title",
        "edition_size",
        "created",
        "changed",
        "facts_changed",
        "reason",
        "edition_number",
        "certificate_id",
        "certificate_url",
        "issued",
    )
    _fields(console, result.data, keys)
    if "owner" in result.data:
        _field(console, "owner", _owner_label(result.data["owner"]))
    audit = result.data.get("audit")
    if verbose and audit:
        _field(console, "audit", audit)


# ── Query renderers ───────────────────────────────────────────────────


def _render_unit(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    lines: list[str] = []
    for key in ("status", "inactive_reason", "acquired_at", "order_id", "certificate_url"):
        if d.get(key) is not None:
            lines.append(f"{key}: {d[key]}")
    lines.append(f"owner: {_owner_label(d.get('owner'))}")
    if verbose and d.get("facts"):
        for key, value in d["facts"].items():
            lines.append(f"facts.{key}: {value}")
    verified = d.get("verified", d.get("valid"))
    badge = "verified" if verified else "not counted"
    heading = f"{d.get('unit_id')} — {d.get('edition_number') or 'unnumbered'} ({badge})"
    if d.get("title"):
        heading += f" · {d['title']}"
    border = "green" if verified else "red"
    console.print(Panel("\n".join(lines), title=heading, border_style=border, expand=False))


def _render_unit_table(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    items = d.get("items", [])
    if "edition_id" in d:
        header = f"{d['edition_id']}"
        if d.get("title"):
            header += f" — {d['title']}"
        size = d.get("edition_size")
        header += f"  ({d.get('active_count', 0)} active" + (f" of {size})" if size else ")")
        console.print(Text(header, style="ed.title"))
    console.print(_unit_table(items, verbose=verbose))
    if d.get("over_capacity"):
        console.print(Text(f"  over capacity by {d['over_capacity']}", style="ed.warning"))
    console.print(f"\n{d.get('count', len(items))} units")
    if verbose:
        for item in items:
            if item.get("history"):
                console.print(Text(f"\n{item['unit_id']}", style="ed.id"))
                console.print(_event_table(item["history"]))


def _render_editions(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Edition", style="ed.id", no_wrap=True)
    table.add_column("Title", style="ed.title")
    table.add_column("Size", justify="right")
    table.add_column("Active", justify="right")
    table.add_column("Units", justify="right")
    table.add_column("Rev", justify="right", style="dim")
    for item in items:
        size = item.get("edition_size")
        active = Text(str(item["active_count"]))
        if item.get("over_capacity"):
            active.stylize("ed.warning")
        table.add_row(
            item["edition_id"],
            str(item.get("title") or ""),
            "-" if size is None else str(size),
            active,
            str(item["units"]),
            str(item["revision"]),
        )
    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} editions")


def _render_history(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    console.print(Text(str(d.get("unit_id")), style="ed.id"))
    if "current_owner" in d:
        _field(console, "current_owner", _owner_label(d["current_owner"]))
    items = d.get("items", [])
    if items:
        console.print(_event_table(items))
    console.print(f"\n{d.get('count', len(items))} events")


def _render_collector(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    who = d.get("email") or d.get("account_id")
    console.print(Text(f"Collector {who}", style="ed.title"))
    items = d.get("items", [])
    console.print(_unit_table(items, verbose=verbose))
    console.print(f"\n{d.get('count', len(items))} units in {len(d.get('editions', {}))} editions")


# ── Check renderers ───────────────────────────────────────────────────


def _render_check(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    issues = d.get("issues", [])
    if not issues:
        console.print(
            Text("OK", style="ed.ok"),
            f"  {d.get('editions_checked', 0)} editions checked, no issues",
        )
        return
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Severity")
    table.add_column("Edition", style="ed.id")
    table.add_column("Kind")
    table.add_column("Message")
    for issue in issues:
        severity = issue["severity"]
        style = "ed.error" if severity == "error" else "ed.warning"
        table.add_row(
            Text(severity, style=style),
            issue["edition_id"],
            issue["kind"],
            issue["message"],
        )
    console.print(table)
    console.print(f"\n{d.get('count', len(issues))} issues ({d.get('errors', 0)} errors)")


def _render_fix(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for fix in d.get("fixes", []):
        console.print(f"  [ed.ok]fixed[/ed.ok] {fix}")
    remaining = d.get("remaining", [])
    if remaining:
        console.print(f"  {len(remaining)} issue(s) remain")
        for issue in remaining:
            console.print(f"    {issue['kind']}: {issue['message']}")


# ── Lifecycle renderers ───────────────────────────────────────────────


def _render_init(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _fields(console, d, ("name", "root", "config_path", "database", "base_url", "revision"))


def _render_upgrade(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _fields(
        console,
        d,
        ("pending_count", "applied_count", "current", "head", "backup_path", "message"),
    )
    pending = d.get("pending") or d.get("applied") or []
    if verbose and pending:
        console.print()
        for p in pending:
            console.print(f"  {p['revision']}: {p['description']}")


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Renderer] = {
    # Reconciliation
    "reconcile": _render_reconcile,
    "reconcile_many": _render_batch,
    "sweep": _render_batch,
    "ingest": _render_batch,
    # Facts and mutations
    "record_edition": _render_mutation,
    "record_unit": _render_mutation,
    "mark_removed": _render_mutation,
    "restore": _render_mutation,
    "transfer_ownership": _render_mutation,
    "ensure_certificate": _render_mutation,
    # Query
    "get_unit": _render_unit,
    "verify_certificate": _render_unit,
    "list_edition": _render_unit_table,
    "list_editions": _render_editions,
    "history": _render_history,
    "ownership_history": _render_history,
    "collector_units": _render_collector,
    # Check
    "check": _render_check,
    "fix": _render_fix,
    # Lifecycle
    "init_ledger": _render_init,
    "upgrade": _render_upgrade,
}
