"""Command: ledger initialization (named init_cmd to avoid shadowing builtins)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from editionctl.commands._base import EditionCommand

if TYPE_CHECKING:
    from editionctl.commands._context import AppContext

_INIT_EXAMPLES = """\
  editionctl init
  editionctl init /srv/editions --name studio-prints
  editionctl init . --name prints --base-url https://prints.example.com"""


@click.command("init", cls=EditionCommand, examples=_INIT_EXAMPLES)
@click.argument("path", required=False, default=".")
@click.option("--name", default=None, help="Ledger name (defaults to the directory name).")
@click.option(
    "--base-url",
    default=None,
    help="Public origin of the certificate pages.",
)
@click.pass_obj
def init_cmd(app: AppContext, path: str, name: str | None, base_url: str | None) -> None:
    """Initialize a new edition ledger."""
    ledger_path = Path(path).resolve()
    if name is None:
        name = ledger_path.name or "editions"
    if base_url is None:
        from editionctl.config.models import CertificateConfig

        base_url = CertificateConfig().base_url

    from editionctl.services.init import InitService

    app.emit(InitService.init_ledger(ledger_path, name=name, base_url=base_url, sync=True))
