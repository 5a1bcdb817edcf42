"""Subcommand modules for editionctl.

``register_commands`` imports each module only at registration so the
service layer stays out of ``editionctl --help``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register command groups and standalone commands on the root group."""
    # --- Groups ---
    from editionctl.commands.certificate import certificate
    from editionctl.commands.facts import facts
    from editionctl.commands.show import show

    cli.add_command(facts)
    cli.add_command(show)
    cli.add_command(certificate)

    # --- Standalone commands ---
    from editionctl.commands.check import check
    from editionctl.commands.init_cmd import init_cmd
    from editionctl.commands.reconcile import reconcile
    from editionctl.commands.transfer import transfer
    from editionctl.commands.upgrade import upgrade

    cli.add_command(init_cmd)
    cli.add_command(reconcile)
    cli.add_command(transfer)
    cli.add_command(check)
    cli.add_command(upgrade)
