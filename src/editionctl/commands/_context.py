"""AppContext — shared Click context for all commands.

Created once by the root CLI group and handed to subcommands via
``@click.pass_obj``. Opens the Ledger lazily and centralizes result
emission (stdout/stderr routing and exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from editionctl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from editionctl.config.settings import EditionSettings
    from editionctl.infrastructure.ledger import Ledger
    from editionctl.services.result import ServiceResult


class AppContext:
    """State shared across the command hierarchy.

    The ledger is opened on first access so ``--help`` and ``--version``
    never touch the database.
    """

    def __init__(self, settings: EditionSettings) -> None:
        self.settings = settings
        self._ledger: Ledger | None = None

        from editionctl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from editionctl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def ledger(self) -> Ledger:
        """The ledger (opened lazily on first access)."""
        if self._ledger is None:
            from editionctl.infrastructure.ledger import Ledger

            self._ledger = Ledger(self.settings)
            self._ledger.init_event_bus(sync=self.settings.sync)
        return self._ledger

    def close(self) -> None:
        """Flush pending plugin events and release the database."""
        if self._ledger is not None:
            self._ledger.close()
            self._ledger = None

    def emit(self, result: ServiceResult) -> None:
        """Print a ServiceResult and set the exit status.

        Success goes to stdout with warnings on stderr, so piped output
        stays clean. Failure goes to stderr and exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            # JSON output already carries the warnings.
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
