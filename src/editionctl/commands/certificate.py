"""Command group: certificate issuance and verification."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from editionctl.commands._base import EditionGroup

if TYPE_CHECKING:
    from editionctl.commands._context import AppContext

_CERTIFICATE_EXAMPLES = """\
  editionctl certificate ensure U-1001
  editionctl certificate verify 3f2b9c1e-..."""


@click.group(cls=EditionGroup, examples=_CERTIFICATE_EXAMPLES)
@click.pass_obj
def certificate(app: AppContext) -> None:
    """Issue and verify certificates of authenticity."""


@certificate.command(examples="  editionctl certificate ensure U-1001")
@click.argument("unit_id")
@click.pass_obj
def ensure(app: AppContext, unit_id: str) -> None:
    """Issue a certificate for an active unit that lacks one."""
    from editionctl.services.certificates import CertificateService

    app.emit(CertificateService(app.ledger).ensure_certificate(unit_id))


@certificate.command(examples="  editionctl --json certificate verify 3f2b9c1e-...")
@click.argument("certificate_id")
@click.pass_obj
def verify(app: AppContext, certificate_id: str) -> None:
    """Look up the unit a certificate id belongs to."""
    from editionctl.services.certificates import CertificateService

    app.emit(CertificateService(app.ledger).verify(certificate_id))
