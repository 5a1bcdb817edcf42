"""Pluggy hook specifications for editionctl lifecycle events.

Downstream consumers (certificate renderers, CRM sync, notification
senders) subscribe here instead of polling the ledger. Every hook is
dispatched after the triggering transaction has committed.
"""

from __future__ import annotations

from typing import Any

import pluggy

hookspec = pluggy.HookspecMarker("editionctl")


class EditionctlHookSpec:
    """Hook specifications for the editionctl plugin system."""

    @hookspec
    def post_reconcile(
        self,
        edition_id: str,
        revision: int,
        ranks: dict[str, int],
        activated: list[str],
        deactivated: list[str],
    ) -> None:
        """Called after a reconciliation that changed the edition."""

    @hookspec
    def post_certificate_issued(
        self,
        unit_id: str,
        edition_id: str,
        certificate_id: str,
        certificate_url: str,
    ) -> None:
        """Called once per newly minted certificate."""

    @hookspec
    def post_transfer(
        self,
        unit_id: str,
        edition_id: str,
        previous_owner: dict[str, Any],
        new_owner: dict[str, Any],
        reason: str | None,
    ) -> None:
        """Called after an ownership transfer."""

    @hookspec
    def post_check(
        self,
        issues_found: int,
        errors: int,
        editions_checked: int,
    ) -> None:
        """Called after integrity check."""

    @hookspec
    def post_init(self, ledger_name: str, base_url: str) -> None:
        """Called after ledger init."""
