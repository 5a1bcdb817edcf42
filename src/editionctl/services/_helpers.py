"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from editionctl.domain.certificates import CertificateUrlBuilder
from editionctl.domain.classification import ClassificationPolicy
from editionctl.domain.facts import Owner, UnitFacts, parse_iso, to_iso

if TYPE_CHECKING:
    from sqlalchemy import Row

    from editionctl.config.models import CertificateConfig, ClassificationConfig


def now_iso() -> str:
    """Current UTC time as fixed-width ISO 8601 (for audit trails)."""
    return to_iso(datetime.now(UTC))


def now_compact() -> str:
    """Current UTC time as compact ISO (YYYYMMDDTHHmmss, for backup filenames)."""
    return datetime.now(UTC).strftime("%Y%m%dT%H%M%S")


def facts_from_row(row: Row[Any]) -> UnitFacts | None:
    """Rebuild :class:`UnitFacts` from a unit row joined with ``unit_facts``.

    Returns None when the feed has never delivered facts for the unit.
    """
    if row.facts_updated is None:
        return None
    cancelled = row.order_cancelled_at
    return UnitFacts(
        financial_state=row.financial_state,
        fulfillment_state=row.fulfillment_state,
        order_cancelled_at=parse_iso(cancelled) if cancelled else None,
        in_refund_record=bool(row.in_refund_record),
        manual_removed=bool(row.manual_removed),
        restocked=bool(row.restocked),
    )


def owner_from_row(row: Row[Any]) -> Owner:
    return Owner(
        name=row.owner_name,
        email=row.owner_email,
        account_id=row.owner_account_id,
    )


def owner_columns(owner: Owner) -> dict[str, str | None]:
    """Map an :class:`Owner` onto the ``units`` owner columns."""
    return {
        "owner_name": owner.name,
        "owner_email": owner.email,
        "owner_account_id": owner.account_id,
    }


def policy_from_config(config: ClassificationConfig) -> ClassificationPolicy:
    """Build the classifier policy from the ``[classification]`` section."""
    return ClassificationPolicy(
        active_financial_states=frozenset(config.active_financial_states),
        refunded_financial_states=frozenset(config.refunded_financial_states),
        cancelled_financial_states=frozenset(config.cancelled_financial_states),
        inactive_financial_states=frozenset(config.inactive_financial_states),
        cancelled_fulfillment_states=frozenset(config.cancelled_fulfillment_states),
        fulfilled_states=frozenset(config.fulfilled_states),
    )


def url_builder_from_config(config: CertificateConfig) -> CertificateUrlBuilder:
    return CertificateUrlBuilder(base_url=config.base_url, path=config.path)
