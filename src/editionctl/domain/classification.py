"""Status classification — facts in, ACTIVE / INACTIVE out.

Priority order, first match wins:

1. refunded (unit in a refund record, or order financially refunded)
2. manually removed
3. restocked
4. parent order cancelled / voided
5. paid, authorized, pending, or fulfilled -> ACTIVE
6. recognised unpaid state -> INACTIVE (awaiting payment)
7. anything else -> INACTIVE (ambiguous facts)

INVARIANT: classification is recomputed from current facts on every
reconciliation. A prior verdict is never an input. Missing or
unrecognised facts fail closed to INACTIVE.
"""

from __future__ import annotations

from dataclasses import dataclass

from editionctl.domain.facts import UnitFacts
from editionctl.domain.types import InactiveReason, UnitStatus


@dataclass(frozen=True, slots=True)
class ClassificationPolicy:
    """Upstream state vocabularies the classifier recognises."""

    active_financial_states: frozenset[str] = frozenset(
        {"paid", "authorized", "pending", "partially_paid"},
    )
    refunded_financial_states: frozenset[str] = frozenset({"refunded"})
    cancelled_financial_states: frozenset[str] = frozenset({"voided"})
    inactive_financial_states: frozenset[str] = frozenset({"unpaid", "expired"})
    cancelled_fulfillment_states: frozenset[str] = frozenset(
        {"canceled", "cancelled", "restocked"}
    )
    fulfilled_states: frozenset[str] = frozenset({"fulfilled"})


DEFAULT_POLICY = ClassificationPolicy()


@dataclass(frozen=True, slots=True)
class Classification:
    """Verdict for one unit. ``reason`` is None exactly when active."""

    status: UnitStatus
    reason: InactiveReason | None = None

    @property
    def active(self) -> bool:
        return self.status is UnitStatus.ACTIVE

    @property
    def ambiguous(self) -> bool:
        return self.reason is InactiveReason.AMBIGUOUS_FACTS


ACTIVE = Classification(UnitStatus.ACTIVE)


def _inactive(reason: InactiveReason) -> Classification:
    return Classification(UnitStatus.INACTIVE, reason)


def classify(
    facts: UnitFacts | None,
    policy: ClassificationPolicy = DEFAULT_POLICY,
) -> Classification:
    """Classify a unit from the facts currently known about it."""
    if facts is None:
        return _inactive(InactiveReason.AMBIGUOUS_FACTS)

    financial = facts.financial_state
    fulfillment = facts.fulfillment_state

    if facts.in_refund_record or financial in policy.refunded_financial_states:
        return _inactive(InactiveReason.REFUNDED)
    if facts.manual_removed:
        return _inactive(InactiveReason.REMOVED)
    if facts.restocked:
        return _inactive(InactiveReason.RESTOCKED)
    if (
        facts.order_cancelled_at is not None
        or financial in policy.cancelled_financial_states
        or fulfillment in policy.cancelled_fulfillment_states
    ):
        return _inactive(InactiveReason.CANCELLED)

    if financial in policy.active_financial_states or fulfillment in policy.fulfilled_states:
        return ACTIVE

    if financial in policy.inactive_financial_states:
        return _inactive(InactiveReason.AWAITING_PAYMENT)
    return _inactive(InactiveReason.AMBIGUOUS_FACTS)
