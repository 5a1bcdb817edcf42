"""Unit status, inactivity reasons, and ledger event types."""

from __future__ import annotations

from enum import StrEnum


class UnitStatus(StrEnum):
    """Whether a unit currently counts toward its edition."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class InactiveReason(StrEnum):
    """Why the classifier placed a unit outside the edition."""

    REFUNDED = "refunded"
    REMOVED = "removed"
    RESTOCKED = "restocked"
    CANCELLED = "cancelled"
    AWAITING_PAYMENT = "awaiting_payment"
    AMBIGUOUS_FACTS = "ambiguous_facts"


class RemovalReason(StrEnum):
    """Reasons an operator may give for manually removing a unit."""

    REFUNDED = "refunded"
    RESTOCKED = "restocked"
    REMOVED = "removed"
    MANUAL = "manual"


class EventType(StrEnum):
    """Rows in the append-only ``edition_events`` log."""

    STATUS_CHANGED = "status_changed"
    RANK_CHANGED = "rank_changed"
    CERTIFICATE_ISSUED = "certificate_issued"
    OWNERSHIP_TRANSFER = "ownership_transfer"
    MANUAL_REMOVAL = "manual_removal"
    MANUAL_RESTORE = "manual_restore"
