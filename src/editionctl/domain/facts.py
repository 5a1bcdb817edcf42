"""Inbound fact models supplied by the order-sync collaborator.

Facts are the sole input to classification. They are replaced wholesale
on every feed delivery; nothing here is derived.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime (naive input is taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso(value: datetime) -> str:
    """Fixed-width ISO 8601 so stored timestamps also sort lexically."""
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Parse a stored or user-supplied ISO 8601 timestamp into UTC."""
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(normalized))


def _normalize_state(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().lower()
    return cleaned or None


class UnitFacts(BaseModel):
    """Facts currently known about one unit and its parent order."""

    model_config = {"frozen": True}

    financial_state: str | None = None
    fulfillment_state: str | None = None
    order_cancelled_at: datetime | None = None
    in_refund_record: bool = False
    manual_removed: bool = False
    restocked: bool = False

    @field_validator("financial_state", "fulfillment_state")
    @classmethod
    def _normalize_states(cls, value: str | None) -> str | None:
        return _normalize_state(value)

    @field_validator("order_cancelled_at")
    @classmethod
    def _utc_cancelled_at(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class Owner(BaseModel):
    """Custodian of a unit. Every field may be unknown."""

    model_config = {"frozen": True}

    name: str | None = None
    email: str | None = None
    account_id: str | None = None

    @field_validator("name", "account_id")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower() or None

    @property
    def is_empty(self) -> bool:
        return self.name is None and self.email is None and self.account_id is None

    def as_dict(self) -> dict[str, str | None]:
        return {"name": self.name, "email": self.email, "account_id": self.account_id}


class UnitRecord(BaseModel):
    """One entry of the inbound feed: a unit, its edition, and its facts."""

    model_config = {"frozen": True}

    unit_id: str = Field(min_length=1)
    edition_id: str = Field(min_length=1)
    acquired_at: datetime
    order_id: str | None = None
    owner: Owner = Field(default_factory=Owner)
    facts: UnitFacts = Field(default_factory=UnitFacts)

    @field_validator("unit_id", "edition_id", "order_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: object) -> object:
        # Upstream ids are frequently numeric.
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("acquired_at")
    @classmethod
    def _utc_acquired_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class EditionRecord(BaseModel):
    """Edition configuration as delivered by the feed or an operator."""

    model_config = {"frozen": True}

    edition_id: str = Field(min_length=1)
    edition_size: int | None = Field(default=None, ge=0)
    title: str | None = None

    @field_validator("edition_id", mode="before")
    @classmethod
    def _coerce_edition_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value
