"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, editionctl.toml only contains
overrides. A fresh ledger needs only [ledger] name and
[certificates] base_url.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class LedgerConfig(BaseModel):
    """[ledger] section."""

    model_config = {"frozen": True}

    name: str = "editions"
    database_url: str | None = None


class CertificateConfig(BaseModel):
    """[certificates] section.

    ``base_url`` is the public origin of the certificate pages. It is the
    only piece of deployment configuration the issuer depends on.
    """

    model_config = {"frozen": True}

    base_url: str = "http://localhost:3000"
    path: str = "/certificate"


class ReconcileConfig(BaseModel):
    """[reconcile] section."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=8, ge=1)
    backoff_initial: float = Field(default=0.05, ge=0.0)
    backoff_max: float = Field(default=2.0, ge=0.0)


class ClassificationConfig(BaseModel):
    """[classification] section — upstream state vocabularies."""

    model_config = {"frozen": True}

    active_financial_states: tuple[str, ...] = (
        "paid",
        "authorized",
        "pending",
        "partially_paid",
    )
    refunded_financial_states: tuple[str, ...] = ("refunded",)
    cancelled_financial_states: tuple[str, ...] = ("voided",)
    inactive_financial_states: tuple[str, ...] = ("unpaid", "expired")
    cancelled_fulfillment_states: tuple[str, ...] = ("canceled", "cancelled", "restocked")
    fulfilled_states: tuple[str, ...] = ("fulfilled",)


class PluginsConfig(BaseModel):
    """[plugins] section."""

    model_config = {"frozen": True}

    enabled: bool = True


class EditionConfig(BaseModel):
    """Root configuration composing all sections."""

    model_config = {"frozen": True}

    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    certificates: CertificateConfig = Field(default_factory=CertificateConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
