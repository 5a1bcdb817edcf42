"""Tests for ServiceResult, ServiceError and service exceptions."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from editionctl.services.errors import (
    CertificateIssuanceFailed,
    ConcurrentModification,
    OwnershipPrecondition,
    UnitNotFound,
)
from editionctl.services.result import ServiceError, ServiceResult


class TestServiceResult:
    def test_defaults(self) -> None:
        result = ServiceResult(ok=True, op="reconcile")
        assert result.data == {}
        assert result.warnings == []
        assert result.error is None
        assert result.meta is None

    def test_frozen(self) -> None:
        result = ServiceResult(ok=True, op="reconcile")
        with pytest.raises(ValidationError):
            result.ok = False  # type: ignore[misc]

    def test_json_roundtrip(self) -> None:
        result = ServiceResult(
            ok=False,
            op="reconcile",
            error=ServiceError(code="X", message="m", detail={"retryable": True}),
        )
        assert ServiceResult.model_validate_json(result.model_dump_json()) == result


class TestServiceError:
    def test_not_retryable_by_default(self) -> None:
        assert not ServiceError(code="X", message="m").retryable

    def test_retryable_from_detail(self) -> None:
        assert ServiceError(code="X", message="m", detail={"retryable": True}).retryable


class TestExceptions:
    def test_unit_not_found(self) -> None:
        result = UnitNotFound("U1").to_result("transfer_ownership")
        assert not result.ok
        assert result.op == "transfer_ownership"
        assert result.error.code == "UNIT_NOT_FOUND"
        assert result.error.detail == {"unit_id": "U1"}

    def test_concurrent_modification_is_retryable(self) -> None:
        error = ConcurrentModification("ED-1", attempts=8).to_error()
        assert error.retryable
        assert error.detail["attempts"] == 8

    def test_certificate_failure_is_retryable(self) -> None:
        assert CertificateIssuanceFailed("U1", "offline").to_error().retryable

    def test_ownership_precondition_is_not_eligible(self) -> None:
        error = OwnershipPrecondition("U1", status="inactive", rank=None).to_error()
        assert error.code == "NOT_ELIGIBLE"
        assert "ownership transfer" in error.message
        assert not error.retryable

    def test_warnings_carried(self) -> None:
        result = UnitNotFound("U1").to_result("x", warnings=["w"])
        assert result.warnings == ["w"]
