"""Service-layer exceptions.

Each exception carries a stable ``code`` and a ``detail`` dict so that
service boundaries can translate it into a :class:`ServiceError` without
inspecting the message. Insufficient facts are not an exception: the
classifier fails closed to INACTIVE instead.
"""

from __future__ import annotations

from typing import Any

from editionctl.services.result import ServiceError, ServiceResult


class EditionError(Exception):
    """Base class for engine errors surfaced through ServiceResult."""

    code = "EDITION_ERROR"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_error(self) -> ServiceError:
        return ServiceError(code=self.code, message=self.message, detail=self.detail)

    def to_result(self, op: str, *, warnings: list[str] | None = None) -> ServiceResult:
        return ServiceResult(ok=False, op=op, error=self.to_error(), warnings=warnings or [])


class EditionNotFound(EditionError):
    code = "EDITION_NOT_FOUND"

    def __init__(self, edition_id: str) -> None:
        super().__init__(f"No edition found with ID '{edition_id}'", edition_id=edition_id)


class UnitNotFound(EditionError):
    code = "UNIT_NOT_FOUND"

    def __init__(self, unit_id: str) -> None:
        super().__init__(f"No unit found with ID '{unit_id}'", unit_id=unit_id)


class ConcurrentModification(EditionError):
    """Another writer committed the edition between our read and write."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, edition_id: str, *, attempts: int | None = None) -> None:
        detail: dict[str, Any] = {"edition_id": edition_id, "retryable": True}
        if attempts is not None:
            detail["attempts"] = attempts
        super().__init__(f"Edition '{edition_id}' was modified concurrently", **detail)


class CertificateIssuanceFailed(EditionError):
    code = "CERTIFICATE_ISSUANCE_FAILED"

    def __init__(self, unit_id: str, reason: str) -> None:
        super().__init__(
            f"Certificate issuance failed for unit '{unit_id}': {reason}",
            unit_id=unit_id,
            retryable=True,
        )


class NotEligible(EditionError):
    """The unit is inactive or has no edition number."""

    code = "NOT_ELIGIBLE"

    def __init__(self, unit_id: str, *, status: str, rank: int | None, action: str) -> None:
        super().__init__(
            f"Unit '{unit_id}' is not eligible for {action} (status={status}, rank={rank})",
            unit_id=unit_id,
            status=status,
            rank=rank,
        )


class OwnershipPrecondition(NotEligible):
    """Transfer rejected: unit is inactive or has no edition number."""

    def __init__(self, unit_id: str, *, status: str, rank: int | None) -> None:
        super().__init__(unit_id, status=status, rank=rank, action="ownership transfer")


class CertificateNotFound(EditionError):
    code = "CERTIFICATE_NOT_FOUND"

    def __init__(self, certificate_id: str) -> None:
        super().__init__(
            f"No unit carries certificate '{certificate_id}'",
            certificate_id=certificate_id,
        )
