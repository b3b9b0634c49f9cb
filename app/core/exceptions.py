"""Domain errors raised by the proposal services.

Every error carries a machine readable ``code``, a human ``message`` and a
``details`` dict. They are rendered into the standard error envelope by
``app.core.errors.proposal_error_handler``.
"""

from __future__ import annotations

from typing import Any


class ProposalError(Exception):
    status_code: int = 500
    default_code: str = "proposal_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details or {})

    def __str__(self) -> str:
        return self.message


class ValidationError(ProposalError):
    status_code = 400
    default_code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, Any]] | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        merged.setdefault("errors", list(errors or []))
        super().__init__(message, code=code, details=merged)

    @property
    def errors(self) -> list[dict[str, Any]]:
        return self.details["errors"]


class PayloadTooLargeError(ValidationError):
    status_code = 413
    default_code = "file_too_large"


class NotFoundError(ProposalError):
    status_code = 404
    default_code = "not_found"

    def __init__(self, message: str, *, reason: str, details: dict[str, Any] | None = None) -> None:
        merged = dict(details or {})
        merged["reason"] = reason
        super().__init__(message, code=reason, details=merged)

    @property
    def reason(self) -> str:
        return self.details["reason"]


class ConflictError(ProposalError):
    status_code = 409
    default_code = "conflict"

    def __init__(
        self,
        message: str,
        *,
        current_status: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        merged["current_status"] = current_status
        super().__init__(message, code=code, details=merged)

    @property
    def current_status(self) -> str | None:
        return self.details.get("current_status")


class AuthorizationError(ProposalError):
    status_code = 403
    default_code = "forbidden"


class StorageError(ProposalError):
    """Store unreachable or write failed. The message never carries store internals."""

    status_code = 500
    default_code = "storage_error"

    def __init__(self, message: str = "Storage operation failed", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
