"""
Workflow error taxonomy and the boundary normalizer.

Each stage raises its own tagged error; handlers flatten them to
{"success": false, "error": ..., "cause": ...} only at the response boundary.
"""

from __future__ import annotations

from typing import Any

UNKNOWN_ERROR_MESSAGE = "Unknown error"


class WorkflowError(Exception):
    """Base class for errors raised by a storage workflow stage."""

    status_code = 500

    def __init__(self, message: str, cause: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigurationError(WorkflowError):
    """Raised when a required server-side setting is missing."""

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ValidationError(WorkflowError):
    """Raised when caller input is malformed."""

    status_code = 400


class InitializationError(WorkflowError):
    """Raised when the storage client handle cannot be constructed."""


class FundingError(WorkflowError):
    """Raised when the balance check or deposit-and-approve transaction fails."""

    def __init__(self, message: str, cause: Any = None, funding_status: str = "failed") -> None:
        super().__init__(message, cause)
        # "unknown" means the transaction was sent but its confirmation timed out.
        self.funding_status = funding_status


class TransferError(WorkflowError):
    """Raised when an upload or download against the storage provider fails."""

    def __init__(self, message: str, cause: Any = None, operation: str = "upload") -> None:
        super().__init__(message, cause)
        self.operation = operation


class DecodeError(WorkflowError):
    """Raised when downloaded bytes are not valid UTF-8."""


def error_message(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if not isinstance(message, str) or not message.strip():
        message = str(exc)
    if not message.strip():
        message = UNKNOWN_ERROR_MESSAGE
    return message


def error_cause(exc: BaseException) -> Any:
    # stage errors are raised "from" the client error they re-tag; only their own cause counts
    if isinstance(exc, WorkflowError):
        return exc.cause
    cause = getattr(exc, "cause", None)
    if cause is None:
        cause = exc.__cause__
    return cause


def wrap_stage_error(error_cls: type[WorkflowError], exc: BaseException, **kwargs: Any) -> WorkflowError:
    """Re-tag a client error for a stage, keeping its message and cause verbatim."""
    return error_cls(error_message(exc), cause=error_cause(exc), **kwargs)


def normalize_error(exc: BaseException | None) -> dict[str, Any]:
    try:
        if exc is None:
            return {"success": False, "error": UNKNOWN_ERROR_MESSAGE}
        body: dict[str, Any] = {"success": False, "error": error_message(exc)}
        cause = error_cause(exc)
        if cause is not None:
            body["cause"] = str(cause)
        funding_status = getattr(exc, "funding_status", None)
        if funding_status:
            body["fundingStatus"] = funding_status
        hint = getattr(exc, "hint", None)
        if hint:
            body["message"] = hint
        return body
    except Exception:
        return {"success": False, "error": type(exc).__name__}
