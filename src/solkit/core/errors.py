"""Structured error type shared by every solkit component."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable failure categories."""

    CONNECTION_INIT = "CONNECTION_INIT_ERROR"
    UNHEALTHY_CONNECTION = "UNHEALTHY_CONNECTION"
    OPERATION_FAILED = "OPERATION_FAILED"
    INVALID_NETWORK = "INVALID_NETWORK"
    INVALID_COMMITMENT = "INVALID_COMMITMENT"
    TRANSACTION_REJECTED = "TRANSACTION_REJECTED"
    TRANSACTION_AMBIGUOUS = "TRANSACTION_AMBIGUOUS"
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    RPC_ERROR = "RPC_ERROR"
    MISSING_SIGNER = "MISSING_SIGNER"
    BLOCKHASH_EXPIRED = "BLOCKHASH_EXPIRED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


# Failures that retrying cannot fix.
TERMINAL_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.CONNECTION_INIT,
        ErrorCode.NOT_FOUND,
        ErrorCode.INVALID_INPUT,
        ErrorCode.INVALID_NETWORK,
        ErrorCode.INVALID_COMMITMENT,
        ErrorCode.TRANSACTION_REJECTED,
        ErrorCode.TRANSACTION_AMBIGUOUS,
        ErrorCode.MISSING_SIGNER,
        ErrorCode.CONFIGURATION_ERROR,
    }
)


class ToolkitError(RuntimeError):
    """Raised by every failing solkit operation.

    Carries a :class:`ErrorCode`, a context mapping with the identifiers
    involved, and the UTC timestamp at which the failure was observed.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code)
        self.context: dict[str, Any] = dict(context or {})
        self.timestamp = datetime.now(UTC).isoformat()

    @property
    def retryable(self) -> bool:
        return self.code not in TERMINAL_CODES

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code.value,
            "context": dict(self.context),
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return f"ToolkitError(code={self.code.value!r}, message={self.message!r})"


def wrap_error(exc: BaseException, message: str, **context: Any) -> ToolkitError:
    """Re-wrap ``exc`` with ``message`` prefixed and ``context`` merged in.

    Toolkit errors keep their code so callers can still branch on it; any
    other exception becomes ``RPC_ERROR``.
    """
    if isinstance(exc, ToolkitError):
        merged = {**exc.context, **context}
        wrapped = ToolkitError(f"{message}: {exc.message}", exc.code, merged)
    else:
        wrapped = ToolkitError(
            f"{message}: {exc}",
            ErrorCode.RPC_ERROR,
            {**context, "error": str(exc), "error_type": type(exc).__name__},
        )
    return wrapped


@contextmanager
def error_context(operation: str, **identifiers: Any) -> Iterator[None]:
    """Re-raise any failure inside the block as a contextualised ToolkitError."""
    try:
        yield
    except Exception as exc:  # noqa: BLE001
        message = f"Failed to {operation.replace('_', ' ')}"
        raise wrap_error(exc, message, operation=operation, **identifiers) from exc


__all__ = [
    "ErrorCode",
    "TERMINAL_CODES",
    "ToolkitError",
    "error_context",
    "wrap_error",
]
