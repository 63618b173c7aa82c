"""Health-gated retry executor with exponential backoff."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from solkit.core.errors import ErrorCode, ToolkitError
from solkit.core.logs import Logger, NullLogger

logger = logging.getLogger(__name__)

C = TypeVar("C")
T = TypeVar("T")

Operation = Callable[[C], T]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ToolkitError(
                "max_attempts must be at least 1",
                ErrorCode.INVALID_INPUT,
                {"max_attempts": self.max_attempts},
            )
        if self.base_delay < 0:
            raise ToolkitError(
                "base_delay must not be negative",
                ErrorCode.INVALID_INPUT,
                {"base_delay": self.base_delay},
            )

    def delay_for(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-indexed): ``base_delay * 2**(attempt-1)``."""
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


class RetryExecutor(Generic[C]):
    """The single gate every remote operation passes through.

    ``resolve`` returns the active connection and its health flag; it is
    consulted at the start of every attempt so a network switch or a health
    check result between attempts is honoured.
    """

    def __init__(
        self,
        resolve: Callable[[], tuple[C, bool]],
        *,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._resolve = resolve
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or time.sleep
        self._log = logger or NullLogger()

    def execute(
        self,
        operation: Operation[C, T],
        *,
        policy: RetryPolicy | None = None,
        name: str = "operation",
        context: dict[str, Any] | None = None,
    ) -> T:
        active_policy = policy or self.policy
        max_attempts = active_policy.max_attempts
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                connection, healthy = self._resolve()
                if not healthy:
                    raise ToolkitError(
                        "Connection is unhealthy",
                        ErrorCode.UNHEALTHY_CONNECTION,
                        {"attempt": attempt, "max_attempts": max_attempts},
                    )
                return operation(connection)
            except ToolkitError as exc:
                if not exc.retryable:
                    exc.context.setdefault("attempts", attempt)
                    raise
                last_error = exc
            except Exception as exc:  # noqa: BLE001
                last_error = exc

            if attempt == max_attempts:
                break
            delay = active_policy.delay_for(attempt)
            logger.warning(
                "%s failed on attempt %d/%d (%s); retrying in %.2fs",
                name,
                attempt,
                max_attempts,
                last_error,
                delay,
            )
            self._sleep(delay)

        if last_error is None:
            raise RuntimeError(f"{name} exited the retry loop without an outcome")
        last_code = last_error.code.value if isinstance(last_error, ToolkitError) else None
        self._log.error(
            "Operation exhausted retries",
            {"operation": name, "attempts": max_attempts, "last_error": str(last_error)},
        )
        raise ToolkitError(
            f"Operation failed after {max_attempts} attempts: {last_error}",
            ErrorCode.OPERATION_FAILED,
            {
                **(context or {}),
                "operation": name,
                "attempts": max_attempts,
                "max_attempts": max_attempts,
                "last_error": str(last_error),
                "last_error_code": last_code,
            },
        ) from last_error


__all__ = ["Operation", "RetryExecutor", "RetryPolicy"]
