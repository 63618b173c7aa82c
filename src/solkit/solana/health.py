"""Background liveness probing for the active RPC endpoint."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from solkit.core.logs import Logger, NullLogger

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_CHECK_INTERVAL = 30.0
DEFAULT_HEALTH_THRESHOLD = 5.0


@dataclass(frozen=True, slots=True)
class HealthState:
    """Result of the most recent health check."""

    is_healthy: bool = True
    last_checked_at: datetime | None = None
    response_time: float | None = None

    def age(self, now: datetime | None = None) -> float | None:
        """Seconds since the last check, or None when never checked."""
        if self.last_checked_at is None:
            return None
        current = now or datetime.now(UTC)
        return (current - self.last_checked_at).total_seconds()


class HealthMonitor:
    """Periodically checks an endpoint and flags it healthy or unhealthy.

    A check is healthy when it returns within ``threshold`` seconds. Check
    failures mark the link unhealthy and are logged, never raised. The loop
    runs on a daemon thread between :meth:`start` and :meth:`stop`; once
    stopped, further ticks leave the state untouched.
    """

    def __init__(
        self,
        check: Callable[[], Any],
        *,
        interval: float = DEFAULT_HEALTH_CHECK_INTERVAL,
        threshold: float = DEFAULT_HEALTH_THRESHOLD,
        clock: Callable[[], float] | None = None,
        logger: Logger | None = None,
        name: str = "endpoint",
    ) -> None:
        self._check = check
        self.interval = interval
        self.threshold = threshold
        self.name = name
        self._clock = clock or time.monotonic
        self._log = logger or NullLogger()
        self._state = HealthState()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> HealthState:
        return self._state

    @property
    def is_healthy(self) -> bool:
        return self._state.is_healthy

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> None:
        if self._stop_event.is_set():
            raise RuntimeError("HealthMonitor cannot be restarted once stopped")
        if self.running:
            return
        self._thread = threading.Thread(
            target=self._run,
            name=f"solkit-health-{self.name}",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Health monitor started for %s (interval=%.1fs)", self.name, self.interval)

    def stop(self, timeout: float | None = 1.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Health monitor stopped for %s", self.name)

    def tick(self) -> HealthState:
        """Run one check and record its outcome."""
        if self._stop_event.is_set():
            return self._state
        started = self._clock()
        try:
            self._check()
        except Exception as exc:  # noqa: BLE001
            elapsed = self._clock() - started
            logger.warning("Health check failed for %s: %s", self.name, exc)
            self._log.error("Connection health check failed", {"endpoint": self.name, "error": str(exc)})
            return self._record(False, elapsed)

        elapsed = self._clock() - started
        healthy = elapsed < self.threshold
        if not healthy:
            logger.warning("Health check for %s took %.3fs", self.name, elapsed)
            self._log.warning(
                "Connection health check slow",
                {"endpoint": self.name, "response_time": round(elapsed, 3)},
            )
        return self._record(healthy, elapsed)

    def _record(self, healthy: bool, elapsed: float) -> HealthState:
        with self._state_lock:
            # A stop issued while the check was in flight wins.
            if self._stop_event.is_set():
                return self._state
            self._state = HealthState(
                is_healthy=healthy,
                last_checked_at=datetime.now(UTC),
                response_time=elapsed,
            )
            return self._state

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.tick()


__all__ = ["DEFAULT_HEALTH_CHECK_INTERVAL", "DEFAULT_HEALTH_THRESHOLD", "HealthMonitor", "HealthState"]
