"""Ownership of the active RPC link: client, health monitor and retry gate."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from solkit.core.config import validate_commitment
from solkit.core.errors import ErrorCode, ToolkitError
from solkit.core.logs import Logger, NullLogger
from solkit.solana.health import (
    DEFAULT_HEALTH_CHECK_INTERVAL,
    DEFAULT_HEALTH_THRESHOLD,
    HealthMonitor,
)
from solkit.solana.retry import Operation, RetryExecutor, RetryPolicy
from solkit.solana.rpc import LedgerRPC, SolanaRPCClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[str, str], LedgerRPC]


@dataclass(frozen=True, slots=True)
class HealthStatus:
    """Read-only snapshot of the active link's health."""

    is_healthy: bool
    last_checked_at: datetime | None
    endpoint: str
    commitment: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "is_healthy": self.is_healthy,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "endpoint": self.endpoint,
            "commitment": self.commitment,
        }


@dataclass(frozen=True, slots=True)
class ActiveLink:
    """Everything bound to one endpoint; replaced as a unit on switch."""

    endpoint: str
    commitment: str
    client: LedgerRPC
    monitor: HealthMonitor


class ConnectionManager:
    """Owns exactly one active link and gates every remote call through it."""

    def __init__(
        self,
        endpoint: str,
        commitment: str = "confirmed",
        *,
        policy: RetryPolicy | None = None,
        health_check_interval: float = DEFAULT_HEALTH_CHECK_INTERVAL,
        health_threshold: float = DEFAULT_HEALTH_THRESHOLD,
        request_timeout: float = 30.0,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._commitment = validate_commitment(commitment)
        self.health_check_interval = health_check_interval
        self.health_threshold = health_threshold
        self.request_timeout = request_timeout
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or time.monotonic
        self._log = logger or NullLogger()
        self._switch_lock = threading.Lock()
        self._active: ActiveLink | None = None
        self._executor: RetryExecutor[LedgerRPC] = RetryExecutor(
            self._resolve,
            policy=policy,
            sleep=sleep,
            logger=self._log,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> ConnectionManager:
        """Create the RPC client and begin health probing."""
        with self._switch_lock:
            if self._active is None:
                link = self._build_link(self._endpoint, self._commitment)
                self._active = link
                link.monitor.start()
                self._log.info("Connection initialized", {"endpoint": link.endpoint, "commitment": link.commitment})
        return self

    def close(self) -> None:
        with self._switch_lock:
            link = self._active
            self._active = None
        if link is not None:
            link.monitor.stop()
            link.client.close()

    def __enter__(self) -> ConnectionManager:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def started(self) -> bool:
        return self._active is not None

    @property
    def policy(self) -> RetryPolicy:
        return self._executor.policy

    @policy.setter
    def policy(self, value: RetryPolicy) -> None:
        self._executor.policy = value

    @property
    def endpoint(self) -> str:
        link = self._active
        return link.endpoint if link else self._endpoint

    @property
    def commitment(self) -> str:
        link = self._active
        return link.commitment if link else self._commitment

    @property
    def connection(self) -> LedgerRPC:
        return self._require_link().client

    @property
    def monitor(self) -> HealthMonitor:
        return self._require_link().monitor

    def health_status(self) -> HealthStatus:
        link = self._active
        if link is None:
            return HealthStatus(
                is_healthy=False,
                last_checked_at=None,
                endpoint=self._endpoint,
                commitment=self._commitment,
            )
        state = link.monitor.state
        return HealthStatus(
            is_healthy=state.is_healthy,
            last_checked_at=state.last_checked_at,
            endpoint=link.endpoint,
            commitment=link.commitment,
        )

    def execute(
        self,
        operation: Operation[LedgerRPC, T],
        *,
        policy: RetryPolicy | None = None,
        name: str = "operation",
        context: dict[str, Any] | None = None,
    ) -> T:
        """Run ``operation`` against the active client with health gating and retries."""
        return self._executor.execute(operation, policy=policy, name=name, context=context)

    def switch_network(self, endpoint: str, commitment: str | None = None) -> HealthStatus:
        """Atomically replace the active link; health resets to optimistic."""
        new_commitment = validate_commitment(commitment or self.commitment)
        with self._switch_lock:
            new_link = self._build_link(endpoint, new_commitment)
            old_link = self._active
            if old_link is not None:
                old_link.monitor.stop()
            self._endpoint = endpoint
            self._commitment = new_commitment
            self._active = new_link
            new_link.monitor.start()
        if old_link is not None:
            old_link.client.close()
        self._log.info("Network switched", {"endpoint": endpoint, "commitment": new_commitment})
        return self.health_status()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _resolve(self) -> tuple[LedgerRPC, bool]:
        link = self._require_link()
        return link.client, link.monitor.is_healthy

    def _require_link(self) -> ActiveLink:
        link = self._active
        if link is None:
            raise ToolkitError(
                "Connection has not been started",
                ErrorCode.CONNECTION_INIT,
                {"endpoint": self._endpoint},
            )
        return link

    def _build_link(self, endpoint: str, commitment: str) -> ActiveLink:
        try:
            client = self._client_factory(endpoint, commitment)
        except Exception as exc:  # noqa: BLE001
            raise ToolkitError(
                f"Failed to initialize connection: {exc}",
                ErrorCode.CONNECTION_INIT,
                {"endpoint": endpoint, "error": str(exc)},
            ) from exc
        monitor = HealthMonitor(
            client.get_slot,
            interval=self.health_check_interval,
            threshold=self.health_threshold,
            clock=self._clock,
            logger=self._log,
            name=endpoint,
        )
        return ActiveLink(endpoint=endpoint, commitment=commitment, client=client, monitor=monitor)

    def _default_client_factory(self, endpoint: str, commitment: str) -> LedgerRPC:
        if not endpoint.startswith(("http://", "https://")):
            raise ValueError(f"Endpoint must be an http(s) URL: {endpoint}")
        return SolanaRPCClient(endpoint=endpoint, commitment=commitment, timeout=self.request_timeout)


__all__ = ["ActiveLink", "ClientFactory", "ConnectionManager", "HealthStatus"]
