"""The ``SolanaToolkit`` facade that wires config, connection and services together."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from solkit.core.config import ToolkitConfig, resolve_endpoint
from solkit.core.logs import ToolkitLogger
from solkit.services import AccountService, ProgramService, TokenService, TransferService
from solkit.solana.connection import ClientFactory, ConnectionManager, HealthStatus
from solkit.solana.transaction import TransactionOptions, TransactionOrchestrator

logger = logging.getLogger(__name__)


class SolanaToolkit:
    """Entry point for applications.

    Construction is side-effect free; call :meth:`start` (or use the toolkit
    as a context manager) to open the RPC link and begin health monitoring.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        config: ToolkitConfig | None = None,
        logger: ToolkitLogger | None = None,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.config = config or ToolkitConfig()
        self.logger = logger or ToolkitLogger(enabled=self.config.enable_logging)
        resolved = resolve_endpoint(endpoint, self.config.networks) if endpoint else self.config.endpoint()
        self.connection = ConnectionManager(
            resolved,
            self.config.commitment,
            policy=self.config.retry_policy(),
            health_check_interval=self.config.health_check_interval,
            health_threshold=self.config.health_threshold,
            request_timeout=self.config.request_timeout,
            client_factory=client_factory,
            sleep=sleep,
            clock=clock,
            logger=self.logger,
        )
        self.orchestrator = TransactionOrchestrator(
            self.connection,
            logger=self.logger,
            sleep=sleep,
            clock=clock,
            default_options=TransactionOptions(confirm_timeout=self.config.timeout),
        )
        self.accounts = AccountService(self.connection, self.orchestrator, logger=self.logger)
        self.transfers = TransferService(self.connection, self.orchestrator, logger=self.logger)
        self.tokens = TokenService(self.connection, self.orchestrator, logger=self.logger)
        self.programs = ProgramService(self.connection, self.orchestrator, logger=self.logger)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> SolanaToolkit:
        self.connection.start()
        return self

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> SolanaToolkit:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    # ------------------------------------------------------------------
    # Network and configuration
    # ------------------------------------------------------------------
    def switch_network(self, name_or_url: str, commitment: str | None = None) -> HealthStatus:
        """Point the toolkit at another network by name or URL."""
        endpoint = resolve_endpoint(name_or_url, self.config.networks)
        status = self.connection.switch_network(endpoint, commitment)
        if name_or_url.startswith(("http://", "https://")):
            update: dict[str, Any] = {"rpc_url": endpoint}
        else:
            update = {"network": name_or_url, "rpc_url": None}
        self.config = self.config.model_copy(update={**update, "commitment": status.commitment})
        logger.info("Switched to %s (%s)", endpoint, status.commitment)
        return status

    def health_status(self) -> HealthStatus:
        return self.connection.health_status()

    def get_config(self) -> dict[str, Any]:
        data = self.config.model_dump()
        data["endpoint"] = self.connection.endpoint
        return data

    def set_config(self, **fields: Any) -> ToolkitConfig:
        """Apply validated settings to the live toolkit.

        Retry, logging and timeout settings take effect immediately. Network
        fields are recorded but do not switch the link; use
        :meth:`switch_network` for that.
        """
        self.config = self.config.updated(**fields)
        self.connection.policy = self.config.retry_policy()
        self.logger.enabled = self.config.enable_logging
        self.orchestrator.default_options = replace(
            self.orchestrator.default_options,
            confirm_timeout=self.config.timeout,
        )
        self.logger.info("Configuration updated", {"fields": sorted(fields)})
        return self.config


__all__ = ["SolanaToolkit"]
