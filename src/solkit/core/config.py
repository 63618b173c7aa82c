"""Configuration management for solkit."""

from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w
from pydantic import BaseModel, Field, ValidationError, field_validator

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from solkit.core.errors import ErrorCode, ToolkitError

if TYPE_CHECKING:
    from solkit.solana.retry import RetryPolicy

DEFAULT_CONFIG_DIR = Path(os.environ.get("SOLKIT_HOME", Path.home() / ".solkit"))
CONFIG_FILENAME = "config.toml"

NETWORKS: dict[str, str] = {
    "mainnet": "https://api.mainnet-beta.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "devnet": "https://api.devnet.solana.com",
    "localnet": "http://localhost:8899",
}

VALID_COMMITMENTS: tuple[str, ...] = ("processed", "confirmed", "finalized")


def validate_commitment(commitment: str) -> str:
    """Return ``commitment`` if it is a known level, else raise INVALID_COMMITMENT."""
    if commitment not in VALID_COMMITMENTS:
        raise ToolkitError(
            f"Invalid commitment: {commitment}",
            ErrorCode.INVALID_COMMITMENT,
            {"commitment": commitment, "valid_commitments": list(VALID_COMMITMENTS)},
        )
    return commitment


def resolve_endpoint(name_or_url: str, networks: dict[str, str] | None = None) -> str:
    """Resolve a network name to its RPC URL; URLs pass through unchanged."""
    candidates = networks if networks is not None else NETWORKS
    value = name_or_url.strip()
    if value.startswith(("http://", "https://")):
        return value
    if value in candidates:
        return candidates[value]
    raise ToolkitError(
        f"Invalid network: {name_or_url}",
        ErrorCode.INVALID_NETWORK,
        {"network": name_or_url, "available_networks": sorted(candidates)},
    )


class ToolkitConfig(BaseModel):
    """Settings consumed by the connection, retry and transaction layers."""

    config_version: int = 1
    network: str = "devnet"
    rpc_url: str | None = None
    commitment: str = "confirmed"
    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)
    # Ceiling for exponential backoff; None leaves it uncapped.
    max_retry_delay: float | None = Field(default=30.0, gt=0)
    timeout: float = Field(default=60.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    health_check_interval: float = Field(default=30.0, gt=0)
    health_threshold: float = Field(default=5.0, gt=0)
    enable_logging: bool = False
    networks: dict[str, str] = Field(default_factory=lambda: dict(NETWORKS))

    @field_validator("commitment")
    @classmethod
    def _check_commitment(cls, value: str) -> str:
        return validate_commitment(value)

    def endpoint(self) -> str:
        """Return the explicit RPC URL, or the URL of the named network."""
        if self.rpc_url:
            return self.rpc_url
        return resolve_endpoint(self.network, self.networks)

    def retry_policy(self) -> RetryPolicy:
        from solkit.solana.retry import RetryPolicy

        return RetryPolicy(
            max_attempts=self.max_retries,
            base_delay=self.retry_delay,
            max_delay=self.max_retry_delay,
        )

    def updated(self, **fields: Any) -> ToolkitConfig:
        """Return a validated copy with ``fields`` replaced.

        ``None`` is applied like any other value, so optional settings such
        as ``rpc_url`` or ``max_retry_delay`` can be cleared.
        """
        data = self.model_dump()
        data.update(fields)
        return build_config(data)


def build_config(data: dict[str, Any]) -> ToolkitConfig:
    try:
        return ToolkitConfig(**data)
    except ValidationError as exc:
        raise ToolkitError(
            f"Invalid configuration: {exc.error_count()} error(s)",
            ErrorCode.CONFIGURATION_ERROR,
            {"errors": [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]},
        ) from exc


class ConfigManager:
    """Loads and persists solkit configuration as TOML."""

    def __init__(
        self,
        config_dir: Path | None = None,
        override_config_path: Path | None = None,
    ) -> None:
        self.config_dir = config_dir or DEFAULT_CONFIG_DIR
        self.config_path = self.config_dir / CONFIG_FILENAME
        self.override_config_path = override_config_path

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def load(self) -> ToolkitConfig:
        """Load the on-disk config, apply overrides and environment, validate."""
        data: dict[str, Any] = self._read_config_dict(self.config_path)
        if self.override_config_path:
            data = self._merge_dicts(data, self._read_config_dict(self.override_config_path))
        env_rpc = os.environ.get("SOLKIT_RPC_URL")
        if env_rpc:
            data["rpc_url"] = env_rpc
        env_network = os.environ.get("SOLKIT_NETWORK")
        if env_network:
            data["network"] = env_network
        return build_config(data)

    def save(self, config: ToolkitConfig) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(tomli_w.dumps(config.model_dump(exclude_none=True)))

    def update(self, **updates: Any) -> ToolkitConfig:
        """Persist ``updates`` on top of the stored base config."""
        current = self._read_config_dict(self.config_path)
        current.update({key: value for key, value in updates.items() if value is not None})
        config = build_config(current)
        self.save(config)
        return config

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _read_config_dict(self, path: Path | None) -> dict[str, Any]:
        if path is None or not path.exists():
            return {}
        try:
            return tomllib.loads(path.read_text())
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ToolkitError(
                f"Failed to load config from {path}: {exc}",
                ErrorCode.CONFIGURATION_ERROR,
                {"path": str(path)},
            ) from exc

    def _merge_dicts(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        result = deepcopy(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_dicts(result[key], value)
            else:
                result[key] = value
        return result


__all__ = [
    "CONFIG_FILENAME",
    "ConfigManager",
    "DEFAULT_CONFIG_DIR",
    "NETWORKS",
    "ToolkitConfig",
    "VALID_COMMITMENTS",
    "build_config",
    "resolve_endpoint",
    "validate_commitment",
]
