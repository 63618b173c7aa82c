"""Core services shared across solkit: errors, logging and configuration."""

from .config import (
    DEFAULT_CONFIG_DIR,
    NETWORKS,
    VALID_COMMITMENTS,
    ConfigManager,
    ToolkitConfig,
    resolve_endpoint,
    validate_commitment,
)
from .errors import ErrorCode, ToolkitError, error_context
from .logs import LogEntry, NullLogger, ToolkitLogger

__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_DIR",
    "ErrorCode",
    "LogEntry",
    "NETWORKS",
    "NullLogger",
    "ToolkitConfig",
    "ToolkitError",
    "ToolkitLogger",
    "VALID_COMMITMENTS",
    "error_context",
    "resolve_endpoint",
    "validate_commitment",
]
