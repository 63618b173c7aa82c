"""solkit: a resilient execution layer for Solana JSON-RPC."""

from solkit.core import ErrorCode, ToolkitConfig, ToolkitError, ToolkitLogger
from solkit.solana import (
    ConnectionManager,
    Keypair,
    RetryPolicy,
    TransactionEnvelope,
    TransactionOptions,
    TransactionResult,
)
from solkit.toolkit import SolanaToolkit

__all__ = [
    "ConnectionManager",
    "ErrorCode",
    "Keypair",
    "RetryPolicy",
    "SolanaToolkit",
    "ToolkitConfig",
    "ToolkitError",
    "ToolkitLogger",
    "TransactionEnvelope",
    "TransactionOptions",
    "TransactionResult",
]
