"""Solana-facing building blocks: RPC client, signers, and the resilient execution layer."""

from .connection import ConnectionManager, HealthStatus
from .health import HealthMonitor, HealthState
from .keys import Keypair, Signer
from .retry import RetryExecutor, RetryPolicy
from .rpc import LAMPORTS_PER_SOL, LedgerRPC, SolanaRPCClient, SolanaRPCError
from .transaction import (
    DEFAULT_COMPUTE_UNITS,
    TransactionEnvelope,
    TransactionOptions,
    TransactionOrchestrator,
    TransactionResult,
    TransactionState,
)

__all__ = [
    "ConnectionManager",
    "DEFAULT_COMPUTE_UNITS",
    "HealthMonitor",
    "HealthState",
    "HealthStatus",
    "Keypair",
    "LAMPORTS_PER_SOL",
    "LedgerRPC",
    "RetryExecutor",
    "RetryPolicy",
    "Signer",
    "SolanaRPCClient",
    "SolanaRPCError",
    "TransactionEnvelope",
    "TransactionOptions",
    "TransactionOrchestrator",
    "TransactionResult",
    "TransactionState",
]
