"""SOL transfers, generic transaction execution and transaction queries."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from solkit.core.errors import ErrorCode, ToolkitError, error_context
from solkit.core.logs import Logger, NullLogger
from solkit.solana.connection import ConnectionManager
from solkit.solana.instructions import memo as memo_instruction
from solkit.solana.instructions import transfer_lamports
from solkit.solana.keys import Keypair, to_pubkey
from solkit.solana.rpc import LedgerRPC
from solkit.solana.transaction import (
    FeeEstimate,
    SimulationResult,
    TransactionEnvelope,
    TransactionOptions,
    TransactionOrchestrator,
    TransactionResult,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchItem:
    index: int
    success: bool
    result: TransactionResult | None = None
    error: dict[str, Any] | None = None


@dataclass(slots=True)
class BatchResult:
    total: int
    successful: int = 0
    failed: int = 0
    results: list[BatchItem] = field(default_factory=list)


class TransferService:
    def __init__(
        self,
        connection: ConnectionManager,
        orchestrator: TransactionOrchestrator,
        *,
        logger: Logger | None = None,
    ) -> None:
        self._connection = connection
        self._orchestrator = orchestrator
        self._log = logger or NullLogger()

    def send_sol(
        self,
        sender: Keypair,
        recipient: str,
        lamports: int,
        *,
        memo: str = "",
        options: TransactionOptions | None = None,
    ) -> TransactionResult:
        """Transfer ``lamports`` from ``sender`` to ``recipient``, with an optional memo."""
        with error_context("send_sol", sender=str(sender.public_key), recipient=recipient, lamports=lamports):
            if lamports <= 0:
                raise ToolkitError(
                    "Transfer amount must be greater than 0",
                    ErrorCode.INVALID_INPUT,
                    {"lamports": lamports},
                )
            destination = to_pubkey(recipient, field="recipient")
            envelope = TransactionEnvelope(signers=[sender])
            envelope.add(transfer_lamports(sender.public_key, destination, lamports))
            if memo:
                envelope.add(memo_instruction(memo, [sender.public_key]))
            result = self._orchestrator.execute(envelope, options)
            self._log.info(
                "SOL transfer completed",
                {"signature": result.signature, "recipient": str(destination), "lamports": lamports},
            )
            return result

    def execute(self, envelope: TransactionEnvelope, options: TransactionOptions | None = None) -> TransactionResult:
        with error_context("execute_transaction", instructions=len(envelope.instructions)):
            return self._orchestrator.execute(envelope, options)

    def simulate(self, envelope: TransactionEnvelope, options: TransactionOptions | None = None) -> SimulationResult:
        with error_context("simulate_transaction", instructions=len(envelope.instructions)):
            return self._orchestrator.simulate(envelope, options)

    def estimate_fee(self, envelope: TransactionEnvelope, options: TransactionOptions | None = None) -> FeeEstimate:
        with error_context("estimate_fee", instructions=len(envelope.instructions)):
            return self._orchestrator.estimate_fee(envelope, options)

    def get_transaction_details(self, signature: str) -> dict[str, Any]:
        with error_context("get_transaction_details", signature=signature):

            def fetch(rpc: LedgerRPC) -> dict[str, Any]:
                transaction = rpc.get_transaction(signature)
                if transaction is None:
                    raise ToolkitError("Transaction not found", ErrorCode.NOT_FOUND, {"signature": signature})
                return transaction

            return self._connection.execute(fetch, name="get_transaction_details")

    def get_recent_transactions(self, public_key: str, limit: int = 20) -> list[dict[str, Any]]:
        with error_context("get_recent_transactions", public_key=public_key, limit=limit):
            address = str(to_pubkey(public_key))

            def fetch(rpc: LedgerRPC) -> list[dict[str, Any]]:
                recent: list[dict[str, Any]] = []
                for entry in rpc.get_signatures_for_address(address, limit=limit):
                    item: dict[str, Any] = {
                        "signature": entry.get("signature"),
                        "slot": entry.get("slot"),
                        "err": entry.get("err"),
                        "memo": entry.get("memo"),
                        "block_time": entry.get("blockTime"),
                        "confirmation_status": entry.get("confirmationStatus"),
                        "fee": None,
                        "status": "failed" if entry.get("err") is not None else "success",
                    }
                    try:
                        transaction = rpc.get_transaction(str(entry.get("signature")))
                    except Exception as exc:  # noqa: BLE001
                        item["error"] = str(exc)
                    else:
                        meta = (transaction or {}).get("meta") or {}
                        if meta:
                            item["fee"] = meta.get("fee")
                            item["status"] = "failed" if meta.get("err") is not None else "success"
                    recent.append(item)
                return recent

            return self._connection.execute(fetch, name="get_recent_transactions")

    def batch(
        self,
        envelopes: Iterable[TransactionEnvelope],
        options: TransactionOptions | None = None,
    ) -> BatchResult:
        """Execute envelopes one after another, recording each outcome."""
        items = list(envelopes)
        if not items:
            raise ToolkitError("Batch must contain at least one transaction", ErrorCode.INVALID_INPUT)
        summary = BatchResult(total=len(items))
        for index, envelope in enumerate(items):
            try:
                result = self._orchestrator.execute(envelope, options)
            except ToolkitError as exc:
                logger.info("Batch item %d failed: %s", index, exc)
                summary.failed += 1
                summary.results.append(BatchItem(index=index, success=False, error=exc.to_dict()))
                continue
            summary.successful += 1
            summary.results.append(BatchItem(index=index, success=True, result=result))
        self._log.info(
            "Batch execution completed",
            {"total": summary.total, "successful": summary.successful, "failed": summary.failed},
        )
        return summary


__all__ = ["BatchItem", "BatchResult", "TransferService"]
