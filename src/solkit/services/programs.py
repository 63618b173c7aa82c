"""Calls into arbitrary on-chain programs and program account queries."""

from __future__ import annotations

import base64
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from solders.instruction import AccountMeta, Instruction

from solkit.core.errors import ErrorCode, ToolkitError, error_context
from solkit.core.logs import Logger, NullLogger
from solkit.solana.connection import ConnectionManager
from solkit.solana.instructions import program_instruction
from solkit.solana.keys import Signer, to_pubkey
from solkit.solana.rpc import LedgerRPC
from solkit.solana.transaction import (
    SimulationResult,
    TransactionEnvelope,
    TransactionOptions,
    TransactionOrchestrator,
)

AccountSpec = AccountMeta | Mapping[str, Any]


@dataclass(slots=True)
class ProgramCallResult:
    signature: str
    program_id: str
    accounts_count: int


class ProgramService:
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

    def call_program(
        self,
        payer: Signer,
        program_id: str,
        data: bytes,
        accounts: Iterable[AccountSpec] = (),
        options: TransactionOptions | None = None,
    ) -> ProgramCallResult:
        """Send one instruction to ``program_id`` signed and paid for by ``payer``."""
        with error_context("call_program", program_id=program_id):
            instruction = self._instruction(program_id, data, accounts)
            envelope = TransactionEnvelope(instructions=[instruction], signers=[payer])
            result = self._orchestrator.execute(envelope, options)
            self._log.info(
                "Program called",
                {"program_id": program_id, "signature": result.signature, "accounts": len(instruction.accounts)},
            )
            return ProgramCallResult(
                signature=result.signature,
                program_id=program_id,
                accounts_count=len(instruction.accounts),
            )

    def invoke_method(
        self,
        payer: Signer,
        program_id: str,
        method: str,
        args: Mapping[str, Any] | None = None,
        accounts: Iterable[AccountSpec] = (),
        options: TransactionOptions | None = None,
    ) -> ProgramCallResult:
        """Call ``method`` on a program that accepts JSON-encoded method calls."""
        with error_context("invoke_method", program_id=program_id, method=method):
            return self.call_program(payer, program_id, encode_method_call(method, args), accounts, options)

    def execute_instructions(
        self,
        payer: Signer,
        instructions: Iterable[Instruction | Mapping[str, Any]],
        options: TransactionOptions | None = None,
    ) -> ProgramCallResult:
        """Send several program instructions in one transaction.

        Mapping entries take ``program_id``, ``data`` and ``accounts`` keys.
        """
        with error_context("execute_instructions"):
            built = [
                item
                if isinstance(item, Instruction)
                else self._instruction(str(item["program_id"]), item.get("data", b""), item.get("accounts", ()))
                for item in instructions
            ]
            if not built:
                raise ToolkitError("At least one instruction is required", ErrorCode.INVALID_INPUT)
            envelope = TransactionEnvelope(instructions=built, signers=[payer])
            result = self._orchestrator.execute(envelope, options)
            return ProgramCallResult(
                signature=result.signature,
                program_id=str(built[0].program_id),
                accounts_count=sum(len(instruction.accounts) for instruction in built),
            )

    def get_program_account_info(self, program_id: str) -> dict[str, Any]:
        with error_context("get_program_account_info", program_id=program_id):
            address = str(to_pubkey(program_id, field="program_id"))

            def fetch(rpc: LedgerRPC) -> dict[str, Any]:
                value = rpc.get_account_info(address)
                if value is None:
                    raise ToolkitError("Program account not found", ErrorCode.NOT_FOUND, {"program_id": address})
                data = value.get("data")
                return {
                    "program_id": address,
                    "lamports": value.get("lamports"),
                    "owner": value.get("owner"),
                    "executable": bool(value.get("executable", False)),
                    "rent_epoch": value.get("rentEpoch"),
                    "data_size": value.get("space", _encoded_size(data)),
                }

            return self._connection.execute(fetch, name="get_program_account_info")

    def get_program_accounts(
        self,
        program_id: str,
        *,
        filters: list[dict[str, Any]] | None = None,
        encoding: str = "base64",
        data_slice: dict[str, int] | None = None,
    ) -> list[dict[str, Any]]:
        with error_context("get_program_accounts", program_id=program_id):
            address = str(to_pubkey(program_id, field="program_id"))
            return self._connection.execute(
                lambda rpc: rpc.get_program_accounts(
                    address,
                    filters=filters,
                    encoding=encoding,
                    data_slice=data_slice,
                ),
                name="get_program_accounts",
            )

    def simulate_program_call(
        self,
        payer: Signer,
        program_id: str,
        data: bytes,
        accounts: Iterable[AccountSpec] = (),
        options: TransactionOptions | None = None,
    ) -> SimulationResult:
        with error_context("simulate_program_call", program_id=program_id):
            instruction = self._instruction(program_id, data, accounts)
            envelope = TransactionEnvelope(instructions=[instruction], signers=[payer])
            return self._orchestrator.simulate(envelope, options)

    @staticmethod
    def _instruction(program_id: str, data: bytes, accounts: Iterable[AccountSpec]) -> Instruction:
        return program_instruction(to_pubkey(program_id, field="program_id"), bytes(data), accounts)


def encode_method_call(method: str, args: Mapping[str, Any] | None = None) -> bytes:
    if not method:
        raise ToolkitError("Method name must not be empty", ErrorCode.INVALID_INPUT)
    try:
        payload = json.dumps({"method": method, "args": dict(args or {})}, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise ToolkitError(
            f"Method arguments are not JSON serializable: {exc}",
            ErrorCode.INVALID_INPUT,
            {"method": method},
        ) from exc
    return payload.encode("utf-8")


def _encoded_size(data: Any) -> int | None:
    # RPC account data arrives as [payload, encoding].
    if isinstance(data, list) and data and isinstance(data[0], str):
        return len(base64.b64decode(data[0]))
    return None


__all__ = ["ProgramCallResult", "ProgramService", "encode_method_call"]
