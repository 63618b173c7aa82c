"""Transaction lifecycle: budget injection, stamping, signing, submission, confirmation.

Every call to :meth:`TransactionOrchestrator.execute` hands the whole
build → stamp → sign → submit → confirm sequence to the connection's retry
executor as a single operation. A retry therefore rebuilds the transaction
from the caller's instructions and fetches a fresh blockhash; nothing from a
failed attempt is reused.
"""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from solkit.core.errors import ErrorCode, ToolkitError
from solkit.core.logs import Logger, NullLogger
from solkit.solana.connection import ConnectionManager
from solkit.solana.instructions import set_compute_unit_limit, set_compute_unit_price
from solkit.solana.keys import Signer
from solkit.solana.retry import RetryPolicy
from solkit.solana.rpc import LAMPORTS_PER_SOL, LedgerRPC, SolanaRPCError

logger = logging.getLogger(__name__)

DEFAULT_COMPUTE_UNITS = 200_000
DEFAULT_CONFIRM_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 0.5

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}
_BLOCKHASH_ERRORS = ("BlockhashNotFound", "Blockhash not found", "blockhash not found")


class TransactionState(str, Enum):
    BUILT = "built"
    BUDGET_AUGMENTED = "budget_augmented"
    STAMPED = "stamped"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(slots=True)
class TransactionOptions:
    """Per-call knobs for fee injection, submission and confirmation."""

    compute_units: int = DEFAULT_COMPUTE_UNITS
    priority_fee: int = 0
    skip_preflight: bool = False
    preflight_commitment: str = "confirmed"
    max_attempts: int | None = None
    confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    send_max_retries: int | None = None


@dataclass
class TransactionEnvelope:
    """Caller-owned instructions and signers; never mutated by the orchestrator."""

    instructions: list[Instruction] = field(default_factory=list)
    signers: list[Signer] = field(default_factory=list)
    fee_payer: Pubkey | None = None

    def add(self, *instructions: Instruction) -> TransactionEnvelope:
        self.instructions.extend(instructions)
        return self

    def add_signers(self, *signers: Signer) -> TransactionEnvelope:
        self.signers.extend(signers)
        return self

    @property
    def payer(self) -> Pubkey:
        if self.fee_payer is not None:
            return self.fee_payer
        if not self.signers:
            raise ToolkitError("Transaction has no fee payer or signers", ErrorCode.MISSING_SIGNER)
        return self.signers[0].public_key


@dataclass(slots=True)
class PreparedTransaction:
    """One attempt's working copy of an envelope."""

    instructions: list[Instruction]
    signers: list[Signer]
    payer: Pubkey
    state: TransactionState = TransactionState.BUILT
    blockhash: str | None = None
    last_valid_block_height: int | None = None
    message: Message | None = None
    transaction: Transaction | None = None

    @property
    def signature(self) -> str | None:
        if self.transaction is None:
            return None
        return str(self.transaction.signatures[0])

    def wire(self) -> str:
        if self.transaction is None:
            raise RuntimeError("Transaction has not been signed")
        return base64.b64encode(bytes(self.transaction)).decode("ascii")


@dataclass(slots=True)
class TransactionResult:
    signature: str
    slot: int | None
    confirmation_status: str | None
    state: TransactionState = TransactionState.CONFIRMED

    def as_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "slot": self.slot,
            "confirmation_status": self.confirmation_status,
            "state": self.state.value,
        }


@dataclass(slots=True)
class SimulationResult:
    err: Any
    logs: list[str]
    units_consumed: int | None
    accounts: list[Any] | None

    @property
    def success(self) -> bool:
        return self.err is None


@dataclass(slots=True)
class FeeEstimate:
    lamports: int
    sol: float
    formatted: str


def augment_instructions(instructions: Iterable[Instruction], options: TransactionOptions) -> list[Instruction]:
    """Append compute-budget instructions after the caller's instructions."""
    augmented = list(instructions)
    if options.compute_units != DEFAULT_COMPUTE_UNITS:
        augmented.append(set_compute_unit_limit(options.compute_units))
    if options.priority_fee > 0:
        augmented.append(set_compute_unit_price(options.priority_fee))
    return augmented


class TransactionOrchestrator:
    """Turns an envelope into a submitted, confirmed transaction."""

    def __init__(
        self,
        connection: ConnectionManager,
        *,
        logger: Logger | None = None,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
        default_options: TransactionOptions | None = None,
    ) -> None:
        self._connection = connection
        self.default_options = default_options or TransactionOptions()
        self._log = logger or NullLogger()
        self._sleep = sleep or time.sleep
        self._clock = clock or time.monotonic

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def execute(self, envelope: TransactionEnvelope, options: TransactionOptions | None = None) -> TransactionResult:
        """Build, stamp, sign, submit and confirm ``envelope`` with retries."""
        opts = options or self.default_options
        self._validate(envelope)

        def lifecycle(rpc: LedgerRPC) -> TransactionResult:
            prepared = self.prepare(envelope, opts)
            self._stamp(rpc, prepared)
            self._sign(prepared)
            signature = self._submit(rpc, prepared, opts)
            result = self.await_confirmation(
                rpc,
                signature,
                last_valid_block_height=prepared.last_valid_block_height,
                options=opts,
            )
            prepared.state = result.state
            return result

        result = self._connection.execute(
            lifecycle,
            policy=self._policy_for(opts),
            name="execute_transaction",
            context={"instructions": len(envelope.instructions)},
        )
        self._log.info(
            "Transaction executed successfully",
            {"signature": result.signature, "slot": result.slot},
        )
        return result

    def prepare(self, envelope: TransactionEnvelope, options: TransactionOptions) -> PreparedTransaction:
        """Copy the envelope for one attempt and append budget instructions."""
        prepared = PreparedTransaction(
            instructions=list(envelope.instructions),
            signers=list(envelope.signers),
            payer=envelope.payer,
        )
        prepared.instructions = augment_instructions(prepared.instructions, options)
        prepared.state = TransactionState.BUDGET_AUGMENTED
        return prepared

    def simulate(self, envelope: TransactionEnvelope, options: TransactionOptions | None = None) -> SimulationResult:
        opts = options or self.default_options
        self._validate(envelope)

        def simulate_once(rpc: LedgerRPC) -> SimulationResult:
            prepared = self.prepare(envelope, opts)
            self._stamp(rpc, prepared)
            message = self._sign(prepared)
            value = rpc.simulate_transaction(
                prepared.wire(),
                sig_verify=False,
                replace_recent_blockhash=True,
                account_addresses=[str(key) for key in message.account_keys],
            )
            return SimulationResult(
                err=value.get("err"),
                logs=list(value.get("logs") or []),
                units_consumed=value.get("unitsConsumed"),
                accounts=value.get("accounts"),
            )

        return self._connection.execute(simulate_once, policy=self._policy_for(opts), name="simulate_transaction")

    def estimate_fee(self, envelope: TransactionEnvelope, options: TransactionOptions | None = None) -> FeeEstimate:
        opts = options or self.default_options
        self._validate(envelope)

        def estimate_once(rpc: LedgerRPC) -> FeeEstimate:
            prepared = self.prepare(envelope, opts)
            self._stamp(rpc, prepared)
            message = self._compile(prepared)
            fee = rpc.get_fee_for_message(base64.b64encode(bytes(message)).decode("ascii"))
            if fee is None:
                raise SolanaRPCError("Fee unavailable; blockhash expired")
            return FeeEstimate(
                lamports=fee,
                sol=fee / LAMPORTS_PER_SOL,
                formatted=f"{fee / LAMPORTS_PER_SOL:.9f} SOL",
            )

        return self._connection.execute(estimate_once, policy=self._policy_for(opts), name="estimate_fee")

    def await_confirmation(
        self,
        rpc: LedgerRPC,
        signature: str,
        *,
        last_valid_block_height: int | None = None,
        options: TransactionOptions | None = None,
    ) -> TransactionResult:
        """Poll signature status until confirmed, rejected, expired or timed out."""
        opts = options or self.default_options
        target = _COMMITMENT_RANK.get(rpc.commitment, 1)
        deadline = self._clock() + opts.confirm_timeout

        while True:
            statuses = rpc.get_signature_statuses([signature])
            status = statuses[0] if statuses else None
            if status is not None:
                if status.get("err") is not None:
                    raise ToolkitError(
                        f"Transaction failed: {status['err']}",
                        ErrorCode.TRANSACTION_REJECTED,
                        {
                            "signature": signature,
                            "error": status["err"],
                            "slot": status.get("slot"),
                            "state": TransactionState.FAILED.value,
                        },
                    )
                level = _confirmation_level(status)
                if _COMMITMENT_RANK.get(level, 0) >= target:
                    return TransactionResult(
                        signature=signature,
                        slot=status.get("slot"),
                        confirmation_status=level,
                    )
            elif last_valid_block_height is not None and rpc.get_block_height() > last_valid_block_height:
                raise ToolkitError(
                    "Blockhash expired before the transaction was confirmed",
                    ErrorCode.BLOCKHASH_EXPIRED,
                    {"signature": signature, "last_valid_block_height": last_valid_block_height},
                )

            if self._clock() >= deadline:
                raise ToolkitError(
                    f"Transaction confirmation timed out after {opts.confirm_timeout:.1f}s; outcome unknown",
                    ErrorCode.TRANSACTION_AMBIGUOUS,
                    {
                        "signature": signature,
                        "timeout": opts.confirm_timeout,
                        "state": TransactionState.TIMED_OUT.value,
                    },
                )
            self._sleep(opts.poll_interval)

    # ------------------------------------------------------------------
    # Lifecycle steps
    # ------------------------------------------------------------------
    def _stamp(self, rpc: LedgerRPC, prepared: PreparedTransaction) -> None:
        prepared.blockhash, prepared.last_valid_block_height = rpc.get_latest_blockhash()
        prepared.state = TransactionState.STAMPED
        logger.debug("Stamped transaction with blockhash %s", prepared.blockhash)

    def _compile(self, prepared: PreparedTransaction) -> Message:
        if prepared.blockhash is None:
            raise RuntimeError("Transaction must be stamped before compiling")
        try:
            blockhash = Hash.from_string(prepared.blockhash)
        except Exception as exc:  # noqa: BLE001
            raise SolanaRPCError(f"Invalid blockhash returned by RPC: {prepared.blockhash}") from exc
        message = Message.new_with_blockhash(prepared.instructions, prepared.payer, blockhash)
        prepared.message = message
        return message

    def _sign(self, prepared: PreparedTransaction) -> Message:
        message = self._compile(prepared)
        message_bytes = bytes(message)
        signatures: dict[Pubkey, Signature] = {}
        for signer in prepared.signers:
            if signer.public_key not in signatures:
                signatures[signer.public_key] = Signature.from_bytes(signer.sign(message_bytes))

        required = list(message.account_keys[: message.header.num_required_signatures])
        missing = [str(key) for key in required if key not in signatures]
        if missing:
            raise ToolkitError(
                "Transaction is missing required signers",
                ErrorCode.MISSING_SIGNER,
                {"missing_signers": missing},
            )
        prepared.transaction = Transaction.populate(message, [signatures[key] for key in required])
        prepared.state = TransactionState.SIGNED
        return message

    def _submit(self, rpc: LedgerRPC, prepared: PreparedTransaction, options: TransactionOptions) -> str:
        try:
            signature = rpc.send_transaction(
                prepared.wire(),
                skip_preflight=options.skip_preflight,
                preflight_commitment=options.preflight_commitment,
                max_retries=options.send_max_retries,
            )
        except SolanaRPCError as exc:
            rejection = _preflight_rejection(exc)
            if rejection is None:
                raise
            prepared.state = TransactionState.FAILED
            raise ToolkitError(
                f"Transaction rejected during preflight: {exc}",
                ErrorCode.TRANSACTION_REJECTED,
                {
                    "signature": prepared.signature,
                    "error": rejection.get("err"),
                    "logs": rejection.get("logs") or [],
                    "state": TransactionState.FAILED.value,
                },
            ) from exc
        prepared.state = TransactionState.SUBMITTED
        logger.debug("Submitted transaction %s", signature)
        return signature

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _policy_for(self, options: TransactionOptions) -> RetryPolicy | None:
        if options.max_attempts is None:
            return None
        return replace(self._connection.policy, max_attempts=options.max_attempts)

    @staticmethod
    def _validate(envelope: TransactionEnvelope) -> None:
        if not envelope.instructions:
            raise ToolkitError("Transaction has no instructions", ErrorCode.INVALID_INPUT)
        if envelope.fee_payer is None and not envelope.signers:
            raise ToolkitError("Transaction has no fee payer or signers", ErrorCode.MISSING_SIGNER)


def _confirmation_level(status: dict[str, Any]) -> str:
    level = status.get("confirmationStatus")
    if level:
        return str(level)
    # Older nodes omit confirmationStatus; rooted transactions report no confirmations.
    return "finalized" if status.get("confirmations") is None else "processed"


def _preflight_rejection(exc: SolanaRPCError) -> dict[str, Any] | None:
    """Return the simulation payload when preflight reported a program error."""
    data = exc.data
    if not isinstance(data, dict) or data.get("err") is None:
        return None
    err_text = str(data.get("err"))
    if any(token in err_text for token in _BLOCKHASH_ERRORS):
        return None
    return data


__all__ = [
    "DEFAULT_COMPUTE_UNITS",
    "FeeEstimate",
    "PreparedTransaction",
    "SimulationResult",
    "TransactionEnvelope",
    "TransactionOptions",
    "TransactionOrchestrator",
    "TransactionResult",
    "TransactionState",
    "augment_instructions",
]
