from __future__ import annotations

import base64
from collections.abc import Iterator
from typing import Any

import pytest
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from solkit.solana.connection import ConnectionManager
from solkit.solana.retry import RetryPolicy
from solkit.solana.transaction import TransactionOrchestrator

CONFIRMED = {"slot": 321, "confirmations": 1, "err": None, "confirmationStatus": "confirmed"}


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays and advances the paired clock instead of blocking."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)


class FakeLedger:
    """In-memory stand-in for the JSON-RPC client."""

    def __init__(self, endpoint: str = "https://fake.rpc", commitment: str = "confirmed") -> None:
        self.endpoint = endpoint
        self.commitment = commitment
        self.calls: list[str] = []
        self.failures: dict[str, list[BaseException]] = {}
        self.slot = 100
        self.block_height = 1_000
        self.last_valid_block_height = 1_150
        self.balances: dict[str, int] = {}
        self.accounts: dict[str, dict[str, Any]] = {}
        self.parsed_accounts: dict[str, dict[str, Any]] = {}
        self.transactions: dict[str, dict[str, Any]] = {}
        self.signatures: dict[str, list[dict[str, Any]]] = {}
        self.token_accounts: dict[str, list[dict[str, Any]]] = {}
        self.program_accounts: dict[str, list[dict[str, Any]]] = {}
        self.program_account_options: list[dict[str, Any]] = []
        self.rent = 1_461_600
        self.fee: int | None = 5_000
        self.simulation: dict[str, Any] = {"err": None, "logs": ["Program log: ok"], "unitsConsumed": 150}
        self.blockhashes: list[str] = []
        self.sent: list[Transaction] = []
        self.send_options: list[dict[str, Any]] = []
        # Status reported for every submitted signature; None means "not seen yet".
        self.status: dict[str, Any] | None = dict(CONFIRMED)
        self.airdrops: list[tuple[str, int]] = []
        self.closed = False

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------
    def fail(self, method: str, *errors: BaseException) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def count(self, method: str) -> int:
        return self.calls.count(method)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    # ------------------------------------------------------------------
    # LedgerRPC
    # ------------------------------------------------------------------
    def get_slot(self) -> int:
        self._enter("get_slot")
        return self.slot

    def get_block_height(self) -> int:
        self._enter("get_block_height")
        return self.block_height

    def get_balance(self, public_key: str) -> int:
        self._enter("get_balance")
        return self.balances.get(public_key, 0)

    def get_account_info(self, public_key: str, *, encoding: str = "base64") -> dict[str, Any] | None:
        self._enter("get_account_info")
        if encoding == "jsonParsed" and public_key in self.parsed_accounts:
            return self.parsed_accounts[public_key]
        return self.accounts.get(public_key)

    def get_multiple_accounts(self, public_keys: list[str], *, encoding: str = "base64") -> list[dict[str, Any] | None]:
        self._enter("get_multiple_accounts")
        return [self.accounts.get(key) for key in public_keys]

    def get_program_accounts(self, program_id: str, **config: Any) -> list[dict[str, Any]]:
        self._enter("get_program_accounts")
        self.program_account_options.append(config)
        return self.program_accounts.get(program_id, [])

    def get_token_accounts_by_owner(self, owner: str, *, program_id: str) -> list[dict[str, Any]]:
        self._enter("get_token_accounts_by_owner")
        return self.token_accounts.get(owner, [])

    def get_signatures_for_address(self, address: str, *, limit: int = 20) -> list[dict[str, Any]]:
        self._enter("get_signatures_for_address")
        return self.signatures.get(address, [])[:limit]

    def get_transaction(self, signature: str) -> dict[str, Any] | None:
        self._enter("get_transaction")
        return self.transactions.get(signature)

    def get_latest_blockhash(self) -> tuple[str, int]:
        self._enter("get_latest_blockhash")
        blockhash = str(Hash.new_unique())
        self.blockhashes.append(blockhash)
        return blockhash, self.last_valid_block_height

    def get_fee_for_message(self, message_b64: str) -> int | None:
        self._enter("get_fee_for_message")
        return self.fee

    def get_minimum_balance_for_rent_exemption(self, data_length: int) -> int:
        self._enter("get_minimum_balance_for_rent_exemption")
        return self.rent

    def send_transaction(self, wire_b64: str, **opts: Any) -> str:
        self._enter("send_transaction")
        transaction = Transaction.from_bytes(base64.b64decode(wire_b64))
        self.sent.append(transaction)
        self.send_options.append(opts)
        return str(transaction.signatures[0])

    def simulate_transaction(self, wire_b64: str, **opts: Any) -> dict[str, Any]:
        self._enter("simulate_transaction")
        return dict(self.simulation)

    def get_signature_statuses(self, signatures: list[str]) -> list[dict[str, Any] | None]:
        self._enter("get_signature_statuses")
        return [dict(self.status) if self.status is not None else None for _ in signatures]

    def request_airdrop(self, public_key: str, lamports: int) -> str:
        self._enter("request_airdrop")
        self.airdrops.append((public_key, lamports))
        return f"airdrop-{len(self.airdrops)}"

    def close(self) -> None:
        self.closed = True


def program_ids(transaction: Transaction) -> list[Pubkey]:
    """Program id of every instruction in a submitted transaction, in order."""
    keys = transaction.message.account_keys
    return [keys[instruction.program_id_index] for instruction in transaction.message.instructions]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def manager(ledger: FakeLedger, sleep: FakeSleep, clock: FakeClock) -> Iterator[ConnectionManager]:
    def factory(endpoint: str, commitment: str) -> FakeLedger:
        ledger.endpoint = endpoint
        ledger.commitment = commitment
        return ledger

    connection = ConnectionManager(
        "https://fake.rpc",
        policy=RetryPolicy(max_attempts=3, base_delay=1.0),
        health_check_interval=3600,
        client_factory=factory,
        sleep=sleep,
        clock=clock,
    )
    connection.start()
    yield connection
    connection.close()


@pytest.fixture()
def orchestrator(manager: ConnectionManager, sleep: FakeSleep, clock: FakeClock) -> TransactionOrchestrator:
    return TransactionOrchestrator(manager, sleep=sleep, clock=clock)
