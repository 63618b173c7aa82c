"""Account queries, keypair creation and airdrops."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from solkit.core.errors import ErrorCode, ToolkitError, error_context
from solkit.core.logs import Logger, NullLogger
from solkit.solana.connection import ConnectionManager
from solkit.solana.instructions import TOKEN_PROGRAM_ID
from solkit.solana.keys import Keypair, to_pubkey
from solkit.solana.rpc import LAMPORTS_PER_SOL, LedgerRPC
from solkit.solana.transaction import TransactionOrchestrator

logger = logging.getLogger(__name__)

MAX_AIRDROP_LAMPORTS = 2 * LAMPORTS_PER_SOL


@dataclass(slots=True)
class Balance:
    lamports: int
    sol: float
    formatted: str

    @classmethod
    def from_lamports(cls, lamports: int) -> Balance:
        sol = lamports / LAMPORTS_PER_SOL
        return cls(lamports=lamports, sol=sol, formatted=f"{sol:.9f} SOL")


@dataclass(slots=True)
class AccountInfo:
    public_key: str
    lamports: int
    owner: str
    executable: bool
    rent_epoch: int | None
    data: Any

    @classmethod
    def from_rpc(cls, public_key: str, value: dict[str, Any]) -> AccountInfo:
        return cls(
            public_key=public_key,
            lamports=int(value.get("lamports", 0)),
            owner=str(value.get("owner", "")),
            executable=bool(value.get("executable", False)),
            rent_epoch=value.get("rentEpoch"),
            data=value.get("data"),
        )

    @property
    def data_size(self) -> int | None:
        space = None
        if isinstance(self.data, dict):
            space = self.data.get("space")
        return space


@dataclass(slots=True)
class AirdropResult:
    signature: str
    lamports: int
    sol: float


class AccountService:
    """Account-level operations, all routed through the connection's retry gate."""

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

    def create_account(self) -> Keypair:
        keypair = Keypair.generate()
        self._log.info("New account created", {"public_key": str(keypair.public_key)})
        return keypair

    def restore_account(self, secret: str | bytes | list[int]) -> Keypair:
        with error_context("restore_account"):
            keypair = Keypair.from_secret(secret)
        self._log.info("Account restored from secret key", {"public_key": str(keypair.public_key)})
        return keypair

    @staticmethod
    def validate_public_key(public_key: str) -> bool:
        try:
            to_pubkey(public_key)
        except ToolkitError:
            return False
        return True

    def get_account_info(self, public_key: str) -> AccountInfo:
        with error_context("get_account_info", public_key=public_key):
            address = str(to_pubkey(public_key))

            def fetch(rpc: LedgerRPC) -> AccountInfo:
                value = rpc.get_account_info(address)
                if value is None:
                    raise ToolkitError("Account not found", ErrorCode.NOT_FOUND, {"public_key": address})
                return AccountInfo.from_rpc(address, value)

            return self._connection.execute(fetch, name="get_account_info")

    def get_balance(self, public_key: str) -> Balance:
        with error_context("get_balance", public_key=public_key):
            address = str(to_pubkey(public_key))
            lamports = self._connection.execute(lambda rpc: rpc.get_balance(address), name="get_balance")
            logger.debug("Fetched balance %d lamports for %s", lamports, address)
            return Balance.from_lamports(lamports)

    def request_airdrop(self, public_key: str, lamports: int = LAMPORTS_PER_SOL) -> AirdropResult:
        with error_context("request_airdrop", public_key=public_key, lamports=lamports):
            address = str(to_pubkey(public_key))
            if lamports <= 0 or lamports > MAX_AIRDROP_LAMPORTS:
                raise ToolkitError(
                    "Airdrop amount must be between 1 lamport and 2 SOL",
                    ErrorCode.INVALID_INPUT,
                    {"lamports": lamports, "max_allowed": MAX_AIRDROP_LAMPORTS},
                )

            def airdrop(rpc: LedgerRPC) -> str:
                signature = rpc.request_airdrop(address, lamports)
                self._orchestrator.await_confirmation(rpc, signature)
                return signature

            signature = self._connection.execute(airdrop, name="request_airdrop")
            self._log.info("Airdrop completed", {"public_key": address, "lamports": lamports, "signature": signature})
            return AirdropResult(signature=signature, lamports=lamports, sol=lamports / LAMPORTS_PER_SOL)

    def get_multiple_accounts(self, public_keys: list[str]) -> list[tuple[str, AccountInfo | None]]:
        with error_context("get_multiple_accounts", public_keys=public_keys):
            if not public_keys:
                raise ToolkitError("Public keys must be a non-empty list", ErrorCode.INVALID_INPUT)
            addresses = [str(to_pubkey(key)) for key in public_keys]
            values = self._connection.execute(
                lambda rpc: rpc.get_multiple_accounts(addresses),
                name="get_multiple_accounts",
            )
            return [
                (address, AccountInfo.from_rpc(address, value) if value is not None else None)
                for address, value in zip(addresses, values)
            ]

    def get_account_history(self, public_key: str, limit: int = 100) -> list[dict[str, Any]]:
        """Signatures for ``public_key`` with their full transactions where available."""
        with error_context("get_account_history", public_key=public_key, limit=limit):
            address = str(to_pubkey(public_key))

            def fetch(rpc: LedgerRPC) -> list[dict[str, Any]]:
                history: list[dict[str, Any]] = []
                for entry in rpc.get_signatures_for_address(address, limit=limit):
                    item = {
                        "signature": entry.get("signature"),
                        "slot": entry.get("slot"),
                        "err": entry.get("err"),
                        "memo": entry.get("memo"),
                        "block_time": entry.get("blockTime"),
                        "transaction": None,
                    }
                    try:
                        item["transaction"] = rpc.get_transaction(str(entry.get("signature")))
                    except Exception as exc:  # noqa: BLE001
                        item["error"] = str(exc)
                    history.append(item)
                return history

            return self._connection.execute(fetch, name="get_account_history")

    def get_token_accounts(self, public_key: str) -> list[dict[str, Any]]:
        with error_context("get_token_accounts", public_key=public_key):
            address = str(to_pubkey(public_key))
            accounts = self._connection.execute(
                lambda rpc: rpc.get_token_accounts_by_owner(address, program_id=str(TOKEN_PROGRAM_ID)),
                name="get_token_accounts",
            )
            return [_parse_token_account(account) for account in accounts]

    def get_minimum_balance_for_rent_exemption(self, data_length: int) -> int:
        with error_context("get_minimum_balance_for_rent_exemption", data_length=data_length):
            if data_length < 0:
                raise ToolkitError("Data length must not be negative", ErrorCode.INVALID_INPUT)
            return self._connection.execute(
                lambda rpc: rpc.get_minimum_balance_for_rent_exemption(data_length),
                name="get_minimum_balance_for_rent_exemption",
            )


def _parse_token_account(account: dict[str, Any]) -> dict[str, Any]:
    info = account["account"]["data"]["parsed"]["info"]
    amount = info.get("tokenAmount", {})
    return {
        "pubkey": account.get("pubkey"),
        "mint": info.get("mint"),
        "owner": info.get("owner"),
        "amount": amount.get("uiAmount"),
        "raw_amount": int(amount.get("amount", 0)),
        "decimals": amount.get("decimals"),
    }


__all__ = ["AccountInfo", "AccountService", "AirdropResult", "Balance", "MAX_AIRDROP_LAMPORTS"]
