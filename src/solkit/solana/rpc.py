"""Solana JSON-RPC helpers."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from importlib import metadata
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000

try:
    _VERSION = metadata.version("solkit")
except metadata.PackageNotFoundError:  # pragma: no cover - running from a checkout
    _VERSION = "0.0.0"

USER_AGENT = f"solkit/{_VERSION}"


class SolanaRPCError(RuntimeError):
    """Raised when Solana RPC calls fail."""

    def __init__(self, message: str, *, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class LedgerRPC(Protocol):
    """Capabilities the resilient execution layer needs from an RPC provider."""

    endpoint: str
    commitment: str

    # Liveness
    def get_slot(self) -> int: ...

    # Reads
    def get_account_info(self, public_key: str, *, encoding: str = "base64") -> dict[str, Any] | None: ...

    def get_multiple_accounts(self, public_keys: list[str], *, encoding: str = "base64") -> list[dict[str, Any] | None]: ...

    def get_balance(self, public_key: str) -> int: ...

    def get_program_accounts(self, program_id: str, **config: Any) -> list[dict[str, Any]]: ...

    def get_token_accounts_by_owner(self, owner: str, *, program_id: str) -> list[dict[str, Any]]: ...

    def get_signatures_for_address(self, address: str, *, limit: int = 20) -> list[dict[str, Any]]: ...

    def get_transaction(self, signature: str) -> dict[str, Any] | None: ...

    # Blockhash, fees, rent
    def get_latest_blockhash(self) -> tuple[str, int]: ...

    def get_block_height(self) -> int: ...

    def get_fee_for_message(self, message_b64: str) -> int | None: ...

    def get_minimum_balance_for_rent_exemption(self, data_length: int) -> int: ...

    # Submission
    def send_transaction(self, wire_b64: str, **opts: Any) -> str: ...

    def simulate_transaction(self, wire_b64: str, **opts: Any) -> dict[str, Any]: ...

    def get_signature_statuses(self, signatures: list[str]) -> list[dict[str, Any] | None]: ...

    def request_airdrop(self, public_key: str, lamports: int) -> str: ...

    def close(self) -> None: ...


@dataclass
class SolanaRPCClient:
    """Thin wrapper around Solana's JSON-RPC interface."""

    endpoint: str
    commitment: str = "confirmed"
    timeout: float = 30.0
    client: httpx.Client | None = None
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)
    _owns_client: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = httpx.Client(timeout=self.timeout, headers={"User-Agent": USER_AGENT})
            self._owns_client = True

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Issue a JSON-RPC request and return its ``result`` field."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = self.client.post(self.endpoint, json=payload)  # type: ignore[union-attr]
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise SolanaRPCError(f"RPC request failed with status {status}: {method}", code=status) from exc
        except httpx.HTTPError as exc:
            raise SolanaRPCError(f"RPC request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise SolanaRPCError("Invalid JSON in RPC response") from exc

        if not isinstance(data, dict):
            raise SolanaRPCError("Malformed RPC response")
        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                raise SolanaRPCError(
                    error.get("message", "Unknown RPC error"),
                    code=error.get("code"),
                    data=error.get("data"),
                )
            raise SolanaRPCError(str(error))
        if "result" not in data:
            raise SolanaRPCError(f"Malformed RPC response; missing result for {method}")
        logger.debug("RPC %s ok", method)
        return data["result"]

    def close(self) -> None:
        """Dispose the underlying HTTP client if owned by this instance."""
        if self._owns_client and self.client is not None:
            self.client.close()

    def _config(self, **extra: Any) -> dict[str, Any]:
        config: dict[str, Any] = {"commitment": self.commitment}
        config.update({key: value for key, value in extra.items() if value is not None})
        return config

    @staticmethod
    def _value(result: Any, what: str) -> Any:
        try:
            return result["value"]
        except (KeyError, TypeError) as exc:
            raise SolanaRPCError(f"Malformed RPC response; missing {what} value") from exc

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------
    def get_slot(self) -> int:
        return int(self.call("getSlot", [self._config()]))

    def get_block_height(self) -> int:
        return int(self.call("getBlockHeight", [self._config()]))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_balance(self, public_key: str) -> int:
        """Return balance for `public_key` in lamports."""
        lamports = self._value(self.call("getBalance", [public_key, self._config()]), "balance")
        if not isinstance(lamports, int):
            raise SolanaRPCError("Balance value is not an integer")
        return lamports

    def get_account_info(self, public_key: str, *, encoding: str = "base64") -> dict[str, Any] | None:
        result = self.call("getAccountInfo", [public_key, self._config(encoding=encoding)])
        return self._value(result, "account")

    def get_multiple_accounts(
        self, public_keys: list[str], *, encoding: str = "base64"
    ) -> list[dict[str, Any] | None]:
        result = self.call("getMultipleAccounts", [public_keys, self._config(encoding=encoding)])
        return list(self._value(result, "accounts"))

    def get_program_accounts(self, program_id: str, **config: Any) -> list[dict[str, Any]]:
        options = self._config(
            encoding=config.get("encoding", "base64"),
            filters=config.get("filters") or None,
            dataSlice=config.get("data_slice"),
        )
        return list(self.call("getProgramAccounts", [program_id, options]))

    def get_token_accounts_by_owner(self, owner: str, *, program_id: str) -> list[dict[str, Any]]:
        result = self.call(
            "getTokenAccountsByOwner",
            [owner, {"programId": program_id}, self._config(encoding="jsonParsed")],
        )
        return list(self._value(result, "token accounts"))

    def get_signatures_for_address(self, address: str, *, limit: int = 20) -> list[dict[str, Any]]:
        return list(self.call("getSignaturesForAddress", [address, self._config(limit=limit)]))

    def get_transaction(self, signature: str) -> dict[str, Any] | None:
        options = self._config(encoding="json", maxSupportedTransactionVersion=0)
        if options["commitment"] == "processed":
            # getTransaction does not accept processed commitment.
            options["commitment"] = "confirmed"
        return self.call("getTransaction", [signature, options])

    # ------------------------------------------------------------------
    # Blockhash, fees, rent
    # ------------------------------------------------------------------
    def get_latest_blockhash(self) -> tuple[str, int]:
        """Return ``(blockhash, last_valid_block_height)``."""
        value = self._value(self.call("getLatestBlockhash", [self._config()]), "blockhash")
        try:
            return str(value["blockhash"]), int(value["lastValidBlockHeight"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SolanaRPCError("Malformed RPC response; missing blockhash fields") from exc

    def get_fee_for_message(self, message_b64: str) -> int | None:
        return self._value(self.call("getFeeForMessage", [message_b64, self._config()]), "fee")

    def get_minimum_balance_for_rent_exemption(self, data_length: int) -> int:
        return int(self.call("getMinimumBalanceForRentExemption", [data_length, self._config()]))

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def send_transaction(
        self,
        wire_b64: str,
        *,
        skip_preflight: bool = False,
        preflight_commitment: str = "confirmed",
        max_retries: int | None = None,
    ) -> str:
        options: dict[str, Any] = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": preflight_commitment,
        }
        if max_retries is not None:
            options["maxRetries"] = max_retries
        return str(self.call("sendTransaction", [wire_b64, options]))

    def simulate_transaction(
        self,
        wire_b64: str,
        *,
        sig_verify: bool = False,
        replace_recent_blockhash: bool = True,
        account_addresses: list[str] | None = None,
    ) -> dict[str, Any]:
        options = self._config(
            encoding="base64",
            sigVerify=sig_verify,
            replaceRecentBlockhash=replace_recent_blockhash,
        )
        if account_addresses:
            options["accounts"] = {"encoding": "base64", "addresses": account_addresses}
        return dict(self._value(self.call("simulateTransaction", [wire_b64, options]), "simulation"))

    def get_signature_statuses(self, signatures: list[str]) -> list[dict[str, Any] | None]:
        result = self.call("getSignatureStatuses", [signatures, {"searchTransactionHistory": False}])
        return list(self._value(result, "signature status"))

    def request_airdrop(self, public_key: str, lamports: int) -> str:
        return str(self.call("requestAirdrop", [public_key, lamports, self._config()]))


__all__ = ["LAMPORTS_PER_SOL", "LedgerRPC", "SolanaRPCClient", "SolanaRPCError", "USER_AGENT"]
