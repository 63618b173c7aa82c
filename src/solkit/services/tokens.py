"""SPL token operations built on the transaction orchestrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from solkit.core.errors import ErrorCode, ToolkitError, error_context
from solkit.core.logs import Logger, NullLogger
from solkit.solana import instructions as ix
from solkit.solana.connection import ConnectionManager
from solkit.solana.keys import Keypair, Signer, to_pubkey
from solkit.solana.rpc import LedgerRPC
from solkit.solana.transaction import (
    TransactionEnvelope,
    TransactionOptions,
    TransactionOrchestrator,
    TransactionResult,
)

logger = logging.getLogger(__name__)

MINT_COMPUTE_UNITS = 400_000


@dataclass(slots=True)
class MintCreation:
    mint: str
    decimals: int
    signature: str


@dataclass(slots=True)
class TokenAccountCreation:
    address: str
    created: bool
    signature: str | None = None


@dataclass(slots=True)
class TokenBalance:
    amount: int
    decimals: int
    ui_amount: float | None

    @classmethod
    def from_parsed(cls, token_amount: dict[str, Any]) -> TokenBalance:
        return cls(
            amount=int(token_amount.get("amount", 0)),
            decimals=int(token_amount.get("decimals", 0)),
            ui_amount=token_amount.get("uiAmount"),
        )


class TokenService:
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

    # ------------------------------------------------------------------
    # Addresses and accounts
    # ------------------------------------------------------------------
    @staticmethod
    def get_associated_token_address(owner: str, mint: str) -> str:
        with error_context("get_associated_token_address", owner=owner, mint=mint):
            address = ix.get_associated_token_address(
                to_pubkey(owner, field="owner"),
                to_pubkey(mint, field="mint"),
            )
            return str(address)

    def create_mint(
        self,
        payer: Signer,
        mint_authority: str,
        *,
        decimals: int = 9,
        freeze_authority: str | None = None,
        mint: Keypair | None = None,
        options: TransactionOptions | None = None,
    ) -> MintCreation:
        """Create and initialise a new mint account owned by the token program."""
        with error_context("create_mint", payer=str(payer.public_key), decimals=decimals):
            if not 0 <= decimals <= 255:
                raise ToolkitError("Decimals must be between 0 and 255", ErrorCode.INVALID_INPUT, {"decimals": decimals})
            mint_keypair = mint or Keypair.generate()
            authority = to_pubkey(mint_authority, field="mint_authority")
            freeze = to_pubkey(freeze_authority, field="freeze_authority") if freeze_authority else None
            rent = self._connection.execute(
                lambda rpc: rpc.get_minimum_balance_for_rent_exemption(ix.MINT_SIZE),
                name="get_minimum_balance_for_rent_exemption",
            )
            logger.debug("Mint rent exemption is %d lamports", rent)

            envelope = TransactionEnvelope(signers=[payer, mint_keypair])
            envelope.add(
                ix.create_program_account(
                    payer.public_key,
                    mint_keypair.public_key,
                    lamports=rent,
                    space=ix.MINT_SIZE,
                    owner=ix.TOKEN_PROGRAM_ID,
                ),
                ix.initialize_mint(
                    mint_keypair.public_key,
                    decimals=decimals,
                    mint_authority=authority,
                    freeze_authority=freeze,
                ),
            )
            opts = options or replace(self._orchestrator.default_options, compute_units=MINT_COMPUTE_UNITS)
            result = self._orchestrator.execute(envelope, opts)
            address = str(mint_keypair.public_key)
            self._log.info("Token mint created", {"mint": address, "decimals": decimals, "signature": result.signature})
            return MintCreation(mint=address, decimals=decimals, signature=result.signature)

    def create_associated_token_account(
        self,
        payer: Signer,
        owner: str,
        mint: str,
        options: TransactionOptions | None = None,
    ) -> TokenAccountCreation:
        with error_context("create_associated_token_account", owner=owner, mint=mint):
            owner_key = to_pubkey(owner, field="owner")
            mint_key = to_pubkey(mint, field="mint")
            envelope = TransactionEnvelope(signers=[payer])
            envelope.add(ix.create_associated_token_account(payer.public_key, owner_key, mint_key))
            result = self._orchestrator.execute(envelope, options)
            address = str(ix.get_associated_token_address(owner_key, mint_key))
            return TokenAccountCreation(address=address, created=True, signature=result.signature)

    def get_or_create_associated_token_account(
        self,
        payer: Signer,
        owner: str,
        mint: str,
        options: TransactionOptions | None = None,
    ) -> TokenAccountCreation:
        address = self.get_associated_token_address(owner, mint)
        with error_context("get_or_create_associated_token_account", owner=owner, mint=mint):
            existing = self._connection.execute(
                lambda rpc: rpc.get_account_info(address),
                name="get_account_info",
            )
        if existing is not None:
            return TokenAccountCreation(address=address, created=False)
        return self.create_associated_token_account(payer, owner, mint, options)

    # ------------------------------------------------------------------
    # Token movements
    # ------------------------------------------------------------------
    def transfer(
        self,
        owner: Signer,
        source: str,
        destination: str,
        amount: int,
        options: TransactionOptions | None = None,
    ) -> TransactionResult:
        with error_context("transfer_tokens", source=source, destination=destination, amount=amount):
            envelope = TransactionEnvelope(signers=[owner])
            envelope.add(
                ix.token_transfer(
                    to_pubkey(source, field="source"),
                    to_pubkey(destination, field="destination"),
                    owner.public_key,
                    amount,
                )
            )
            return self._orchestrator.execute(envelope, options)

    def mint_to(
        self,
        authority: Signer,
        mint: str,
        destination: str,
        amount: int,
        options: TransactionOptions | None = None,
    ) -> TransactionResult:
        with error_context("mint_tokens", mint=mint, destination=destination, amount=amount):
            envelope = TransactionEnvelope(signers=[authority])
            envelope.add(
                ix.token_mint_to(
                    to_pubkey(mint, field="mint"),
                    to_pubkey(destination, field="destination"),
                    authority.public_key,
                    amount,
                )
            )
            return self._orchestrator.execute(envelope, options)

    def burn(
        self,
        owner: Signer,
        account: str,
        mint: str,
        amount: int,
        options: TransactionOptions | None = None,
    ) -> TransactionResult:
        with error_context("burn_tokens", account=account, mint=mint, amount=amount):
            envelope = TransactionEnvelope(signers=[owner])
            envelope.add(
                ix.token_burn(
                    to_pubkey(account, field="account"),
                    to_pubkey(mint, field="mint"),
                    owner.public_key,
                    amount,
                )
            )
            return self._orchestrator.execute(envelope, options)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_token_account_info(self, address: str) -> dict[str, Any]:
        with error_context("get_token_account_info", address=address):
            info = self._parsed_info(address, kind="Token account")
            return {
                "address": address,
                "mint": info.get("mint"),
                "owner": info.get("owner"),
                "state": info.get("state"),
                "balance": TokenBalance.from_parsed(info.get("tokenAmount", {})),
            }

    def get_mint_info(self, mint: str) -> dict[str, Any]:
        with error_context("get_mint_info", mint=mint):
            info = self._parsed_info(mint, kind="Mint")
            return {
                "address": mint,
                "decimals": info.get("decimals"),
                "supply": int(info.get("supply", 0)),
                "mint_authority": info.get("mintAuthority"),
                "freeze_authority": info.get("freezeAuthority"),
                "is_initialized": bool(info.get("isInitialized", False)),
            }

    def get_token_balance(self, address: str) -> TokenBalance:
        with error_context("get_token_balance", address=address):
            info = self._parsed_info(address, kind="Token account")
            return TokenBalance.from_parsed(info.get("tokenAmount", {}))

    def get_token_accounts_by_owner(self, owner: str) -> list[dict[str, Any]]:
        with error_context("get_token_accounts_by_owner", owner=owner):
            owner_key = str(to_pubkey(owner, field="owner"))
            accounts = self._connection.execute(
                lambda rpc: rpc.get_token_accounts_by_owner(owner_key, program_id=str(ix.TOKEN_PROGRAM_ID)),
                name="get_token_accounts_by_owner",
            )
            results = []
            for account in accounts:
                info = account["account"]["data"]["parsed"]["info"]
                results.append(
                    {
                        "address": account.get("pubkey"),
                        "mint": info.get("mint"),
                        "balance": TokenBalance.from_parsed(info.get("tokenAmount", {})),
                    }
                )
            return results

    def _parsed_info(self, address: str, *, kind: str) -> dict[str, Any]:
        key = str(to_pubkey(address, field="address"))

        def fetch(rpc: LedgerRPC) -> dict[str, Any]:
            value = rpc.get_account_info(key, encoding="jsonParsed")
            if value is None:
                raise ToolkitError(f"{kind} not found", ErrorCode.NOT_FOUND, {"address": key})
            data = value.get("data")
            if not isinstance(data, dict) or "parsed" not in data:
                raise ToolkitError(
                    f"Account is not a parsed SPL token account: {key}",
                    ErrorCode.INVALID_INPUT,
                    {"address": key, "owner": value.get("owner")},
                )
            return data["parsed"].get("info", {})

        return self._connection.execute(fetch, name=f"get_{kind.lower().replace(' ', '_')}_info")


__all__ = [
    "MINT_COMPUTE_UNITS",
    "MintCreation",
    "TokenAccountCreation",
    "TokenBalance",
    "TokenService",
]
