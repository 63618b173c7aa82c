"""Instruction builders for the programs solkit talks to."""

from __future__ import annotations

import struct
from collections.abc import Iterable, Mapping
from typing import Any

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import (
    CreateAccountParams,
    TransferParams,
    create_account,
    transfer,
)

from solkit.core.errors import ErrorCode, ToolkitError
from solkit.solana.keys import to_pubkey

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")
COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

MINT_SIZE = 82
TOKEN_ACCOUNT_SIZE = 165

# SPL token instruction tags
_TOKEN_TRANSFER = 3
_TOKEN_MINT_TO = 7
_TOKEN_BURN = 8
_TOKEN_INITIALIZE_MINT2 = 20
_ATA_CREATE_IDEMPOTENT = 1


# ----------------------------------------------------------------------
# Compute budget
# ----------------------------------------------------------------------
def set_compute_unit_limit(units: int) -> Instruction:
    data = bytes([0x02]) + struct.pack("<I", units)
    return Instruction(program_id=COMPUTE_BUDGET_PROGRAM_ID, data=data, accounts=[])


def set_compute_unit_price(micro_lamports: int) -> Instruction:
    data = bytes([0x03]) + struct.pack("<Q", micro_lamports)
    return Instruction(program_id=COMPUTE_BUDGET_PROGRAM_ID, data=data, accounts=[])


def is_compute_budget(instruction: Instruction) -> bool:
    return instruction.program_id == COMPUTE_BUDGET_PROGRAM_ID


# ----------------------------------------------------------------------
# System / memo
# ----------------------------------------------------------------------
def memo(text: str, signers: Iterable[Pubkey] = ()) -> Instruction:
    accounts = [AccountMeta(pubkey=key, is_signer=True, is_writable=False) for key in signers]
    return Instruction(program_id=MEMO_PROGRAM_ID, data=text.encode("utf-8"), accounts=accounts)


def transfer_lamports(sender: Pubkey, recipient: Pubkey, lamports: int) -> Instruction:
    return transfer(TransferParams(from_pubkey=sender, to_pubkey=recipient, lamports=lamports))


def create_program_account(
    payer: Pubkey,
    new_account: Pubkey,
    *,
    lamports: int,
    space: int,
    owner: Pubkey,
) -> Instruction:
    return create_account(
        CreateAccountParams(
            from_pubkey=payer,
            to_pubkey=new_account,
            lamports=lamports,
            space=space,
            owner=owner,
        )
    )


# ----------------------------------------------------------------------
# Generic program calls
# ----------------------------------------------------------------------
def account_meta(spec: AccountMeta | Mapping[str, Any]) -> AccountMeta:
    """Build an AccountMeta from ``{"pubkey", "is_signer", "is_writable"}``."""
    if isinstance(spec, AccountMeta):
        return spec
    if "pubkey" not in spec:
        raise ToolkitError("Account spec is missing 'pubkey'", ErrorCode.INVALID_INPUT, {"account": dict(spec)})
    return AccountMeta(
        pubkey=to_pubkey(spec["pubkey"], field="pubkey"),
        is_signer=bool(spec.get("is_signer", False)),
        is_writable=bool(spec.get("is_writable", False)),
    )


def program_instruction(
    program_id: Pubkey,
    data: bytes,
    accounts: Iterable[AccountMeta | Mapping[str, Any]] = (),
) -> Instruction:
    return Instruction(
        program_id=program_id,
        data=bytes(data),
        accounts=[account_meta(spec) for spec in accounts],
    )


# ----------------------------------------------------------------------
# SPL token
# ----------------------------------------------------------------------
def get_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def create_associated_token_account(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    associated = get_associated_token_address(owner, mint)
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=associated, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
        data=bytes([_ATA_CREATE_IDEMPOTENT]),
        accounts=accounts,
    )


def initialize_mint(
    mint: Pubkey,
    *,
    decimals: int,
    mint_authority: Pubkey,
    freeze_authority: Pubkey | None = None,
) -> Instruction:
    data = bytes([_TOKEN_INITIALIZE_MINT2, decimals]) + bytes(mint_authority)
    if freeze_authority is None:
        data += bytes([0])
    else:
        data += bytes([1]) + bytes(freeze_authority)
    accounts = [AccountMeta(pubkey=mint, is_signer=False, is_writable=True)]
    return Instruction(program_id=TOKEN_PROGRAM_ID, data=data, accounts=accounts)


def token_transfer(source: Pubkey, destination: Pubkey, owner: Pubkey, amount: int) -> Instruction:
    accounts = [
        AccountMeta(pubkey=source, is_signer=False, is_writable=True),
        AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=True, is_writable=False),
    ]
    return Instruction(program_id=TOKEN_PROGRAM_ID, data=_amount_data(_TOKEN_TRANSFER, amount), accounts=accounts)


def token_mint_to(mint: Pubkey, destination: Pubkey, authority: Pubkey, amount: int) -> Instruction:
    accounts = [
        AccountMeta(pubkey=mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
        AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
    ]
    return Instruction(program_id=TOKEN_PROGRAM_ID, data=_amount_data(_TOKEN_MINT_TO, amount), accounts=accounts)


def token_burn(account: Pubkey, mint: Pubkey, owner: Pubkey, amount: int) -> Instruction:
    accounts = [
        AccountMeta(pubkey=account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=True, is_writable=False),
    ]
    return Instruction(program_id=TOKEN_PROGRAM_ID, data=_amount_data(_TOKEN_BURN, amount), accounts=accounts)


def _amount_data(tag: int, amount: int) -> bytes:
    if amount <= 0:
        raise ToolkitError("Token amount must be greater than 0", ErrorCode.INVALID_INPUT, {"amount": amount})
    return bytes([tag]) + struct.pack("<Q", amount)


__all__ = [
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "COMPUTE_BUDGET_PROGRAM_ID",
    "MEMO_PROGRAM_ID",
    "MINT_SIZE",
    "SYSTEM_PROGRAM_ID",
    "TOKEN_ACCOUNT_SIZE",
    "TOKEN_PROGRAM_ID",
    "account_meta",
    "create_associated_token_account",
    "create_program_account",
    "get_associated_token_address",
    "initialize_mint",
    "is_compute_budget",
    "memo",
    "program_instruction",
    "set_compute_unit_limit",
    "set_compute_unit_price",
    "token_burn",
    "token_mint_to",
    "token_transfer",
    "transfer_lamports",
]
