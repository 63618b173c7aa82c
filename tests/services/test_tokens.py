from __future__ import annotations

import struct

import pytest
from conftest import FakeLedger, program_ids
from solders.pubkey import Pubkey

from solkit.core.errors import ErrorCode, ToolkitError
from solkit.services.tokens import TokenService
from solkit.solana import instructions as ix
from solkit.solana.keys import Keypair
from solkit.solana.transaction import TransactionOptions


@pytest.fixture()
def tokens(manager, orchestrator) -> TokenService:
    return TokenService(manager, orchestrator)


def parsed_token_account(mint: str, owner: str, amount: str = "1000", decimals: int = 3) -> dict:
    return {
        "lamports": 2_039_280,
        "owner": str(ix.TOKEN_PROGRAM_ID),
        "data": {
            "program": "spl-token",
            "parsed": {
                "type": "account",
                "info": {
                    "mint": mint,
                    "owner": owner,
                    "state": "initialized",
                    "tokenAmount": {"amount": amount, "decimals": decimals, "uiAmount": int(amount) / 10**decimals},
                },
            },
        },
    }


def test_create_mint_sends_create_and_initialize(tokens: TokenService, ledger: FakeLedger) -> None:
    payer = Keypair.generate()
    mint = Keypair.generate()

    created = tokens.create_mint(payer, str(payer.public_key), decimals=6, mint=mint)

    assert created.mint == str(mint.public_key)
    assert created.decimals == 6
    sent = ledger.sent[0]
    assert program_ids(sent) == [ix.SYSTEM_PROGRAM_ID, ix.TOKEN_PROGRAM_ID, ix.COMPUTE_BUDGET_PROGRAM_ID]
    assert bytes(sent.message.instructions[2].data) == b"\x02" + struct.pack("<I", 400_000)
    assert len(sent.signatures) == 2
    assert ledger.count("get_minimum_balance_for_rent_exemption") == 1


def test_create_mint_honours_explicit_options(tokens: TokenService, ledger: FakeLedger) -> None:
    payer = Keypair.generate()

    tokens.create_mint(payer, str(payer.public_key), options=TransactionOptions())

    assert program_ids(ledger.sent[0]) == [ix.SYSTEM_PROGRAM_ID, ix.TOKEN_PROGRAM_ID]


def test_create_mint_rejects_bad_decimals(tokens: TokenService, ledger: FakeLedger) -> None:
    payer = Keypair.generate()
    with pytest.raises(ToolkitError) as excinfo:
        tokens.create_mint(payer, str(payer.public_key), decimals=256)
    assert excinfo.value.code is ErrorCode.INVALID_INPUT
    assert ledger.calls == []


def test_get_or_create_skips_existing_account(tokens: TokenService, ledger: FakeLedger) -> None:
    payer = Keypair.generate()
    owner, mint = str(Pubkey.new_unique()), str(Pubkey.new_unique())
    address = tokens.get_associated_token_address(owner, mint)
    ledger.accounts[address] = {"lamports": 1, "owner": str(ix.TOKEN_PROGRAM_ID), "data": None}

    result = tokens.get_or_create_associated_token_account(payer, owner, mint)

    assert result.address == address
    assert result.created is False
    assert ledger.sent == []


def test_get_or_create_creates_missing_account(tokens: TokenService, ledger: FakeLedger) -> None:
    payer = Keypair.generate()
    owner, mint = str(Pubkey.new_unique()), str(Pubkey.new_unique())

    result = tokens.get_or_create_associated_token_account(payer, owner, mint)

    assert result.created is True
    assert result.address == tokens.get_associated_token_address(owner, mint)
    assert result.signature == str(ledger.sent[0].signatures[0])
    assert program_ids(ledger.sent[0]) == [ix.ASSOCIATED_TOKEN_PROGRAM_ID]


def test_transfer_mint_and_burn_are_signed_by_authority(tokens: TokenService, ledger: FakeLedger) -> None:
    owner = Keypair.generate()
    source, destination, mint = (str(Pubkey.new_unique()) for _ in range(3))

    tokens.transfer(owner, source, destination, 10)
    tokens.mint_to(owner, mint, destination, 20)
    tokens.burn(owner, source, mint, 5)

    tags = [bytes(tx.message.instructions[0].data)[0] for tx in ledger.sent]
    assert tags == [3, 7, 8]
    assert all(tx.message.account_keys[0] == owner.public_key for tx in ledger.sent)


def test_transfer_requires_positive_amount(tokens: TokenService) -> None:
    with pytest.raises(ToolkitError) as excinfo:
        tokens.transfer(Keypair.generate(), str(Pubkey.new_unique()), str(Pubkey.new_unique()), 0)
    assert excinfo.value.code is ErrorCode.INVALID_INPUT


def test_token_account_info_and_balance(tokens: TokenService, ledger: FakeLedger) -> None:
    address, mint, owner = (str(Pubkey.new_unique()) for _ in range(3))
    ledger.parsed_accounts[address] = parsed_token_account(mint, owner, amount="1500", decimals=3)

    info = tokens.get_token_account_info(address)
    balance = tokens.get_token_balance(address)

    assert info["mint"] == mint
    assert info["owner"] == owner
    assert info["state"] == "initialized"
    assert balance.amount == 1500
    assert balance.decimals == 3
    assert balance.ui_amount == 1.5


def test_mint_info(tokens: TokenService, ledger: FakeLedger) -> None:
    mint, authority = str(Pubkey.new_unique()), str(Pubkey.new_unique())
    ledger.parsed_accounts[mint] = {
        "data": {
            "parsed": {
                "type": "mint",
                "info": {
                    "decimals": 9,
                    "supply": "1000000000",
                    "mintAuthority": authority,
                    "freezeAuthority": None,
                    "isInitialized": True,
                },
            }
        }
    }

    info = tokens.get_mint_info(mint)

    assert info["supply"] == 1_000_000_000
    assert info["mint_authority"] == authority
    assert info["is_initialized"] is True


def test_missing_token_account_is_not_found(tokens: TokenService) -> None:
    with pytest.raises(ToolkitError) as excinfo:
        tokens.get_token_balance(str(Pubkey.new_unique()))
    assert excinfo.value.code is ErrorCode.NOT_FOUND


def test_unparsed_account_is_invalid_input(tokens: TokenService, ledger: FakeLedger) -> None:
    address = str(Pubkey.new_unique())
    ledger.accounts[address] = {"lamports": 1, "owner": "11111111111111111111111111111111", "data": ["", "base64"]}

    with pytest.raises(ToolkitError) as excinfo:
        tokens.get_mint_info(address)
    assert excinfo.value.code is ErrorCode.INVALID_INPUT


def test_token_accounts_by_owner(tokens: TokenService, ledger: FakeLedger) -> None:
    owner, mint = str(Pubkey.new_unique()), str(Pubkey.new_unique())
    ledger.token_accounts[owner] = [{"pubkey": "Acct1", "account": parsed_token_account(mint, owner, amount="7")}]

    [account] = tokens.get_token_accounts_by_owner(owner)

    assert account["address"] == "Acct1"
    assert account["mint"] == mint
    assert account["balance"].amount == 7
