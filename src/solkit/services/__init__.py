"""Higher-level account, transfer, token and program operations."""

from .accounts import AccountInfo, AccountService, AirdropResult, Balance
from .programs import ProgramCallResult, ProgramService
from .tokens import MintCreation, TokenAccountCreation, TokenBalance, TokenService
from .transfers import BatchItem, BatchResult, TransferService

__all__ = [
    "AccountInfo",
    "AccountService",
    "AirdropResult",
    "Balance",
    "BatchItem",
    "BatchResult",
    "MintCreation",
    "ProgramCallResult",
    "ProgramService",
    "TokenAccountCreation",
    "TokenBalance",
    "TokenService",
    "TransferService",
]
