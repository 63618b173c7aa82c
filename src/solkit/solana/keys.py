"""Keypairs and signer identities for solkit."""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable

from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from mnemonic import Mnemonic
from solders.pubkey import Pubkey

from solkit.core.errors import ErrorCode, ToolkitError

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
MNEMONIC_WORD_COUNTS = {12: 128, 15: 160, 18: 192, 21: 224, 24: 256}

_MNEMONIC = Mnemonic("english")


@runtime_checkable
class Signer(Protocol):
    """An identity able to sign transaction messages."""

    @property
    def public_key(self) -> Pubkey: ...

    def sign(self, message: bytes) -> bytes: ...


class Keypair:
    """Ed25519 keypair usable as a transaction signer."""

    def __init__(self, private_key: ed25519.Ed25519PrivateKey) -> None:
        self._private_key = private_key
        raw_public = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self._public_key = Pubkey.from_bytes(raw_public)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def generate(cls) -> Keypair:
        return cls(ed25519.Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> Keypair:
        if len(seed) != 32:
            raise _invalid("Seed must be 32 bytes.", length=len(seed))
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_secret_key(cls, secret: bytes) -> Keypair:
        """Restore from a 64-byte secret (seed followed by public key).

        Bare 32-byte seeds are refused; use :meth:`from_seed` for those.
        """
        if len(secret) != 64:
            raise _invalid("Secret key must be 64 bytes.", length=len(secret))
        keypair = cls.from_seed(bytes(secret[:32]))
        if bytes(keypair.public_key) != bytes(secret[32:]):
            raise _invalid("Provided public key does not match private key.")
        return keypair

    @classmethod
    def from_mnemonic(cls, phrase: str, passphrase: str = "") -> Keypair:
        normalized = " ".join(phrase.strip().lower().split())
        if not _MNEMONIC.check(normalized):
            raise _invalid("Invalid recovery phrase checksum.")
        seed = _MNEMONIC.to_seed(normalized, passphrase=passphrase)
        return cls.from_seed(seed[:32])

    @classmethod
    def from_secret(cls, secret: str | bytes | list[int]) -> Keypair:
        """Restore from a JSON byte list, base58 string, raw bytes or mnemonic."""
        if isinstance(secret, (bytes, bytearray)):
            return cls.from_secret_key(bytes(secret))
        if isinstance(secret, list):
            return cls.from_secret_key(_bytes_from_list(secret))
        if not isinstance(secret, str):
            raise _invalid("Invalid secret key format.", type=type(secret).__name__)
        value = secret.strip()
        if value.startswith("[") and value.endswith("]"):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError as exc:
                raise _invalid("Secret key is not a valid JSON byte list.") from exc
            return cls.from_secret_key(_bytes_from_list(parsed))
        if looks_like_mnemonic(value):
            return cls.from_mnemonic(value)
        return cls.from_secret_key(b58decode(value))

    # ------------------------------------------------------------------
    # Signer protocol
    # ------------------------------------------------------------------
    @property
    def public_key(self) -> Pubkey:
        return self._public_key

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    @property
    def secret_key(self) -> bytes:
        """64-byte secret key in the Solana CLI layout (seed followed by public key)."""
        private_bytes = self._private_key.private_bytes(
            encoding=Encoding.Raw,
            format=PrivateFormat.Raw,
            encryption_algorithm=NoEncryption(),
        )
        return private_bytes + bytes(self._public_key)

    def to_json(self) -> str:
        return json.dumps(list(self.secret_key))

    def to_base58(self) -> str:
        return b58encode(self.secret_key)

    def __repr__(self) -> str:
        return f"Keypair(public_key={self._public_key})"


def generate_mnemonic(words: int = 12) -> str:
    try:
        strength = MNEMONIC_WORD_COUNTS[words]
    except KeyError:
        raise _invalid("Mnemonic word count must be 12, 15, 18, 21 or 24.", words=words) from None
    return _MNEMONIC.generate(strength=strength)


def looks_like_mnemonic(candidate: str) -> bool:
    words = candidate.strip().lower().split()
    if len(words) not in MNEMONIC_WORD_COUNTS:
        return False
    return all(word in _MNEMONIC.wordlist for word in words)


def b58encode(data: bytes) -> str:
    num = int.from_bytes(data, "big")
    encoded = ""
    while num > 0:
        num, remainder = divmod(num, 58)
        encoded = BASE58_ALPHABET[remainder] + encoded

    zeros = len(data) - len(data.lstrip(b"\x00"))
    return ("1" * zeros) + encoded


def b58decode(value: str) -> bytes:
    num = 0
    for char in value:
        try:
            num = num * 58 + BASE58_ALPHABET.index(char)
        except ValueError as exc:
            raise _invalid("Invalid base58 character in secret.") from exc

    full_bytes = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    zeros = len(value) - len(value.lstrip("1"))
    return b"\x00" * zeros + full_bytes


def to_pubkey(value: str | Pubkey, *, field: str = "public_key") -> Pubkey:
    """Coerce ``value`` to a Pubkey, raising INVALID_INPUT when malformed."""
    if isinstance(value, Pubkey):
        return value
    try:
        return Pubkey.from_string(str(value))
    except Exception as exc:  # noqa: BLE001
        raise _invalid(f"Invalid public key: {value}", **{field: str(value)}) from exc


def _bytes_from_list(values: list[object]) -> bytes:
    if not all(isinstance(item, int) and 0 <= item <= 255 for item in values):
        raise _invalid("Secret key list must contain byte values.")
    return bytes(values)  # type: ignore[arg-type]


def _invalid(message: str, **context: object) -> ToolkitError:
    return ToolkitError(message, ErrorCode.INVALID_INPUT, dict(context))


__all__ = [
    "Keypair",
    "Signer",
    "b58decode",
    "b58encode",
    "generate_mnemonic",
    "looks_like_mnemonic",
    "to_pubkey",
]
