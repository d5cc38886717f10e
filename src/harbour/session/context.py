"""
Registration commitments and the 32 byte session context.

The context published on-chain next to the encryption public key is

    nonce (6 bytes) || issuedAt (uint48, seconds) || relayer address (20 bytes)

The first 12 bytes are the salt that, together with the signature derived
seed, fixes every session key. The relayer address lets a recreated
session prove it controls the same relaying account.
"""

import logging
import secrets
import time
from collections.abc import Iterable
from typing import Any

from eth_utils import to_canonical_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator

from harbour.crypto_utils import ZERO_KEY, Address, as_bytes
from harbour.errors import HarbourError, InvalidContext
from harbour.keys.adapter import PublicKeyHandle, import_public

logger = logging.getLogger(__name__)

CONTEXT_SIZE = 32
NONCE_SIZE = 6
SALT_SIZE = 12
MAX_ISSUED_AT = 2**48 - 1


class SessionSalt(BaseModel):  # type: ignore
    nonce: bytes = Field(..., min_length=NONCE_SIZE, max_length=NONCE_SIZE)
    issued_at: int = Field(..., ge=0, le=MAX_ISSUED_AT)

    model_config = ConfigDict(frozen=True)

    def encode(self) -> bytes:
        return self.nonce + self.issued_at.to_bytes(6, "big")

    @classmethod
    def decode(cls, salt: bytes) -> "SessionSalt":
        if len(salt) != SALT_SIZE:
            raise InvalidContext(f"Invalid encoded context salt 0x{salt.hex()}")
        return cls(nonce=salt[:NONCE_SIZE], issued_at=int.from_bytes(salt[NONCE_SIZE:], "big"))


class RegistrationCommitment(BaseModel):  # type: ignore
    """
    The public (context, publicKey) pair stored by the registry for an owner.
    Lengths are checked where the commitment is consumed so that a malformed
    on-chain record surfaces as `InvalidContext`.
    """

    context: bytes
    public_key: bytes

    model_config = ConfigDict(frozen=True)

    @field_validator("context", "public_key", mode="before")
    @classmethod
    def hex_bytes(cls, value: Any) -> bytes:
        if isinstance(value, str):
            return as_bytes(value)
        return value  # type: ignore

    def to_dict(self) -> dict[str, str]:
        return {"context": "0x" + self.context.hex(), "publicKey": "0x" + self.public_key.hex()}


ZERO_COMMITMENT = RegistrationCommitment(context=bytes(CONTEXT_SIZE), public_key=ZERO_KEY)


def new_salt() -> SessionSalt:
    return SessionSalt(nonce=secrets.token_bytes(NONCE_SIZE), issued_at=int(time.time()))


def encode_context(salt: SessionSalt, relayer: Address) -> bytes:
    return salt.encode() + to_canonical_address(relayer)


def decode_context(context: bytes) -> tuple[SessionSalt, Address]:
    if len(context) != CONTEXT_SIZE:
        raise InvalidContext(f"Invalid encoded context 0x{context.hex()}")
    salt = SessionSalt.decode(context[:SALT_SIZE])
    return salt, to_checksum_address(context[SALT_SIZE:])


def registration_equals(a: RegistrationCommitment, b: RegistrationCommitment) -> bool:
    return a.context == b.context and a.public_key == b.public_key


def is_registered(registration: RegistrationCommitment) -> bool:
    return not registration_equals(registration, ZERO_COMMITMENT)


def decode_encryption_public_key(public_key: bytes | str) -> PublicKeyHandle | None:
    """Public key read from the registry, or None when the owner has none."""
    try:
        raw = as_bytes(public_key)
        if raw == ZERO_KEY:
            return None
        return import_public(raw)
    except (HarbourError, ValueError):
        logger.debug("Ignoring malformed registry public key %r", public_key)
        return None


def recipient_keys(public_keys: Iterable[bytes | str]) -> list[PublicKeyHandle]:
    """Encryption keys of every owner that registered one."""
    keys = (decode_encryption_public_key(public_key) for public_key in public_keys)
    return [key for key in keys if key is not None]
