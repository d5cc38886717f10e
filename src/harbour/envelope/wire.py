"""
Envelope wire format v1

    magic               4   b"HBE\\x00"
    version             1   1
    content algorithm   1   ALG_A256GCM
    key wrap algorithm  1   ALG_X25519_HKDF_A256KW
    sender public key   32
    recipient count     2   big endian, at least 1
    entries             72 each: recipient public key (32) || wrapped key (40)
    nonce               12
    ciphertext + tag    remaining bytes, tag is the last 16

Everything before the ciphertext is authenticated as AEAD associated data.
"""

import struct

from pydantic import BaseModel, ConfigDict, Field

from harbour.crypto_utils import KEY_SIZE, as_bytes
from harbour.errors import MalformedEncoding

MAGIC = b"HBE\x00"
VERSION = 1

ALG_A256GCM = 1
ALG_X25519_HKDF_A256KW = 2

NONCE_SIZE = 12
TAG_SIZE = 16
WRAPPED_KEY_SIZE = 40
MAX_RECIPIENTS = 0xFFFF

_PREAMBLE = struct.Struct(">4sBBB32sH")
_ENTRY = struct.Struct(f">{KEY_SIZE}s{WRAPPED_KEY_SIZE}s")


class RecipientEntry(BaseModel):  # type: ignore
    recipient: bytes = Field(..., min_length=KEY_SIZE, max_length=KEY_SIZE)
    wrapped_key: bytes = Field(..., min_length=WRAPPED_KEY_SIZE, max_length=WRAPPED_KEY_SIZE)

    model_config = ConfigDict(frozen=True)


class Envelope(BaseModel):  # type: ignore
    version: int = VERSION
    content_algorithm: int = ALG_A256GCM
    key_wrap_algorithm: int = ALG_X25519_HKDF_A256KW
    sender: bytes = Field(..., min_length=KEY_SIZE, max_length=KEY_SIZE)
    entries: tuple[RecipientEntry, ...] = Field(..., min_length=1, max_length=MAX_RECIPIENTS)
    nonce: bytes = Field(..., min_length=NONCE_SIZE, max_length=NONCE_SIZE)
    ciphertext: bytes = Field(..., min_length=TAG_SIZE)

    model_config = ConfigDict(frozen=True)

    def header(self) -> bytes:
        preamble = _PREAMBLE.pack(
            MAGIC,
            self.version,
            self.content_algorithm,
            self.key_wrap_algorithm,
            self.sender,
            len(self.entries),
        )
        entries = b"".join(_ENTRY.pack(e.recipient, e.wrapped_key) for e in self.entries)
        return preamble + entries + self.nonce

    def to_bytes(self) -> bytes:
        return self.header() + self.ciphertext

    def to_hex(self) -> str:
        return "0x" + self.to_bytes().hex()

    def entry_for(self, recipient: bytes) -> RecipientEntry | None:
        for entry in self.entries:
            if entry.recipient == recipient:
                return entry
        return None

    @classmethod
    def from_bytes(cls, data: bytes) -> "Envelope":
        if len(data) < _PREAMBLE.size:
            raise MalformedEncoding("Envelope is shorter than its header")

        magic, version, content_alg, wrap_alg, sender, count = _PREAMBLE.unpack_from(data)
        if magic != MAGIC:
            raise MalformedEncoding("Envelope magic mismatch")
        if version != VERSION:
            raise MalformedEncoding(f"Unsupported envelope version {version}")
        if content_alg != ALG_A256GCM or wrap_alg != ALG_X25519_HKDF_A256KW:
            raise MalformedEncoding(
                f"Unsupported envelope algorithms ({content_alg}, {wrap_alg})"
            )
        if count == 0:
            raise MalformedEncoding("Envelope has no recipients")

        offset = _PREAMBLE.size
        body_start = offset + count * _ENTRY.size + NONCE_SIZE
        if len(data) < body_start + TAG_SIZE:
            raise MalformedEncoding("Envelope is truncated")

        entries = []
        for _ in range(count):
            recipient, wrapped_key = _ENTRY.unpack_from(data, offset)
            entries.append(RecipientEntry(recipient=recipient, wrapped_key=wrapped_key))
            offset += _ENTRY.size

        return cls(
            version=version,
            content_algorithm=content_alg,
            key_wrap_algorithm=wrap_alg,
            sender=sender,
            entries=tuple(entries),
            nonce=data[offset : offset + NONCE_SIZE],
            ciphertext=data[body_start:],
        )

    @classmethod
    def from_hex(cls, blob: str | bytes) -> "Envelope":
        try:
            data = as_bytes(blob)
        except ValueError as e:
            raise MalformedEncoding("Envelope is not valid hex") from e
        return cls.from_bytes(data)
