from typing import TypeAlias

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from eth_utils import keccak, to_bytes

Address: TypeAlias = str
Hex: TypeAlias = str
Seed: TypeAlias = bytes
Signature: TypeAlias = bytes
SymmetricKey: TypeAlias = bytes

KEY_SIZE = 32
ZERO_KEY = bytes(KEY_SIZE)

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def int_from_bytes(b: bytes) -> int:
    return int.from_bytes(b, "big")


def int_to_bytes(i: int, length: int = 32) -> bytes:
    return i.to_bytes(length, "big")


def as_bytes(value: bytes | bytearray | str) -> bytes:
    """Accept raw bytes or a 0x-prefixed hex string."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


def keccak256(*parts: bytes) -> bytes:
    return keccak(b"".join(parts))


def hkdf(key: bytes, info: bytes, length: int = KEY_SIZE, salt: bytes | None = None) -> bytes:
    """HKDF-SHA256 (RFC 5869)."""
    return HKDF(  # type: ignore
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    ).derive(key)
