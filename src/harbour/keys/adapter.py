"""
Import and export of X25519 key pairs behind swappable backends.

Session and envelope code only ever talk to the module level functions in
this file, so a backend can be replaced without touching them:

    NaclBackend          PyNaCl / libsodium (default)
    CryptographyBackend  `cryptography` X25519 objects, optionally non-extractable
    SoftwareBackend      pure Python ladder from `harbour.keys.curve`
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Final

from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from nacl.bindings import crypto_scalarmult
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, PublicKey
from pydantic import BaseModel, ConfigDict, Field

from harbour.crypto_utils import KEY_SIZE, ZERO_KEY, as_bytes
from harbour.errors import InvalidKeyLength, KeyAgreementFailed, NonExportableKey
from harbour.keys import curve

logger = logging.getLogger(__name__)


class KeyBackend(ABC):
    name: str = "abstract"
    extractable: bool = True

    @abstractmethod
    def load_private(self, raw: bytes) -> tuple[Any, bytes]:
        """Return the native private key and the raw public key."""

    @abstractmethod
    def load_public(self, raw: bytes) -> Any: ...

    @abstractmethod
    def private_bytes(self, native: Any) -> bytes: ...

    @abstractmethod
    def agree(self, native: Any, public: "PublicKeyHandle") -> bytes: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NaclBackend(KeyBackend):
    name = "nacl"

    def load_private(self, raw: bytes) -> tuple[Any, bytes]:
        private = PrivateKey(raw)
        return private, private.public_key.encode()

    def load_public(self, raw: bytes) -> Any:
        return PublicKey(raw)

    def private_bytes(self, native: Any) -> bytes:
        raw: bytes = native.encode()
        return raw

    def agree(self, native: Any, public: "PublicKeyHandle") -> bytes:
        try:
            shared: bytes = crypto_scalarmult(native.encode(), public.raw)
        except CryptoError as e:
            raise KeyAgreementFailed("X25519 key agreement failed") from e
        return shared


class CryptographyBackend(KeyBackend):
    """
    Backend modelled on platform key stores that cannot compute a public key
    from an imported private scalar and may refuse to export private keys.
    The public point is computed in software and both halves are imported.
    """

    name = "cryptography"

    def __init__(self, extractable: bool = True) -> None:
        self.extractable = extractable

    def load_private(self, raw: bytes) -> tuple[Any, bytes]:
        private = X25519PrivateKey.from_private_bytes(raw)
        public = curve.x25519_base(raw)
        # Re-import so that malformed points are rejected by the platform
        X25519PublicKey.from_public_bytes(public)
        return private, public

    def load_public(self, raw: bytes) -> Any:
        return X25519PublicKey.from_public_bytes(raw)

    def private_bytes(self, native: Any) -> bytes:
        if not self.extractable:
            raise NonExportableKey("Private key was imported as non-extractable")
        raw: bytes = native.private_bytes_raw()
        return raw

    def agree(self, native: Any, public: "PublicKeyHandle") -> bytes:
        try:
            shared: bytes = native.exchange(X25519PublicKey.from_public_bytes(public.raw))
        except ValueError as e:
            raise KeyAgreementFailed("X25519 key agreement failed") from e
        return shared

    def __repr__(self) -> str:
        return f"CryptographyBackend(extractable={self.extractable})"


class SoftwareBackend(KeyBackend):
    name = "software"

    def load_private(self, raw: bytes) -> tuple[Any, bytes]:
        return raw, curve.x25519_base(raw)

    def load_public(self, raw: bytes) -> Any:
        return raw

    def private_bytes(self, native: Any) -> bytes:
        return bytes(native)

    def agree(self, native: Any, public: "PublicKeyHandle") -> bytes:
        return curve.x25519(native, public.raw)


class PublicKeyHandle(BaseModel):  # type: ignore
    raw: bytes = Field(..., min_length=KEY_SIZE, max_length=KEY_SIZE)
    native: Any = Field(default=None, exclude=True, repr=False)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PublicKeyHandle):
            return NotImplemented
        return self.raw == other.raw

    def __hash__(self) -> int:
        return hash(self.raw)

    def hex(self) -> str:
        return "0x" + self.raw.hex()


class KeyPairHandle(BaseModel):  # type: ignore
    private: Any = Field(..., repr=False)
    public: PublicKeyHandle
    backend: KeyBackend
    extractable: bool = True

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


# Stateless. Pass `backend=` to use another one.
DEFAULT_BACKEND: Final[KeyBackend] = NaclBackend()


def _check_length(raw: bytes) -> bytes:
    if len(raw) != KEY_SIZE:
        raise InvalidKeyLength(len(raw))
    return raw


def import_private(raw: bytes | str, backend: KeyBackend | None = None) -> KeyPairHandle:
    raw = _check_length(as_bytes(raw))
    backend = backend or DEFAULT_BACKEND
    private, public_raw = backend.load_private(raw)
    return KeyPairHandle(
        private=private,
        public=PublicKeyHandle(raw=public_raw, native=backend.load_public(public_raw)),
        backend=backend,
        extractable=backend.extractable,
    )


def import_public(raw: bytes | str, backend: KeyBackend | None = None) -> PublicKeyHandle:
    raw = _check_length(as_bytes(raw))
    backend = backend or DEFAULT_BACKEND
    return PublicKeyHandle(raw=raw, native=backend.load_public(raw))


def export_public(handle: KeyPairHandle | PublicKeyHandle) -> bytes:
    if isinstance(handle, KeyPairHandle):
        return handle.public.raw
    return handle.raw


def export_private(handle: KeyPairHandle) -> bytes:
    if not handle.extractable:
        raise NonExportableKey("Private key was imported as non-extractable")
    return handle.backend.private_bytes(handle.private)


def exchange(handle: KeyPairHandle, public: PublicKeyHandle | bytes) -> bytes:
    """X25519 shared secret between our private key and a peer public key."""
    if not isinstance(public, PublicKeyHandle):
        public = import_public(public, handle.backend)
    shared = handle.backend.agree(handle.private, public)
    if shared == ZERO_KEY:
        logger.warning("Rejected low order public key %s", public.hex())
        raise KeyAgreementFailed("X25519 produced an all-zero shared secret")
    return shared


def generate(backend: KeyBackend | None = None) -> KeyPairHandle:
    """Fresh random key pair, mostly useful for tests and ephemeral senders."""
    return import_private(bytes(PrivateKey.generate()), backend)
