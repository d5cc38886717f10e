import logging
from typing import Literal

from eth_account import Account
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from harbour.config import SESSION_TYPE
from harbour.crypto_utils import SECP256K1_N, as_bytes, int_from_bytes
from harbour.errors import HarbourError, InvalidSessionEncoding
from harbour.keys.adapter import KeyBackend, export_private, export_public, import_private
from harbour.session.context import RegistrationCommitment, decode_context
from harbour.session.derivation import Session

logger = logging.getLogger(__name__)

HEX32 = r"^0x[0-9a-f]{64}$"


class SessionToken(BaseModel):  # type: ignore
    """Versioned, self-contained encoding of every session field."""

    type: Literal["harbour:session:v1"]
    encryption_key: str = Field(..., pattern=HEX32)
    relayer_key: str = Field(..., pattern=HEX32)
    context: str = Field(..., pattern=HEX32)
    public_key: str = Field(..., pattern=HEX32)
    pending: bool

    model_config = ConfigDict(frozen=True, extra="forbid")


def _hex(data: bytes) -> str:
    return "0x" + data.hex()


def serialize_session(session: Session) -> str:
    token = SessionToken(
        type=SESSION_TYPE,
        encryption_key=_hex(export_private(session.encryption)),
        relayer_key=_hex(bytes(session.relayer.key)),
        context=_hex(session.registration.context),
        public_key=_hex(export_public(session.encryption)),
        pending=session.pending_registration is not None,
    )
    return token.model_dump_json()


def deserialize_session(encoded: str, backend: KeyBackend | None = None) -> Session:
    try:
        token = SessionToken.model_validate_json(encoded)
    except ValidationError as e:
        raise InvalidSessionEncoding(f"Invalid session encoding: {e.error_count()} errors") from e

    relayer_secret = as_bytes(token.relayer_key)
    if not 0 < int_from_bytes(relayer_secret) < SECP256K1_N:
        raise InvalidSessionEncoding("Relayer key is not a valid secp256k1 private key")

    try:
        encryption = import_private(token.encryption_key, backend)
        _, relayer_address = decode_context(as_bytes(token.context))
    except HarbourError as e:
        raise InvalidSessionEncoding(str(e)) from e

    relayer = Account.from_key(relayer_secret)
    registration = RegistrationCommitment(context=token.context, public_key=token.public_key)

    if export_public(encryption) != registration.public_key:
        raise InvalidSessionEncoding("Encryption key does not match the session public key")
    if relayer.address != relayer_address:
        raise InvalidSessionEncoding("Relayer key does not match the session context")

    logger.debug("Restored session with relayer %s", relayer.address)
    return Session(
        encryption=encryption,
        relayer=relayer,
        registration=registration,
        pending_registration=registration if token.pending else None,
    )
