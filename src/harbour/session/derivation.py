import logging

from eth_account import Account
from eth_account.signers.local import LocalAccount
from pydantic import BaseModel, ConfigDict

from harbour.config import HarbourSettings, load_settings
from harbour.crypto_utils import KEY_SIZE, Seed, hkdf
from harbour.errors import InvalidContext
from harbour.keys.adapter import KeyBackend, KeyPairHandle, export_public, import_private
from harbour.session.context import (
    RegistrationCommitment,
    SessionSalt,
    decode_context,
    encode_context,
    is_registered,
    new_salt,
    registration_equals,
)
from harbour.session.signer import TypedDataSigner, derive_seed, session_typed_data

logger = logging.getLogger(__name__)

ENCRYPTION_INFO = b"harbour:session:v1:encryption"
RELAYER_INFO = b"harbour:session:v1:relayer"


class Session(BaseModel):  # type: ignore
    encryption: KeyPairHandle
    relayer: LocalAccount
    registration: RegistrationCommitment
    pending_registration: RegistrationCommitment | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def public_key(self) -> bytes:
        return export_public(self.encryption)


def derive_secret(seed: Seed, salt: SessionSalt, info: bytes) -> bytes:
    return hkdf(seed, info=info, length=KEY_SIZE, salt=salt.encode())


def derive_session(
    seed: Seed, salt: SessionSalt, backend: KeyBackend | None = None, pending: bool = True
) -> Session:
    """Pure `seed x salt -> session` derivation shared by every entry point."""
    encryption = import_private(derive_secret(seed, salt, ENCRYPTION_INFO), backend)
    relayer: LocalAccount = Account.from_key(derive_secret(seed, salt, RELAYER_INFO))
    registration = RegistrationCommitment(
        context=encode_context(salt, relayer.address),
        public_key=export_public(encryption),
    )
    return Session(
        encryption=encryption,
        relayer=relayer,
        registration=registration,
        pending_registration=registration if pending else None,
    )


class SessionEngine:
    def __init__(
        self, settings: HarbourSettings | None = None, backend: KeyBackend | None = None
    ) -> None:
        self.settings = settings or load_settings()
        self.backend = backend

    def _seed(self, signer: TypedDataSigner, chain_id: int) -> Seed:
        typed_data = session_typed_data(self.settings, chain_id, signer.address)
        return derive_seed(signer.sign_typed_data(typed_data))

    def create(self, signer: TypedDataSigner, chain_id: int) -> Session:
        seed = self._seed(signer, chain_id)
        session = derive_session(seed, new_salt(), self.backend)
        logger.info(
            "Created session for %s on chain %d with relayer %s",
            signer.address,
            chain_id,
            session.relayer.address,
        )
        return session

    def recreate(
        self, signer: TypedDataSigner, chain_id: int, known: RegistrationCommitment
    ) -> Session:
        if len(known.public_key) != KEY_SIZE:
            raise InvalidContext(f"Invalid registered public key 0x{known.public_key.hex()}")
        salt, relayer = decode_context(known.context)

        seed = self._seed(signer, chain_id)
        session = derive_session(seed, salt, self.backend, pending=False)

        if session.relayer.address != relayer:
            logger.warning("Relayer mismatch recreating session for %s", signer.address)
            raise InvalidContext(
                f"Context relayer {relayer} does not match derived {session.relayer.address}"
            )
        if not registration_equals(session.registration, known):
            logger.warning("Public key mismatch recreating session for %s", signer.address)
            raise InvalidContext("Derived encryption key does not match the registered key")

        logger.info("Recreated session for %s on chain %d", signer.address, chain_id)
        return session


def signin_to_session(
    signer: TypedDataSigner,
    chain_id: int,
    onchain: RegistrationCommitment | None = None,
    settings: HarbourSettings | None = None,
    backend: KeyBackend | None = None,
) -> Session:
    """
    Log in with a wallet. A registered on-chain commitment recreates the
    matching session, otherwise a fresh one pending registration is created.
    """
    engine = SessionEngine(settings, backend)
    if onchain is not None and is_registered(onchain):
        return engine.recreate(signer, chain_id, onchain)
    return engine.create(signer, chain_id)


def reconcile_session(session: Session, onchain: RegistrationCommitment) -> Session:
    if not is_registered(onchain):
        return session
    if not registration_equals(onchain, session.registration):
        raise InvalidContext("A different encryption key is registered on-chain")
    if session.pending_registration is None:
        return session
    return session.model_copy(update={"pending_registration": None})
