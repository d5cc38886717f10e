import os
import unittest
from typing import Any

import pytest
from eth_account import Account
from parameterized import parameterized

from harbour.config import HarbourSettings
from harbour.errors import InvalidContext
from harbour.keys.adapter import (
    CryptographyBackend,
    KeyBackend,
    NaclBackend,
    SoftwareBackend,
    export_private,
    export_public,
)
from harbour.session.context import (
    ZERO_COMMITMENT,
    RegistrationCommitment,
    SessionSalt,
    encode_context,
    new_salt,
)
from harbour.session.derivation import (
    Session,
    SessionEngine,
    derive_session,
    reconcile_session,
    signin_to_session,
)
from harbour.session.signer import AccountSigner, derive_seed

SETTINGS = HarbourSettings(registry_address="0x" + "11" * 20)


class RecordingSigner:
    """Signer double that returns a fixed signature and records requests."""

    def __init__(self, signature: bytes) -> None:
        self.address = Account.create().address
        self.signature = signature
        self.requests: list[dict[str, Any]] = []

    def sign_typed_data(self, typed_data: dict[str, Any]) -> bytes:
        self.requests.append(typed_data)
        return self.signature


def expectify(session: Session) -> dict[str, Any]:
    return {
        "encryption": export_public(session.encryption),
        "relayer": session.relayer.address,
        "registration": session.registration,
    }


@pytest.fixture
def signer() -> AccountSigner:
    return AccountSigner(Account.create())


@pytest.fixture
def engine() -> SessionEngine:
    return SessionEngine(SETTINGS)


def test_generates_a_new_fresh_session(signer: AccountSigner, engine: SessionEngine) -> None:
    session1 = engine.create(signer, 1)
    session2 = engine.create(signer, 1)
    assert expectify(session1) != expectify(session2)
    assert session1.relayer.address != session2.relayer.address
    assert session1.pending_registration == session1.registration


def test_recreated_sessions_are_deterministic(signer: AccountSigner, engine: SessionEngine) -> None:
    session1 = engine.create(signer, 1)
    session2 = engine.recreate(signer, 1, session1.registration)
    assert expectify(session1) == expectify(session2)
    assert session2.pending_registration is None
    assert export_private(session1.encryption) == export_private(session2.encryption)


def test_signin_to_session(signer: AccountSigner) -> None:
    session1 = signin_to_session(signer, 1, settings=SETTINGS)
    session2 = signin_to_session(signer, 1, onchain=session1.registration, settings=SETTINGS)
    assert expectify(session1) == expectify(session2)

    fresh = signin_to_session(signer, 1, onchain=ZERO_COMMITMENT, settings=SETTINGS)
    assert fresh.pending_registration is not None
    assert expectify(fresh) != expectify(session1)


def test_throws_for_invalid_contexts(signer: AccountSigner) -> None:
    with pytest.raises(InvalidContext):
        signin_to_session(
            signer,
            1,
            onchain=RegistrationCommitment(context="0x", public_key=os.urandom(32)),
            settings=SETTINGS,
        )


class TestRecreate(unittest.TestCase):
    def setUp(self) -> None:
        self.signer = AccountSigner(Account.create())
        self.engine = SessionEngine(SETTINGS)
        self.session = self.engine.create(self.signer, 100)
        self.known = self.session.registration

    def test_rejects_wrong_public_key(self) -> None:
        known = RegistrationCommitment(context=self.known.context, public_key=os.urandom(32))
        with self.assertRaises(InvalidContext):
            self.engine.recreate(self.signer, 100, known)

    def test_rejects_malformed_public_key(self) -> None:
        known = RegistrationCommitment(context=self.known.context, public_key=os.urandom(31))
        with self.assertRaises(InvalidContext):
            self.engine.recreate(self.signer, 100, known)

    def test_rejects_tampered_relayer(self) -> None:
        context = self.known.context[:12] + os.urandom(20)
        known = RegistrationCommitment(context=context, public_key=self.known.public_key)
        with self.assertRaises(InvalidContext):
            self.engine.recreate(self.signer, 100, known)

    def test_rejects_tampered_salt(self) -> None:
        context = bytes([self.known.context[0] ^ 1]) + self.known.context[1:]
        known = RegistrationCommitment(context=context, public_key=self.known.public_key)
        with self.assertRaises(InvalidContext):
            self.engine.recreate(self.signer, 100, known)

    def test_other_chain_cannot_recreate(self) -> None:
        with self.assertRaises(InvalidContext):
            self.engine.recreate(self.signer, 1, self.known)

    def test_other_registry_cannot_recreate(self) -> None:
        other = SessionEngine(HarbourSettings(registry_address="0x" + "33" * 20))
        with self.assertRaises(InvalidContext):
            other.recreate(self.signer, 100, self.known)

    def test_other_wallet_cannot_recreate(self) -> None:
        with self.assertRaises(InvalidContext):
            self.engine.recreate(AccountSigner(Account.create()), 100, self.known)

    def test_recreate_with_other_backend(self) -> None:
        engine = SessionEngine(SETTINGS, backend=SoftwareBackend())
        session = engine.recreate(self.signer, 100, self.known)
        self.assertEqual(session.public_key, self.session.public_key)


class TestDeriveSession(unittest.TestCase):
    def setUp(self) -> None:
        self.signer = RecordingSigner(os.urandom(64) + b"\x1b")
        self.seed = os.urandom(32)

    def test_determinism(self) -> None:
        salt = SessionSalt(nonce=bytes.fromhex("0a0b0c0d0e0f"), issued_at=1_700_000_000)
        first = derive_session(self.seed, salt)
        second = derive_session(self.seed, salt, CryptographyBackend())
        self.assertEqual(expectify(first), expectify(second))
        self.assertEqual(export_private(first.encryption), export_private(second.encryption))

    def test_isolation(self) -> None:
        a = derive_session(self.seed, new_salt())
        b = derive_session(self.seed, new_salt())
        self.assertNotEqual(a.public_key, b.public_key)
        self.assertNotEqual(a.relayer.address, b.relayer.address)
        scalar_a, scalar_b = export_private(a.encryption), export_private(b.encryption)
        equal_bytes = sum(x == y for x, y in zip(scalar_a, scalar_b))
        self.assertLess(equal_bytes, 8)

    def test_relayer_is_separated_from_encryption_key(self) -> None:
        session = derive_session(self.seed, new_salt())
        self.assertNotEqual(bytes(session.relayer.key), export_private(session.encryption))

    def test_context_commits_to_salt_and_relayer(self) -> None:
        salt = new_salt()
        session = derive_session(self.seed, salt)
        self.assertEqual(
            session.registration.context, encode_context(salt, session.relayer.address)
        )
        self.assertEqual(session.registration.public_key, session.public_key)

    def test_engine_with_fixed_signature_is_deterministic(self) -> None:
        engine = SessionEngine(SETTINGS)
        session = engine.create(self.signer, 5)
        again = engine.recreate(self.signer, 5, session.registration)
        self.assertEqual(expectify(session), expectify(again))
        self.assertEqual(len(self.signer.requests), 2)
        self.assertEqual(self.signer.requests[0], self.signer.requests[1])
        self.assertEqual(self.signer.requests[0]["message"]["owner"], self.signer.address)

    def test_session_is_immutable(self) -> None:
        session = derive_session(self.seed, new_salt())
        with self.assertRaises(Exception):
            session.pending_registration = None  # type: ignore[misc]


class TestReconcile(unittest.TestCase):
    def setUp(self) -> None:
        self.session = derive_session(os.urandom(32), new_salt())

    def test_unregistered_keeps_pending(self) -> None:
        reconciled = reconcile_session(self.session, ZERO_COMMITMENT)
        self.assertEqual(reconciled.pending_registration, self.session.registration)

    def test_matching_registration_clears_pending(self) -> None:
        reconciled = reconcile_session(self.session, self.session.registration)
        self.assertIsNone(reconciled.pending_registration)
        self.assertIsNotNone(self.session.pending_registration)
        self.assertEqual(expectify(reconciled), expectify(self.session))

    def test_stale_session(self) -> None:
        other = RegistrationCommitment(context=os.urandom(32), public_key=os.urandom(32))
        with self.assertRaises(InvalidContext):
            reconcile_session(self.session, other)


# Fixed sign-in signature (r = 0x11.., s = 0x22.., v = 27) and salt with the
# session values they must always produce.
KNOWN_SIGNATURE = b"\x11" * 32 + b"\x22" * 32 + b"\x1b"
KNOWN_SALT = SessionSalt(nonce=bytes.fromhex("0a0b0c0d0e0f"), issued_at=1_700_000_000)
KNOWN_SEED = "3e92e0db88d6afea9edc4eedf62fffa4d92bcdfc310dccbe943747fe8302e871"
KNOWN_ENCRYPTION_KEY = "e7f2f2d3e4a39e8fa67c60051b22e6265457ee8cb5e85d0c041db730da4fbcf7"
KNOWN_PUBLIC_KEY = "0187e6481ba84c1e3aa028af9d15e0617b665a8433c219daf13f3ee61dde2b08"
KNOWN_RELAYER = "0xbC03e19e069e63c5f989f1628AAd9D43D3967567"
KNOWN_CONTEXT = "0a0b0c0d0e0f00006553f100bc03e19e069e63c5f989f1628aad9d43d3967567"


class TestKnownSession(unittest.TestCase):
    def test_seed(self) -> None:
        self.assertEqual(derive_seed(KNOWN_SIGNATURE).hex(), KNOWN_SEED)

    @parameterized.expand(
        [
            ("nacl", NaclBackend()),
            ("cryptography", CryptographyBackend()),
            ("software", SoftwareBackend()),
        ]
    )
    def test_session_keys(self, _name: str, backend: KeyBackend) -> None:
        session = derive_session(bytes.fromhex(KNOWN_SEED), KNOWN_SALT, backend)
        self.assertEqual(export_private(session.encryption).hex(), KNOWN_ENCRYPTION_KEY)
        self.assertEqual(session.public_key.hex(), KNOWN_PUBLIC_KEY)
        self.assertEqual(session.relayer.address, KNOWN_RELAYER)
        self.assertEqual(session.registration.context.hex(), KNOWN_CONTEXT)

    def test_recreate_from_known_registration(self) -> None:
        known = RegistrationCommitment(
            context="0x" + KNOWN_CONTEXT, public_key="0x" + KNOWN_PUBLIC_KEY
        )
        signer = RecordingSigner(KNOWN_SIGNATURE)
        session = SessionEngine(SETTINGS).recreate(signer, 100, known)
        self.assertEqual(session.relayer.address, KNOWN_RELAYER)
        self.assertEqual(session.public_key.hex(), KNOWN_PUBLIC_KEY)
