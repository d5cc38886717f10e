import os
import unittest

import pytest
from parameterized import parameterized

from harbour.errors import InvalidKeyLength, KeyAgreementFailed, NonExportableKey
from harbour.keys.adapter import (
    DEFAULT_BACKEND,
    CryptographyBackend,
    KeyBackend,
    NaclBackend,
    PublicKeyHandle,
    SoftwareBackend,
    exchange,
    export_private,
    export_public,
    generate,
    import_private,
    import_public,
)

BACKENDS = [
    ("nacl", NaclBackend()),
    ("cryptography", CryptographyBackend()),
    ("software", SoftwareBackend()),
]


@pytest.fixture
def raw_private() -> bytes:
    return os.urandom(32)


def test_export_public_is_stable(raw_private: bytes) -> None:
    first = export_public(import_private(raw_private))
    second = export_public(import_private(raw_private))
    assert first == second
    assert len(first) == 32


def test_public_round_trip() -> None:
    raw = os.urandom(32)
    assert export_public(import_public(raw)) == raw
    assert export_public(import_public("0x" + raw.hex())) == raw


def test_public_handles_compare_by_value() -> None:
    raw = os.urandom(32)
    assert import_public(raw, NaclBackend()) == import_public(raw, SoftwareBackend())
    assert len({import_public(raw), import_public(raw)}) == 1


def test_default_backend_is_nacl(raw_private: bytes) -> None:
    assert import_private(raw_private).backend is DEFAULT_BACKEND
    assert isinstance(DEFAULT_BACKEND, NaclBackend)


def test_explicit_backend_is_kept(raw_private: bytes) -> None:
    software = SoftwareBackend()
    key = import_private(raw_private, software)
    assert key.backend is software
    assert import_public(export_public(key), software).native == export_public(key)


class TestImportLengths(unittest.TestCase):
    @parameterized.expand([(0,), (31,), (33,), (64,)])
    def test_private_rejects_length(self, length: int) -> None:
        with self.assertRaises(InvalidKeyLength):
            import_private(os.urandom(length))

    @parameterized.expand([(0,), (31,), (33,), (42,)])
    def test_public_rejects_length(self, length: int) -> None:
        with self.assertRaises(InvalidKeyLength):
            import_public(os.urandom(length))


class TestBackends(unittest.TestCase):
    @parameterized.expand(BACKENDS)
    def test_backends_agree_on_public_key(self, _name: str, backend: KeyBackend) -> None:
        raw = os.urandom(32)
        expected = export_public(import_private(raw, NaclBackend()))
        self.assertEqual(export_public(import_private(raw, backend)), expected)

    @parameterized.expand(BACKENDS)
    def test_exchange_is_symmetric(self, _name: str, backend: KeyBackend) -> None:
        alice = generate(backend)
        bob = generate(NaclBackend())
        self.assertEqual(exchange(alice, bob.public), exchange(bob, alice.public))
        self.assertEqual(exchange(alice, export_public(bob)), exchange(bob, alice.public))

    @parameterized.expand(BACKENDS)
    def test_exchange_rejects_zero_point(self, _name: str, backend: KeyBackend) -> None:
        key = generate(backend)
        with self.assertRaises(KeyAgreementFailed):
            exchange(key, bytes(32))

    @parameterized.expand(BACKENDS)
    def test_private_round_trip(self, _name: str, backend: KeyBackend) -> None:
        raw = os.urandom(32)
        self.assertEqual(export_private(import_private(raw, backend)), raw)

    def test_non_extractable_private_key(self) -> None:
        key = import_private(os.urandom(32), CryptographyBackend(extractable=False))
        self.assertFalse(key.extractable)
        self.assertEqual(len(export_public(key)), 32)
        with self.assertRaises(NonExportableKey):
            export_private(key)

    def test_handle_types(self) -> None:
        key = generate()
        self.assertIsInstance(key.public, PublicKeyHandle)
        self.assertEqual(export_public(key), export_public(key.public))
        self.assertEqual(key.public.hex(), "0x" + export_public(key).hex())
