import logging
import secrets
from collections.abc import Iterable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.keywrap import (
    InvalidUnwrap,
    aes_key_unwrap,
    aes_key_wrap,
)

from harbour.codec.transaction import (
    SafeTransaction,
    decode_safe_transaction,
    encode_safe_transaction,
)
from harbour.crypto_utils import KEY_SIZE, SymmetricKey, hkdf
from harbour.envelope.wire import NONCE_SIZE, Envelope, RecipientEntry
from harbour.errors import (
    AuthenticationFailed,
    KeyAgreementFailed,
    NoMatchingRecipient,
    NoRecipients,
)
from harbour.keys.adapter import (
    KeyPairHandle,
    PublicKeyHandle,
    exchange,
    export_public,
    import_public,
)

logger = logging.getLogger(__name__)

KEK_INFO = b"harbour:envelope:v1:kek"

RecipientKey = PublicKeyHandle | bytes | str


def derive_key_wrapping_key(
    encryption_key: KeyPairHandle, peer: PublicKeyHandle, sender: bytes, recipient: bytes
) -> SymmetricKey:
    """
    KEK = HKDF-SHA256(X25519(own, peer), info = label || sender || recipient)

    Both sides end up with the same value because the sender and recipient
    public keys are always bound in the same order.
    """
    shared_secret = exchange(encryption_key, peer)
    return hkdf(shared_secret, info=KEK_INFO + sender + recipient, length=KEY_SIZE)


def _unique_recipients(
    recipients: Iterable[RecipientKey], encryption_key: KeyPairHandle
) -> list[PublicKeyHandle]:
    seen: set[bytes] = set()
    unique = []
    for recipient in recipients:
        if not isinstance(recipient, PublicKeyHandle):
            recipient = import_public(recipient, encryption_key.backend)
        if recipient.raw not in seen:
            seen.add(recipient.raw)
            unique.append(recipient)
    return unique


def encrypt_safe_transaction(
    transaction: SafeTransaction,
    encryption_key: KeyPairHandle,
    recipient_public_keys: Iterable[RecipientKey],
) -> Envelope:
    recipients = _unique_recipients(recipient_public_keys, encryption_key)
    if not recipients:
        raise NoRecipients("Cannot encrypt a Safe transaction without recipients")

    sender = export_public(encryption_key)
    content_key = AESGCM.generate_key(bit_length=256)

    entries = []
    for recipient in recipients:
        kek = derive_key_wrapping_key(encryption_key, recipient, sender, recipient.raw)
        entries.append(
            RecipientEntry(recipient=recipient.raw, wrapped_key=aes_key_wrap(kek, content_key))
        )

    nonce = secrets.token_bytes(NONCE_SIZE)
    # Placeholder tag so the header can be computed before encrypting
    unsealed = Envelope(sender=sender, entries=tuple(entries), nonce=nonce, ciphertext=bytes(16))
    header = unsealed.header()

    ciphertext = AESGCM(content_key).encrypt(nonce, encode_safe_transaction(transaction), header)
    logger.info("Encrypted Safe transaction for %d recipients", len(entries))
    return unsealed.model_copy(update={"ciphertext": ciphertext})


def decrypt_safe_transaction(
    envelope: Envelope | bytes | str, encryption_key: KeyPairHandle
) -> SafeTransaction:
    if not isinstance(envelope, Envelope):
        envelope = Envelope.from_hex(envelope)

    own = export_public(encryption_key)
    entry = envelope.entry_for(own)
    if entry is None:
        logger.warning("No envelope entry for public key 0x%s", own.hex())
        raise NoMatchingRecipient("Not a recipient of this encrypted Safe transaction")

    sender = import_public(envelope.sender, encryption_key.backend)
    try:
        kek = derive_key_wrapping_key(encryption_key, sender, envelope.sender, own)
    except KeyAgreementFailed as e:
        raise AuthenticationFailed("Envelope sender key is not usable for key agreement") from e
    try:
        content_key = aes_key_unwrap(kek, entry.wrapped_key)
    except InvalidUnwrap as e:
        raise AuthenticationFailed("Failed to unwrap content encryption key") from e

    try:
        plaintext = AESGCM(content_key).decrypt(
            envelope.nonce, envelope.ciphertext, envelope.header()
        )
    except InvalidTag as e:
        raise AuthenticationFailed("Encrypted Safe transaction failed authentication") from e

    return decode_safe_transaction(plaintext)
