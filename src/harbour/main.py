import logging

from eth_account import Account

from harbour.codec.transaction import SafeTransaction
from harbour.config import load_settings
from harbour.envelope.encryption import decrypt_safe_transaction, encrypt_safe_transaction
from harbour.session.context import recipient_keys
from harbour.session.derivation import Session, signin_to_session
from harbour.session.serialization import deserialize_session, serialize_session
from harbour.session.signer import AccountSigner

CHAIN_ID = 100


def main() -> bool:
    """Walk through sessions and an encrypted proposal for a three owner Safe."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print("=== Harbour Session Demo ===")

    settings = load_settings()
    owners = {name: AccountSigner(Account.create()) for name in ("alice", "bob", "charlie")}
    sessions: dict[str, Session] = {
        name: signin_to_session(signer, CHAIN_ID, settings=settings)
        for name, signer in owners.items()
    }
    for name, session in sessions.items():
        print(f"{name}: encryption key 0x{session.public_key.hex()} (pending registration)")

    # What the registry would return for every owner
    registry = {name: session.registration for name, session in sessions.items()}

    print("\n=== Recreating Alice's session from the registry ===")
    alice = signin_to_session(owners["alice"], CHAIN_ID, onchain=registry["alice"], settings=settings)
    print(f"Public key match: {alice.public_key == sessions['alice'].public_key}")

    proposal = SafeTransaction(
        to="0x0000000000000000000000000000000000000001",
        value=10**18,
        data=bytes.fromhex("deadbeef"),
    )
    recipients = recipient_keys(commitment.public_key for commitment in registry.values())
    envelope = encrypt_safe_transaction(proposal, alice.encryption, recipients)
    print(f"\nAlice encrypted a proposal into {len(envelope.to_bytes())} bytes")

    restored = deserialize_session(serialize_session(sessions["bob"]))
    decrypted = {
        "bob": decrypt_safe_transaction(envelope.to_hex(), restored.encryption),
        "charlie": decrypt_safe_transaction(envelope.to_hex(), sessions["charlie"].encryption),
    }
    for name, tx in decrypted.items():
        print(f"{name} decrypted proposal to {tx.to}: {tx == proposal}")

    return all(tx == proposal for tx in decrypted.values())


if __name__ == "__main__":
    main()
