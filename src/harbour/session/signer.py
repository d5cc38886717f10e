from typing import Any, Protocol

from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount

from harbour.config import HarbourSettings
from harbour.crypto_utils import SECP256K1_N, Address, Seed, Signature, int_to_bytes, keccak256
from harbour.errors import InvalidSignature

TypedData = dict[str, Any]

EIP712_DOMAIN = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

SESSION_TYPE = [
    {"name": "owner", "type": "address"},
    {"name": "statement", "type": "string"},
]


class TypedDataSigner(Protocol):
    @property
    def address(self) -> Address: ...

    def sign_typed_data(self, typed_data: TypedData) -> Signature: ...


class AccountSigner:
    """Signs with a local eth-account key, standing in for a browser wallet."""

    def __init__(self, account: LocalAccount) -> None:
        self._account = account

    @property
    def address(self) -> Address:
        address: Address = self._account.address
        return address

    def sign_typed_data(self, typed_data: TypedData) -> Signature:
        signed = self._account.sign_message(encode_typed_data(full_message=typed_data))
        return bytes(signed.signature)


def session_typed_data(settings: HarbourSettings, chain_id: int, owner: Address) -> TypedData:
    """
    Sign-in message scoped to the registry deployment, so the same wallet
    yields unrelated seeds on different chains or registries.
    """
    return {
        "types": {"EIP712Domain": EIP712_DOMAIN, "Session": SESSION_TYPE},
        "primaryType": "Session",
        "domain": {
            "name": settings.domain_name,
            "version": settings.domain_version,
            "chainId": chain_id,
            "verifyingContract": settings.registry_address,
        },
        "message": {"owner": owner, "statement": settings.statement},
    }


def derive_seed(signature: Signature) -> Seed:
    """
    keccak256(r || yParityAndS) of the EIP-2098 form of the signature.

    Signers may return either the high or the low `s` value for the same
    message, so `s` is normalized to the lower half of the curve order first.
    """
    if len(signature) == 65:
        r = signature[:32]
        s = int.from_bytes(signature[32:64], "big")
        v = signature[64]
        y_parity = v - 27 if v >= 27 else v
        if y_parity not in (0, 1):
            raise InvalidSignature(f"Invalid signature recovery id {v}")
    elif len(signature) == 64:
        r = signature[:32]
        y_parity_and_s = int.from_bytes(signature[32:], "big")
        y_parity = y_parity_and_s >> 255
        s = y_parity_and_s & ((1 << 255) - 1)
    else:
        raise InvalidSignature(f"Invalid signature length {len(signature)}")

    if not 0 < int.from_bytes(r, "big") < SECP256K1_N:
        raise InvalidSignature("Signature r is out of range")
    if not 0 < s < SECP256K1_N:
        raise InvalidSignature("Signature s is out of range")

    if s >SECP256K1_N // 2:
        s = SECP256K1_N - s
        y_parity ^= 1

    return keccak256(r, int_to_bytes((y_parity << 255) | s))
