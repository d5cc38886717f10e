"""
Canonical RLP encoding of Safe transactions.

A Safe transaction is encoded as the RLP list

    [to, value, data, operation, safeTxGas, baseGas, gasPrice, gasToken, refundReceiver]

Integers use their minimal big-endian representation (zero is the empty
string), addresses are 20 raw bytes and data is included as-is. Decoding
only accepts the canonical form, so `encode(decode(b)) == b` for every
accepted input.
"""

import logging
from enum import IntEnum
from typing import Annotated, Any, Mapping

import rlp
from eth_utils import is_address, to_canonical_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator
from rlp.exceptions import DecodingError
from rlp.sedes import big_endian_int

from harbour.crypto_utils import as_bytes
from harbour.errors import InvalidAddress, InvalidOperation, MalformedEncoding

logger = logging.getLogger(__name__)

FIELD_COUNT = 9
ADDRESS_SIZE = 20
UINT256_SIZE = 32
UINT256_MAX = 2**256 - 1


class Operation(IntEnum):
    CALL = 0
    DELEGATE_CALL = 1


Uint256 = Annotated[int, Field(ge=0, le=UINT256_MAX)]


class SafeTransaction(BaseModel):  # type: ignore
    to: str
    value: Uint256 = 0
    data: bytes = b""
    operation: Operation = Operation.CALL
    safe_tx_gas: Uint256 = 0
    base_gas: Uint256 = 0
    gas_price: Uint256 = 0
    gas_token: str = "0x0000000000000000000000000000000000000000"
    refund_receiver: str = "0x0000000000000000000000000000000000000000"

    model_config = ConfigDict(frozen=True)

    @field_validator("to", "gas_token", "refund_receiver", mode="before")
    @classmethod
    def checksum_address(cls, value: Any) -> str:
        if isinstance(value, (bytes, bytearray)):
            if len(value) != ADDRESS_SIZE:
                raise ValueError(f"Invalid address length {len(value)}")
            return to_checksum_address(bytes(value))
        if not isinstance(value, str) or not is_address(value):
            raise ValueError(f"Invalid address {value!r}")
        return to_checksum_address(value)

    @field_validator("data", mode="before")
    @classmethod
    def hex_data(cls, value: Any) -> bytes:
        if isinstance(value, str):
            return as_bytes(value)
        return value  # type: ignore

    def to_dict(self) -> dict[str, Any]:
        """JSON-RPC style representation with hex quantities."""
        return {
            "to": self.to,
            "value": hex(self.value),
            "data": "0x" + self.data.hex(),
            "operation": int(self.operation),
            "safeTxGas": hex(self.safe_tx_gas),
            "baseGas": hex(self.base_gas),
            "gasPrice": hex(self.gas_price),
            "gasToken": self.gas_token,
            "refundReceiver": self.refund_receiver,
        }


def _quantity(value: int | str) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.lower().startswith("0x") else int(value)
    return value


def safe_transaction_from_dict(tx: Mapping[str, Any]) -> SafeTransaction:
    """Build a transaction from the camelCase mapping used by Safe tooling."""
    return SafeTransaction(
        to=tx["to"],
        value=_quantity(tx.get("value", 0)),
        data=tx.get("data", b""),
        operation=_quantity(tx.get("operation", 0)),
        safe_tx_gas=_quantity(tx.get("safeTxGas", 0)),
        base_gas=_quantity(tx.get("baseGas", 0)),
        gas_price=_quantity(tx.get("gasPrice", 0)),
        gas_token=tx.get("gasToken", "0x0000000000000000000000000000000000000000"),
        refund_receiver=tx.get(
            "refundReceiver", "0x0000000000000000000000000000000000000000"
        ),
    )


def encode_safe_transaction(tx: SafeTransaction) -> bytes:
    n = big_endian_int.serialize
    a = to_canonical_address
    encoded: bytes = rlp.encode(
        [
            a(tx.to),
            n(tx.value),
            tx.data,
            n(int(tx.operation)),
            n(tx.safe_tx_gas),
            n(tx.base_gas),
            n(tx.gas_price),
            a(tx.gas_token),
            a(tx.refund_receiver),
        ]
    )
    return encoded


def _decode_uint(name: str, field: bytes) -> int:
    if len(field) > UINT256_SIZE:
        raise MalformedEncoding(f"Field {name} exceeds 256 bits")
    if field[:1] == b"\x00":
        raise MalformedEncoding(f"Field {name} is not minimally encoded")
    return int.from_bytes(field, "big")


def _decode_address(name: str, field: bytes) -> str:
    if len(field) != ADDRESS_SIZE:
        raise InvalidAddress(f"Field {name} is {len(field)} bytes, expected {ADDRESS_SIZE}")
    return to_checksum_address(field)


def _decode_operation(field: bytes) -> Operation:
    operation = _decode_uint("operation", field)
    if operation not in (Operation.CALL, Operation.DELEGATE_CALL):
        raise InvalidOperation(operation)
    return Operation(operation)


def decode_safe_transaction(data: bytes | str) -> SafeTransaction:
    try:
        raw = as_bytes(data)
    except ValueError as e:
        raise MalformedEncoding("Invalid Safe transaction RLP encoding: not valid hex") from e
    if not raw:
        raise MalformedEncoding("Invalid Safe transaction RLP encoding: empty input")
    try:
        decoded = rlp.decode(raw, strict=True)
    except DecodingError as e:
        raise MalformedEncoding(f"Invalid Safe transaction RLP encoding: {e}") from e

    if (
        not isinstance(decoded, (list, tuple))
        or len(decoded) != FIELD_COUNT
        or any(not isinstance(field, bytes) for field in decoded)
    ):
        raise MalformedEncoding("Invalid Safe transaction RLP encoding")

    to, value, call_data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund = decoded
    tx = SafeTransaction(
        to=_decode_address("to", to),
        value=_decode_uint("value", value),
        data=call_data,
        operation=_decode_operation(operation),
        safe_tx_gas=_decode_uint("safeTxGas", safe_tx_gas),
        base_gas=_decode_uint("baseGas", base_gas),
        gas_price=_decode_uint("gasPrice", gas_price),
        gas_token=_decode_address("gasToken", gas_token),
        refund_receiver=_decode_address("refundReceiver", refund),
    )
    logger.debug("Decoded Safe transaction to %s (%d data bytes)", tx.to, len(tx.data))
    return tx
