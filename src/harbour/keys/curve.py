"""
Curve25519 Montgomery ladder as specified in RFC 7748 Section 5.

Used to compute public keys where the key backend cannot derive one from
a private scalar, and as a fully software key agreement backend.
"""

P = 2**255 - 19
A24 = 121665
BASE_POINT = (9).to_bytes(32, "little")


def modinv(x: int, p: int = P) -> int:
    """Modular inverse modulo p (p is prime)."""
    return pow(x, p - 2, p)


def decode_scalar(k: bytes) -> int:
    """Clamp a 32 byte scalar as required by X25519."""
    scalar = bytearray(k)
    scalar[0] &= 248
    scalar[31] &= 127
    scalar[31] |= 64
    return int.from_bytes(scalar, "little")


def decode_u_coordinate(u: bytes) -> int:
    # The most significant bit is masked, non-canonical values are reduced.
    value = bytearray(u)
    value[31] &= 127
    return int.from_bytes(value, "little") % P


def encode_u_coordinate(u: int) -> bytes:
    return (u % P).to_bytes(32, "little")


def _cswap(swap: int, x2: int, x3: int) -> tuple[int, int]:
    # Python integers are not constant time; this mirrors the RFC structure.
    dummy = swap * (x2 - x3)
    return x2 - dummy, x3 + dummy


def x25519(k: bytes, u: bytes) -> bytes:
    if len(k) != 32 or len(u) != 32:
        raise ValueError("X25519 scalars and u-coordinates are 32 bytes")

    scalar = decode_scalar(k)
    x1 = decode_u_coordinate(u)
    x2, z2 = 1, 0
    x3, z3 = x1, 1
    swap = 0

    for t in reversed(range(255)):
        k_t = (scalar >> t) & 1
        swap ^= k_t
        x2, x3 = _cswap(swap, x2, x3)
        z2, z3 = _cswap(swap, z2, z3)
        swap = k_t

        a = (x2 + z2) % P
        aa = a * a % P
        b = (x2 - z2) % P
        bb = b * b % P
        e = (aa - bb) % P
        c = (x3 + z3) % P
        d = (x3 - z3) % P
        da = d * a % P
        cb = c * b % P
        x3 = (da + cb) ** 2 % P
        z3 = x1 * (da - cb) ** 2 % P
        x2 = aa * bb % P
        z2 = e * (aa + A24 * e) % P

    x2, x3 = _cswap(swap, x2, x3)
    z2, z3 = _cswap(swap, z2, z3)
    return encode_u_coordinate(x2 * modinv(z2) % P)


def x25519_base(k: bytes) -> bytes:
    """Public key for the private scalar k."""
    return x25519(k, BASE_POINT)
