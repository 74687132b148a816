"""Object hashes and checksummed 160-bit addresses (chash)."""

from __future__ import annotations

import base64
import hashlib
import secrets
from collections.abc import Iterable, Sequence
from typing import Any

from Crypto.Hash import RIPEMD160

from nrsc.obj_ser import to_string

__all__ = [
    "get_base64_hash",
    "get_chash",
    "is_chash_valid",
    "calc_ball_hash",
    "gen_random_string",
]

_CHASH_BITS = 160

# Digits of the fractional part of pi; the running sums of the first 32
# non-zero digits are the bit positions that carry the checksum.
_PI_DIGITS = (
    7, 1, 8, 2, 8, 1, 8, 2, 8, 4, 5, 9, 0, 4, 5, 2, 3, 5, 3, 6, 0, 2, 8, 7, 4,
    7, 1, 3, 5, 2, 6, 6, 2, 4, 9, 7, 7, 5, 7, 2, 4, 9, 0, 9, 3, 6, 9, 9, 9, 5,
)


def _build_checksum_offsets() -> frozenset[int]:
    offsets: set[int] = set()
    offset = 0
    for digit in _PI_DIGITS:
        if digit > 0 and len(offsets) < 32:
            offset += digit
            offsets.add(offset)
    return frozenset(offsets)


_CHECKSUM_OFFSETS = _build_checksum_offsets()


def _to_bits(data: bytes) -> list[bool]:
    return [bool(byte >> (7 - shift) & 1) for byte in data for shift in range(8)]


def _from_bits(bits: Sequence[bool]) -> bytes:
    padded = list(bits) + [False] * (-len(bits) % 8)
    return bytes(
        sum(bit << (7 - shift) for shift, bit in enumerate(padded[start:start + 8]))
        for start in range(0, len(padded), 8)
    )


def _checksum_bits(data: bytes) -> list[bool]:
    digest = hashlib.sha256(data).digest()
    return _to_bits(bytes((digest[5], digest[13], digest[21], digest[29])))


def get_base64_hash(obj: Any) -> str:
    """Return the base64 SHA-256 of the canonical serialization of *obj*."""
    digest = hashlib.sha256(to_string(obj).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def get_chash(obj: Any) -> str:
    """Return the 32-character base32 checksummed hash of *obj*."""
    digest = RIPEMD160.new(to_string(obj).encode("utf-8")).digest()
    clean = digest[4:]
    data_bits = iter(_to_bits(clean))
    checksum = iter(_checksum_bits(clean))
    bits = [
        next(checksum) if index in _CHECKSUM_OFFSETS else next(data_bits)
        for index in range(_CHASH_BITS)
    ]
    return base64.b32encode(_from_bits(bits)).decode("ascii")


def is_chash_valid(encoded: str) -> bool:
    """Check the embedded checksum of a chash.

    Raises ValueError if *encoded* is not valid base32.
    """
    raw = base64.b32decode(encoded)
    checksum: list[bool] = []
    clean: list[bool] = []
    for index, bit in enumerate(_to_bits(raw)):
        (checksum if index in _CHECKSUM_OFFSETS else clean).append(bit)
    return _checksum_bits(_from_bits(clean)) == checksum


def calc_ball_hash(
    unit: str,
    parent_balls: Iterable[str],
    skiplist_balls: Iterable[str],
    is_nonserial: bool,
) -> str:
    """Return the ball hash of a unit and its parent and skiplist balls."""
    ball: dict[str, Any] = {"unit": unit}
    parents = list(parent_balls)
    skiplist = list(skiplist_balls)
    if parents:
        ball["parent_balls"] = parents
    if skiplist:
        ball["skiplist_balls"] = skiplist
    if is_nonserial:
        ball["is_nonserial"] = True
    return get_base64_hash(ball)


def gen_random_string(length: int) -> str:
    """Return *length* random bytes encoded as base64."""
    return base64.b64encode(secrets.token_bytes(length)).decode("ascii")