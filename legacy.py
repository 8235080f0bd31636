"""Digests compatible with the admin dashboard's in-browser SHA-256.

Password hashes already stored by the dashboard were produced by a browser
routine that deviates from SHA-256 in two places:

1. Text is encoded one UTF-16 code unit at a time. A unit below 0x80 is
   emitted as is, every other unit as the pair ``0xC0 | (unit >> 6)``,
   ``0x80 | (unit & 0x3F)``. Units from 0x800 upwards therefore produce a
   leading value above 0xFF (up to 0x3FF). Those values are never truncated
   and spill into the neighbouring byte lanes when the block words are
   assembled with shifts and ORs.
2. The bit length is written with JavaScript's ``>>>``, whose shift count
   is taken modulo 32. The eight length bytes are the low four bytes of the
   length twice over, instead of a 64-bit big-endian integer.

The result matches standard SHA-256 only for the empty string. Use
`legacy_hexdigest` to check a stored dashboard digest and `digest.hexdigest`
for everything new.
"""

from __future__ import annotations

from typing import List, Sequence

from compress import H0, MASK32, compress_block
from digest import expand_message_schedule, finalize_digest


def encode_code_units(text: str) -> List[int]:
    """Encode `text` the way the dashboard did before hashing.

    Returns a list of unit values, not bytes: entries may exceed 0xFF.
    Characters outside the Basic Multilingual Plane become two surrogate
    units, each encoded separately.
    """
    raw = text.encode("utf-16-be", "surrogatepass")
    units: List[int] = []
    for i in range(0, len(raw), 2):
        code = (raw[i] << 8) | raw[i + 1]
        if code < 0x80:
            units.append(code)
        else:
            units.append(0xC0 | (code >> 6))
            units.append(0x80 | (code & 0x3F))
    return units


def pad_code_units(units: Sequence[int]) -> List[int]:
    """Pad encoded units to a multiple of 64 entries, length field included."""
    bit_len = (len(units) * 8) & MASK32

    padded = list(units)
    padded.append(0x80)
    while (len(padded) % 64) != 56:
        padded.append(0x00)

    for i in range(7, -1, -1):
        padded.append((bit_len >> ((i * 8) % 32)) & 0xFF)
    return padded


def _block_words(padded: Sequence[int], offset: int) -> List[int]:
    """Assemble the 16 words of the block starting at `offset`."""
    words = []
    for i in range(16):
        u0, u1, u2, u3 = padded[offset + 4 * i : offset + 4 * i + 4]
        words.append(((u0 << 24) | (u1 << 16) | (u2 << 8) | u3) & MASK32)
    return words


def legacy_digest(text: str) -> bytes:
    """Return the 32-byte dashboard-compatible digest of `text`."""
    padded = pad_code_units(encode_code_units(text))

    state = H0
    for offset in range(0, len(padded), 64):
        state = compress_block(state, expand_message_schedule(_block_words(padded, offset)))
    return finalize_digest(state)


def legacy_hexdigest(text: str) -> str:
    """Return the 64-character hex digest the dashboard stored for `text`."""
    return legacy_digest(text).hex()
