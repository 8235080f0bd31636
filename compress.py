"""SHA-256 block compression.

Given the current hash state `H[0..7]` and the 64-word message schedule
`w[0..63]` of one block, each of the 64 rounds computes:

    S1    = (e >>> 6) ^ (e >>> 11) ^ (e >>> 25)
    ch    = (e & f) ^ (~e & g)
    temp1 = h + S1 + ch + k[i] + w[i]

    S0    = (a >>> 2) ^ (a >>> 13) ^ (a >>> 22)
    maj   = (a & b) ^ (a & c) ^ (b & c)
    temp2 = S0 + maj

    (a, b, c, d, e, f, g, h) = (temp1 + temp2, a, b, c, d + temp1, e, f, g)

and after the last round the working words are added back into `H`.
All additions are performed modulo 2**32.
"""

from __future__ import annotations

from typing import Sequence, Tuple


MASK32 = 0xFFFFFFFF

State = Tuple[int, int, int, int, int, int, int, int]

# First 32 bits of the fractional parts of the square roots of the first
# 8 primes 2..19 (FIPS 180-4, 5.3.3).
H0: State = (
    0x6A09E667,
    0xBB67AE85,
    0x3C6EF372,
    0xA54FF53A,
    0x510E527F,
    0x9B05688C,
    0x1F83D9AB,
    0x5BE0CD19,
)

# First 32 bits of the fractional parts of the cube roots of the first
# 64 primes (FIPS 180-4, 4.2.2).
K_VALUES: Tuple[int, ...] = (
    0x428A2F98, 0x71374491, 0xB5C0FBCF, 0xE9B5DBA5,
    0x3956C25B, 0x59F111F1, 0x923F82A4, 0xAB1C5ED5,
    0xD807AA98, 0x12835B01, 0x243185BE, 0x550C7DC3,
    0x72BE5D74, 0x80DEB1FE, 0x9BDC06A7, 0xC19BF174,
    0xE49B69C1, 0xEFBE4786, 0x0FC19DC6, 0x240CA1CC,
    0x2DE92C6F, 0x4A7484AA, 0x5CB0A9DC, 0x76F988DA,
    0x983E5152, 0xA831C66D, 0xB00327C8, 0xBF597FC7,
    0xC6E00BF3, 0xD5A79147, 0x06CA6351, 0x14292967,
    0x27B70A85, 0x2E1B2138, 0x4D2C6DFC, 0x53380D13,
    0x650A7354, 0x766A0ABB, 0x81C2C92E, 0x92722C85,
    0xA2BFE8A1, 0xA81A664B, 0xC24B8B70, 0xC76C51A3,
    0xD192E819, 0xD6990624, 0xF40E3585, 0x106AA070,
    0x19A4C116, 0x1E376C08, 0x2748774C, 0x34B0BCB5,
    0x391C0CB3, 0x4ED8AA4A, 0x5B9CCA4F, 0x682E6FF3,
    0x748F82EE, 0x78A5636F, 0x84C87814, 0x8CC70208,
    0x90BEFFFA, 0xA4506CEB, 0xBEF9A3F7, 0xC67178F2,
)


def rotr(x: int, n: int) -> int:
    """Right-rotate a 32-bit word `x` by `n` bits."""
    x &= MASK32
    return ((x >> n) | (x << (32 - n))) & MASK32


def shr(x: int, n: int) -> int:
    """Right-shift a 32-bit word `x` by `n` bits."""
    return (x & MASK32) >> n


def small_sigma0(x: int) -> int:
    """σ0, used when expanding the message schedule."""
    return rotr(x, 7) ^ rotr(x, 18) ^ shr(x, 3)


def small_sigma1(x: int) -> int:
    """σ1, used when expanding the message schedule."""
    return rotr(x, 17) ^ rotr(x, 19) ^ shr(x, 10)


def big_sigma0(a: int) -> int:
    return rotr(a, 2) ^ rotr(a, 13) ^ rotr(a, 22)


def big_sigma1(e: int) -> int:
    return rotr(e, 6) ^ rotr(e, 11) ^ rotr(e, 25)


def ch(e: int, f: int, g: int) -> int:
    """Choice: each bit of `e` selects the bit of `f` (1) or `g` (0)."""
    return ((e & f) ^ (~e & g)) & MASK32


def maj(a: int, b: int, c: int) -> int:
    """Majority of the three input bits."""
    return (a & b) ^ (a & c) ^ (b & c)


def compression_round(state: State, k: int, w: int) -> State:
    """Perform one SHA-256 compression round.

    Parameters
    ----------
    state : tuple[int, ...]
        Working words `(a, b, c, d, e, f, g, h)` before the round.
    k : int
        Round constant `k[i]`.
    w : int
        Message schedule word `w[i]`.

    Returns
    -------
    tuple[int, ...]
        Working words after the round, each reduced modulo 2**32.
    """
    a, b, c, d, e, f, g, h = state

    temp1 = (h + big_sigma1(e) + ch(e, f, g) + k + w) & MASK32
    temp2 = (big_sigma0(a) + maj(a, b, c)) & MASK32

    return (
        (temp1 + temp2) & MASK32,
        a,
        b,
        c,
        (d + temp1) & MASK32,
        e,
        f,
        g,
    )


def compress_block(state: Sequence[int], ws: Sequence[int]) -> State:
    """Compress one block into the running hash state.

    Parameters
    ----------
    state : Sequence[int]
        The 8-word hash state `H_i` before this block.
    ws : Sequence[int]
        The 64-word message schedule `w[0..63]` of this block.

    Returns
    -------
    tuple[int, ...]
        The next hash state `H_{i+1}[j] = (H_i[j] + working[j]) mod 2**32`.
    """
    if len(state) != 8:
        raise ValueError(f"compress_block expects an 8-word state, got {len(state)}")
    if len(ws) != 64:
        raise ValueError(f"compress_block expects 64 message schedule words, got {len(ws)}")

    working: State = tuple(word & MASK32 for word in state)
    for i in range(64):
        working = compression_round(working, K_VALUES[i], ws[i])

    return tuple((h + x) & MASK32 for h, x in zip(state, working))
