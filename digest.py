"""SHA-256 digest built on `compress_block` from `compress.py`.

This module provides:

- `sha256(data: bytes) -> bytes`: the 32-byte SHA-256 digest of `data`.
- `hexdigest(text: str) -> str`: the 64-character lowercase hex digest of the
  UTF-8 encoding of `text`. This is what admin password hashes are made of.
- `Sha256`: an incremental hasher with the familiar `update()` / `digest()`
  interface, for input that arrives in pieces (files, streams).
"""

from __future__ import annotations

import codecs
from typing import Iterable, List, Sequence

from compress import H0, MASK32, State, compress_block, small_sigma0, small_sigma1


BLOCK_SIZE = 64
DIGEST_SIZE = 32


def _padding(length: int) -> bytes:
    """Return the padding that follows a message of `length` bytes.

    The '1' bit (0x80), zero bytes until the total is 56 mod 64, then the
    message length in bits as a 64-bit big-endian integer.
    """
    zeros = (55 - length) % BLOCK_SIZE
    ml_bits = (length * 8) & 0xFFFFFFFFFFFFFFFF
    return b"\x80" + b"\x00" * zeros + ml_bits.to_bytes(8, byteorder="big")


def pad_message(message: bytes) -> bytes:
    """Pad the input message according to the SHA-256 specification.

    The result length is a multiple of 64 bytes (512 bits).
    """
    return bytes(message) + _padding(len(message))


def split_into_blocks(padded: bytes) -> List[bytes]:
    """Split a padded message into 64-byte blocks."""
    if len(padded) % BLOCK_SIZE != 0:
        raise ValueError(
            f"Padded message length must be a multiple of 64 bytes, got {len(padded)}"
        )
    return list(_chunks(padded, BLOCK_SIZE))


def _chunks(data: bytes, size: int) -> Iterable[bytes]:
    """Yield successive `size`-byte chunks from `data`."""
    for i in range(0, len(data), size):
        yield data[i : i + size]


def expand_message_schedule(w: Sequence[int]) -> List[int]:
    """Extend the 16 block words `w[0..15]` to the full schedule `w[0..63]`."""
    if len(w) != 16:
        raise ValueError(f"Expected 16 block words, got {len(w)}")

    schedule = [word & MASK32 for word in w] + [0] * 48
    for i in range(16, 64):
        s0 = small_sigma0(schedule[i - 15])
        s1 = small_sigma1(schedule[i - 2])
        schedule[i] = (schedule[i - 16] + s0 + schedule[i - 7] + s1) & MASK32

    return schedule


def build_message_schedule(block: bytes) -> List[int]:
    """Given a 512-bit block, build the 64-word message schedule w[0..63]."""
    if len(block) != BLOCK_SIZE:
        raise ValueError(f"Expected 64-byte block, got {len(block)}")

    words = [int.from_bytes(block[4 * i : 4 * (i + 1)], byteorder="big") for i in range(16)]
    return expand_message_schedule(words)


def finalize_digest(state: Sequence[int]) -> bytes:
    """Convert the final hash state into the 32-byte digest."""
    if len(state) != 8:
        raise ValueError(f"Expected an 8-word state, got {len(state)}")
    return b"".join((word & MASK32).to_bytes(4, byteorder="big") for word in state)


def process_blocks(padded: bytes, state: State = H0) -> State:
    """Run every 64-byte block of `padded` through the compression function.

    Blocks are consumed strictly in order; each one starts from the state
    left by the previous block.
    """
    for block in split_into_blocks(padded):
        state = compress_block(state, build_message_schedule(block))
    return state


def sha256(data: bytes) -> bytes:
    """Compute the SHA-256 digest of `data`."""
    return finalize_digest(process_blocks(pad_message(bytes(data))))


def hexdigest(text: str, encoding: str = "utf-8") -> str:
    """Return the lowercase hex SHA-256 digest of `text`.

    The text is encoded with `encoding` (UTF-8 unless told otherwise) and
    the output is always exactly 64 characters from ``[0-9a-f]``. Lone
    surrogates (e.g. undecodable bytes in `sys.argv`) are encoded as their
    three-byte UTF-8 form, so every `str` can be hashed under UTF-8.
    """
    errors = "surrogatepass" if codecs.lookup(encoding).name == "utf-8" else "strict"
    return sha256(text.encode(encoding, errors)).hex()


class Sha256:
    """Incremental SHA-256 hasher.

    Whole blocks are compressed as soon as they are available; only the
    trailing partial block is buffered. `digest()` pads a copy of the
    buffer, so more data may be fed afterwards.
    """

    name = "sha256"
    digest_size = DIGEST_SIZE
    block_size = BLOCK_SIZE

    def __init__(self, data: bytes = b""):
        self._state: State = H0
        self._buffer = b""
        self._length = 0
        if data:
            self.update(data)

    def update(self, data: bytes) -> None:
        data = bytes(data)
        self._length += len(data)
        buffered = self._buffer + data

        whole = len(buffered) - (len(buffered) % BLOCK_SIZE)
        if whole:
            self._state = process_blocks(buffered[:whole], self._state)
        self._buffer = buffered[whole:]

    def digest(self) -> bytes:
        tail = self._buffer + _padding(self._length)
        return finalize_digest(process_blocks(tail, self._state))

    def hexdigest(self) -> str:
        return self.digest().hex()

    def copy(self) -> "Sha256":
        clone = Sha256()
        clone._state = self._state
        clone._buffer = self._buffer
        clone._length = self._length
        return clone
