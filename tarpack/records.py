from __future__ import annotations

from typing import BinaryIO, Optional

from .constants import BLOCK_SIZE, END_MARKER_BLOCKS


ZERO_BLOCK = b"\x00" * BLOCK_SIZE
END_MARKER = ZERO_BLOCK * END_MARKER_BLOCKS


def padding_for(size: int) -> int:
    """Number of zero bytes that align ``size`` to the next block boundary."""
    return (BLOCK_SIZE - (size % BLOCK_SIZE)) % BLOCK_SIZE


def is_zero_block(block: bytes) -> bool:
    return block == ZERO_BLOCK


def read_exact(f: BinaryIO, n: int) -> bytes:
    """Read up to ``n`` bytes, looping over short reads from pipes and gzip streams.

    Returns fewer than ``n`` bytes only when the stream is exhausted.
    """
    chunks = []
    remaining = n
    while remaining > 0:
        b = f.read(remaining)
        if not b:
            break
        chunks.append(b)
        remaining -= len(b)
    return b"".join(chunks)


def read_block(f: BinaryIO) -> Optional[bytes]:
    """Read one 512-byte record; None when the stream ends before a full block."""
    b = read_exact(f, BLOCK_SIZE)
    if len(b) != BLOCK_SIZE:
        return None
    return b


def skip_exact(f: BinaryIO, n: int) -> int:
    """Consume ``n`` bytes without seeking; returns how many were actually consumed."""
    consumed = 0
    while consumed < n:
        b = f.read(min(n - consumed, 64 * 1024))
        if not b:
            break
        consumed += len(b)
    return consumed
