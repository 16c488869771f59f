"""
Block chunking.

Splits an input stream into ordered, bounded-size blocks. Blocks are
produced lazily and carry a block id derived only from their position.
"""

import base64
import struct
from dataclasses import dataclass, field
from typing import Iterator

from .exceptions import StreamReadError
from .streams import InputStream

# Signed 32-bit little-endian: every id of an upload has the same width.
_BLOCK_INDEX = struct.Struct("<i")
MAX_BLOCK_INDEX = 2 ** 31 - 1


def make_block_id(sequence_index: int) -> str:
    """
    Derive the block id for a position.

    The index is packed as a fixed-width binary integer and base64 encoded,
    so ids are unique per index, equal in length, and reproducible.

    Raises:
        ValueError: If the index is negative or does not fit in 32 bits
    """
    if sequence_index < 0 or sequence_index > MAX_BLOCK_INDEX:
        raise ValueError(f"Block index out of range: {sequence_index}")
    return base64.b64encode(_BLOCK_INDEX.pack(sequence_index)).decode("ascii")


@dataclass(frozen=True)
class Block:
    """A contiguous slice of the input, tagged with its position."""

    sequence_index: int
    offset: int
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def block_id(self) -> str:
        return make_block_id(self.sequence_index)


def block_sizes(total_length: int, max_block_size: int) -> Iterator[int]:
    """Yield the size of each block for a stream of ``total_length`` bytes."""
    if max_block_size <= 0:
        raise ValueError(f"max_block_size must be positive, got {max_block_size}")
    offset = 0
    while offset < total_length:
        size = min(max_block_size, total_length - offset)
        yield size
        offset += size


def iter_blocks(stream: InputStream, max_block_size: int) -> Iterator[Block]:
    """
    Lazily split a stream into blocks covering ``[0, length)``.

    Every block but the last holds exactly ``max_block_size`` bytes; the last
    one holds the remainder. A zero-length stream yields nothing. The
    iterator is not restartable and each block is read only when requested.

    Raises:
        ValueError: If max_block_size is not positive
        StreamReadError: If a chunk cannot be read in full
    """
    total_length = stream.length()
    offset = 0
    for sequence_index, size in enumerate(block_sizes(total_length, max_block_size)):
        try:
            data = stream.read_exact(offset, size)
        except (OSError, EOFError, ValueError) as e:
            raise StreamReadError(offset, size, str(e)) from e
        if len(data) != size:
            raise StreamReadError(offset, size, f"short read of {len(data)} bytes")

        yield Block(sequence_index=sequence_index, offset=offset, data=data)
        offset += size
