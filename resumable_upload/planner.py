"""
Module for splitting a file into fixed-size upload parts.
"""
from typing import List

from .models import ChunkDescriptor

DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024


def count_chunks(file_size: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Number of parts needed to cover ``file_size`` bytes."""
    _validate(file_size, chunk_size)
    return -(-file_size // chunk_size)


def chunk_for(part_number: int, file_size: int,
              chunk_size: int = DEFAULT_CHUNK_SIZE) -> ChunkDescriptor:
    """Byte range of a single 1-based part number.

    Raises:
        ValueError: if the part number falls outside the file
    """
    total = count_chunks(file_size, chunk_size)
    if not 1 <= part_number <= total:
        raise ValueError(f"part_number {part_number} outside 1..{total}")
    return _descriptor(part_number, file_size, chunk_size)


def plan_chunks(file_size: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[ChunkDescriptor]:
    """Split a file into ordered, contiguous part descriptors.

    Args:
        file_size: Size of the file in bytes
        chunk_size: Size of every part except possibly the last

    Returns:
        Descriptors for parts 1..N whose ranges partition [0, file_size)
    """
    total = count_chunks(file_size, chunk_size)
    return [_descriptor(n, file_size, chunk_size) for n in range(1, total + 1)]


def _descriptor(part_number: int, file_size: int, chunk_size: int) -> ChunkDescriptor:
    return ChunkDescriptor(
        part_number=part_number,
        start=(part_number - 1) * chunk_size,
        end=min(part_number * chunk_size, file_size)
    )


def _validate(file_size: int, chunk_size: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0, got {chunk_size}")
    if file_size < 0:
        raise ValueError(f"file_size must be >= 0, got {file_size}")
