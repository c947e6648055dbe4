"""
Fixed-size paging helpers.

Pure functions over the lookup table and the flattened content list. The
store uses them to keep bucket boundaries, chunk slots and content positions
aligned.
"""

from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """
    Split items into consecutive groups of ``size``.

    Every group has exactly ``size`` items except possibly the last one.

    Args:
        items: Ordered items to split
        size: Maximum group length, at least 1

    Returns:
        List of ``ceil(len(items) / size)`` groups
    """
    if size < 1:
        raise ValueError(f"Partition size must be at least 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def chunk_index_for_position(position: int, size: int) -> int:
    """Return the chunk holding the ``position``-th file of a fully paged store."""
    return position // size


def find_bucket(lookup: Sequence[Sequence[str]], key: str) -> int:
    """Return the index of the first bucket containing ``key``, or -1."""
    for index, bucket in enumerate(lookup):
        if key in bucket:
            return index
    return -1


def tail_bucket_has_room(lookup: Sequence[Sequence[str]], size: int) -> bool:
    """Return True if a new key can be appended to the last bucket."""
    return bool(lookup) and len(lookup[-1]) < size


def content_offset(chunks: Sequence[Optional[Sequence[T]]], chunk_index: int) -> int:
    """
    Return where a chunk's records start in the flattened content list.

    The content list holds loaded chunks in chunk order, so the start is the
    number of loaded records in all preceding chunks. For a fully loaded
    store with full buckets this equals ``chunk_index * size``.
    """
    return sum(len(chunk) for chunk in chunks[:chunk_index] if chunk)
