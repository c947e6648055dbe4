"""
Deterministic document paths for a store namespace.

Every store keeps its documents under a hidden ``.{namespace}`` directory:
the summary at ``.{namespace}/{namespace}.json`` and each chunk at
``.{namespace}/{index:05d}.json``.
"""

from typing import Callable

CHUNK_KEY_WIDTH = 5

# Maps a file path to the key stored in the lookup table
KeyFunc = Callable[[str], str]


def identity_key(path: str) -> str:
    """Default key function: the lookup stores paths unchanged."""
    return path


def namespace_dir(namespace: str) -> str:
    """Return the virtual directory holding a namespace's documents."""
    return f".{namespace}"


def summary_path(namespace: str) -> str:
    """Return the logical path of the summary document."""
    return f"{namespace_dir(namespace)}/{namespace}.json"


def chunk_key(chunk_index: int) -> str:
    """Return the zero-padded key of a chunk, e.g. ``00017``."""
    if chunk_index < 0:
        raise ValueError(f"Chunk index must be non-negative, got {chunk_index}")
    return str(chunk_index).zfill(CHUNK_KEY_WIDTH)


def chunk_key_to_path(namespace: str, key: str) -> str:
    """Return the logical path of the chunk document with the given key."""
    return f"{namespace_dir(namespace)}/{key}.json"


def chunk_path(namespace: str, chunk_index: int) -> str:
    """Return the logical path of the chunk document at ``chunk_index``."""
    return chunk_key_to_path(namespace, chunk_key(chunk_index))
