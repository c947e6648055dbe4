"""
chunkstore - Chunked document cache with lazy, memoized paging.

File records are grouped into fixed-size chunks that are fetched on demand
through a caller-supplied remote fetch function.
"""

from chunkstore.core import (
    ChunkStoreConfig,
    ChunkStoreError,
    ConfigurationError,
    PreconditionError,
    RemoteFetchError,
    StoreMeta,
    StructuredFile,
    configure_logging,
    load_config,
)
from chunkstore.infrastructure import (
    InMemoryRemoteFetcher,
    RemoteFetcherInterface,
    RetryConfig,
    RetryingRemoteFetcher,
)
from chunkstore.services import (
    ChunkedStore,
    DiagnosticKind,
    FileLookupResult,
    StoreDiagnostic,
    StoreState,
    create_chunked_store,
)

__version__ = "0.1.0"

__all__ = [
    "ChunkedStore",
    "create_chunked_store",
    "StoreState",
    "StructuredFile",
    "StoreMeta",
    "DiagnosticKind",
    "StoreDiagnostic",
    "FileLookupResult",
    "RemoteFetcherInterface",
    "RetryingRemoteFetcher",
    "RetryConfig",
    "InMemoryRemoteFetcher",
    "ChunkStoreConfig",
    "configure_logging",
    "load_config",
    "ChunkStoreError",
    "ConfigurationError",
    "PreconditionError",
    "RemoteFetchError",
]
