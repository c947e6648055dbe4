"""
Services Layer - The chunked document store and its diagnostics.
"""

from chunkstore.services.chunked_store import (
    ChunkedStore,
    StoreState,
    StoreStatus,
    create_chunked_store,
)
from chunkstore.services.diagnostics import (
    DiagnosticKind,
    FileLookupResult,
    StoreDiagnostic,
)

__all__ = [
    "ChunkedStore",
    "StoreState",
    "StoreStatus",
    "create_chunked_store",
    "DiagnosticKind",
    "StoreDiagnostic",
    "FileLookupResult",
]
