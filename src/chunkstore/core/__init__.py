"""
Core Layer - Configuration, data models, path scheme, and paging helpers.
"""

from chunkstore.core.config import (
    ChunkStoreConfig,
    LoggingConfig,
    RemoteConfig,
    StoreConfig,
    configure_logging,
    load_config,
)
from chunkstore.core.errors import (
    ChunkStoreError,
    ConfigurationError,
    NonRetryableRemoteError,
    PreconditionError,
    RemoteFetchError,
    RetryableRemoteError,
)
from chunkstore.core.models import (
    DEFAULT_STORE_VERSION,
    StoreMeta,
    StructuredFile,
    Summary,
    now_utc,
    parse_timestamp,
    resolve_meta,
)
from chunkstore.core.paging import (
    chunk_index_for_position,
    content_offset,
    find_bucket,
    partition,
    tail_bucket_has_room,
)
from chunkstore.core.paths import (
    CHUNK_KEY_WIDTH,
    KeyFunc,
    chunk_key,
    chunk_key_to_path,
    chunk_path,
    identity_key,
    namespace_dir,
    summary_path,
)

__all__ = [
    # Config
    "ChunkStoreConfig",
    "StoreConfig",
    "RemoteConfig",
    "LoggingConfig",
    "configure_logging",
    "load_config",
    # Errors
    "ChunkStoreError",
    "ConfigurationError",
    "PreconditionError",
    "RemoteFetchError",
    "RetryableRemoteError",
    "NonRetryableRemoteError",
    # Models
    "DEFAULT_STORE_VERSION",
    "StructuredFile",
    "StoreMeta",
    "Summary",
    "now_utc",
    "parse_timestamp",
    "resolve_meta",
    # Paging
    "partition",
    "chunk_index_for_position",
    "find_bucket",
    "tail_bucket_has_room",
    "content_offset",
    # Paths
    "CHUNK_KEY_WIDTH",
    "KeyFunc",
    "identity_key",
    "namespace_dir",
    "summary_path",
    "chunk_key",
    "chunk_key_to_path",
    "chunk_path",
]
