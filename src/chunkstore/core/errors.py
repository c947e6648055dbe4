"""Exception types for chunkstore."""


class ChunkStoreError(Exception):
    """Base exception for chunk store errors."""

    pass


class ConfigurationError(ChunkStoreError, ValueError):
    """Invalid construction arguments or configuration values."""

    pass


class PreconditionError(ChunkStoreError, RuntimeError):
    """Operation called before the store reached the required state.

    Raised when files are read before the summary is loaded, or written
    before the chunks are loaded.
    """

    pass


class RemoteFetchError(ChunkStoreError):
    """Base exception for remote fetch failures."""

    pass


class RetryableRemoteError(RemoteFetchError):
    """Fetch failure that may succeed when attempted again."""

    pass


class NonRetryableRemoteError(RemoteFetchError):
    """Fetch failure that should not be retried."""

    pass
