"""
Infrastructure Layer - Remote fetch adapters, retry logic, and test fakes.
"""

from chunkstore.infrastructure.fakes import InMemoryRemoteFetcher
from chunkstore.infrastructure.remote import (
    CallableRemoteFetcher,
    RemoteFetchFunc,
    RemoteFetcherInterface,
    create_remote_fetcher,
)
from chunkstore.infrastructure.retry import (
    RetryConfig,
    RetryingRemoteFetcher,
)

__all__ = [
    # Remote
    "RemoteFetcherInterface",
    "RemoteFetchFunc",
    "CallableRemoteFetcher",
    "create_remote_fetcher",
    # Retry
    "RetryConfig",
    "RetryingRemoteFetcher",
    # Fakes for testing
    "InMemoryRemoteFetcher",
]
