"""
Remote fetch adapters.

The store never talks to storage directly. It reads documents through a
fetcher that maps a logical path such as ``.acme/00003.json`` to JSON-like
data. Callers usually pass a plain async function; it is wrapped in
CallableRemoteFetcher.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

from chunkstore.core.errors import ChunkStoreError, RetryableRemoteError

# (path) -> JSON-like, sync or async
RemoteFetchFunc = Callable[[str], Union[Any, Awaitable[Any]]]


class RemoteFetcherInterface(ABC):
    """Abstract interface for remote document fetchers."""

    @abstractmethod
    async def fetch(self, path: str) -> Any:
        """
        Fetch the document stored at a logical path.

        Args:
            path: Logical document path, e.g. ``.acme/acme.json``

        Returns:
            JSON-like document. An empty mapping means nothing is stored yet.

        Raises:
            Exception: Any error means the document is not available now.
        """
        pass


class CallableRemoteFetcher(RemoteFetcherInterface):
    """
    Adapts a fetch function to RemoteFetcherInterface.

    Errors raised by the function are reported as RetryableRemoteError,
    chained to the original. ChunkStoreError subclasses pass through as is.
    """

    def __init__(self, func: RemoteFetchFunc):
        if not callable(func):
            raise TypeError(f"Remote fetch function must be callable, got {type(func).__name__}")
        self._func = func

    async def fetch(self, path: str) -> Any:
        try:
            result = self._func(path)
            if inspect.isawaitable(result):
                result = await result
        except ChunkStoreError:
            raise
        except Exception as e:
            raise RetryableRemoteError(str(e) or type(e).__name__) from e
        return result


def create_remote_fetcher(
    remote: Union[RemoteFetcherInterface, RemoteFetchFunc],
) -> RemoteFetcherInterface:
    """
    Factory function to normalize a remote into a fetcher.

    Args:
        remote: A RemoteFetcherInterface or a fetch function

    Returns:
        RemoteFetcherInterface instance
    """
    if isinstance(remote, RemoteFetcherInterface):
        return remote
    return CallableRemoteFetcher(remote)
