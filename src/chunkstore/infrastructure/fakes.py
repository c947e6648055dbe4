"""
Fake implementations for testing.

Provides an in-memory remote for use in unit and integration tests
without a real storage backend.
"""

from __future__ import annotations

import copy
from collections import Counter
from typing import Any

from chunkstore.core.errors import RemoteFetchError
from chunkstore.infrastructure.remote import RemoteFetcherInterface


class InMemoryRemoteFetcher(RemoteFetcherInterface):
    """
    In-memory remote for testing.

    Documents are keyed by logical path. Missing paths resolve to an empty
    mapping, the same way a first-run remote reports "nothing stored". Every
    fetch is recorded so tests can count round trips.
    """

    def __init__(self, documents: dict[str, Any] | None = None):
        """
        Initialize the fake remote.

        Args:
            documents: Initial documents keyed by logical path
        """
        self._documents: dict[str, Any] = dict(documents or {})
        self._failures: dict[str, Exception] = {}
        self.fetched: list[str] = []

    async def fetch(self, path: str) -> Any:
        """Return a deep copy of the stored document, or raise an injected failure."""
        self.fetched.append(path)
        if path in self._failures:
            raise self._failures[path]
        return copy.deepcopy(self._documents.get(path, {}))

    def put(self, path: str, document: Any) -> None:
        """Store a document at a logical path."""
        self._documents[path] = copy.deepcopy(document)

    def put_many(self, documents: dict[str, Any]) -> None:
        """Store several documents, e.g. the output of ``ChunkedStore.export()``."""
        for path, document in documents.items():
            self.put(path, document)

    def fail(self, path: str, error: Exception | None = None) -> None:
        """Make every fetch of ``path`` raise until ``recover`` is called."""
        self._failures[path] = error or RemoteFetchError(f"Injected failure for {path}")

    def recover(self, path: str) -> None:
        """Remove an injected failure."""
        self._failures.pop(path, None)

    def fetch_count(self, path: str) -> int:
        """Number of times ``path`` was fetched."""
        return Counter(self.fetched)[path]

    @property
    def documents(self) -> dict[str, Any]:
        return dict(self._documents)

    def clear(self) -> None:
        """Clear all documents, failures and fetch history."""
        self._documents.clear()
        self._failures.clear()
        self.fetched.clear()
