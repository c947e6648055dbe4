"""
Chunked document store.

Partitions a collection of path-addressed file records into fixed-size
chunks. A summary document holds the metadata and a lookup table with one
bucket of file keys per chunk; each chunk is a separate document. Chunks are
fetched lazily through a remote fetcher and memoized.

Usage:
    store = ChunkedStore("acme", fetch_document)
    await store.load_summary()
    record = await store.get_file("src/index.js")

    await store.load()
    store.add_file(StructuredFile(name="app", path="src/app.js", content={}))
    documents = store.export()
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from chunkstore.core.config import ChunkStoreConfig, load_config
from chunkstore.core.errors import ConfigurationError, PreconditionError
from chunkstore.core.models import (
    StoreMeta,
    StructuredFile,
    Summary,
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
    KeyFunc,
    chunk_key,
    chunk_key_to_path,
    identity_key,
    summary_path,
)
from chunkstore.infrastructure.remote import (
    RemoteFetcherInterface,
    RemoteFetchFunc,
    create_remote_fetcher,
)
from chunkstore.infrastructure.retry import RetryConfig, RetryingRemoteFetcher
from chunkstore.services.diagnostics import (
    DiagnosticKind,
    FileLookupResult,
    StoreDiagnostic,
)

logger = logging.getLogger(__name__)

FileInput = Union[StructuredFile, Mapping[str, Any]]

_DIAGNOSTIC_LOG_LEVELS = {
    DiagnosticKind.SUMMARY_UNAVAILABLE: logging.INFO,
    DiagnosticKind.CHUNK_UNAVAILABLE: logging.WARNING,
    DiagnosticKind.WRITE_REJECTED: logging.WARNING,
    DiagnosticKind.CONSISTENCY_FAULT: logging.ERROR,
}


class StoreState(str, Enum):
    """Lifecycle of a store. Transitions only move forward."""

    EMPTY = "empty"
    SUMMARY_LOADED = "summary_loaded"
    CHUNKS_LOADED = "chunks_loaded"


@dataclass
class StoreStatus:
    """Which load phases have completed."""

    summary_loaded: bool = False
    chunks_loaded: bool = False


class ChunkedStore:
    """
    Lazily paged store of file records under one namespace.

    Keeps three views in lockstep: the lookup table (keys per chunk), the
    chunk cache (records per chunk, None until fetched) and the flattened
    content list (all loaded records in chunk order).
    """

    def __init__(
        self,
        namespace: str,
        remote: Union[RemoteFetcherInterface, RemoteFetchFunc],
        meta_template: Optional[Mapping[str, Any]] = None,
        *,
        chunk_size: Optional[int] = None,
        key_func: Optional[KeyFunc] = None,
        config: Optional[ChunkStoreConfig] = None,
    ):
        """
        Initialize an empty store.

        Args:
            namespace: Name of the store's virtual directory
            remote: Async fetch function ``(path) -> JSON-like`` or a
                RemoteFetcherInterface
            meta_template: Caller-defined metadata fields and their defaults
            chunk_size: Files per chunk. Defaults to ``config.store.chunk_size``.
            key_func: Maps a file path to its lookup key. Defaults to identity.
            config: Store configuration. Defaults to the packaged defaults.

        Raises:
            ConfigurationError: If namespace or remote is missing, or the
                chunk size is not a positive integer
        """
        if not namespace:
            raise ConfigurationError("namespace is required")
        if remote is None:
            raise ConfigurationError("remote fetch function is required")

        config = config or ChunkStoreConfig()
        size = config.store.chunk_size if chunk_size is None else chunk_size
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise ConfigurationError(f"chunk_size must be a positive integer, got {size!r}")

        try:
            self._remote = create_remote_fetcher(remote)
        except TypeError as e:
            raise ConfigurationError(str(e)) from e

        self._namespace = namespace
        self._chunk_size = size
        self._key_func: KeyFunc = key_func or identity_key
        self._version_default = config.store.version
        self._meta_template = dict(meta_template or {})
        self._meta: StoreMeta = resolve_meta(None, self._meta_template, self._version_default)
        self._lookup: list[list[str]] = []
        self._chunks: list[Optional[list[StructuredFile]]] = []
        self._content: list[StructuredFile] = []
        self._status = StoreStatus()
        self._diagnostics: list[StoreDiagnostic] = []

    # ─────────────────────────────────────────────────────────────────
    # Accessors
    # ─────────────────────────────────────────────────────────────────

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def summary_path(self) -> str:
        return summary_path(self._namespace)

    @property
    def meta(self) -> StoreMeta:
        return self._meta

    @property
    def meta_template(self) -> dict[str, Any]:
        return dict(self._meta_template)

    @property
    def lookup(self) -> list[list[str]]:
        return [list(bucket) for bucket in self._lookup]

    @property
    def chunks(self) -> list[Optional[list[StructuredFile]]]:
        """Copy of the chunk cache; None marks a chunk that was never fetched."""
        return [list(chunk) if chunk is not None else None for chunk in self._chunks]

    @property
    def files(self) -> list[StructuredFile]:
        """Copy of the flattened content list."""
        return list(self._content)

    @property
    def status(self) -> StoreStatus:
        return StoreStatus(self._status.summary_loaded, self._status.chunks_loaded)

    @property
    def state(self) -> StoreState:
        if self._status.chunks_loaded:
            return StoreState.CHUNKS_LOADED
        if self._status.summary_loaded:
            return StoreState.SUMMARY_LOADED
        return StoreState.EMPTY

    @property
    def diagnostics(self) -> tuple[StoreDiagnostic, ...]:
        return tuple(self._diagnostics)

    def clear_diagnostics(self) -> None:
        self._diagnostics.clear()

    # ─────────────────────────────────────────────────────────────────
    # Paths and lookup
    # ─────────────────────────────────────────────────────────────────

    def chunk_key(self, chunk_index: int) -> str:
        return chunk_key(chunk_index)

    def chunk_path(self, chunk_index: int) -> str:
        return chunk_key_to_path(self._namespace, chunk_key(chunk_index))

    def chunk_index_for_file_index(self, file_index: int) -> int:
        return chunk_index_for_position(file_index, self._chunk_size)

    def file_key(self, path: str) -> str:
        return self._key_func(path)

    def is_chunk_loaded(self, chunk_index: int) -> bool:
        if chunk_index < 0 or chunk_index >= len(self._chunks):
            return False
        return bool(self._chunks[chunk_index])

    def find_chunk_index(self, path: str) -> int:
        """Return the chunk whose bucket holds ``path``, or -1."""
        return find_bucket(self._lookup, self.file_key(path))

    def find_offset_in_chunk(self, chunk_index: int, path: str) -> int:
        """Return the position of ``path`` inside its bucket, or -1."""
        try:
            return self._lookup[chunk_index].index(self.file_key(path))
        except (IndexError, ValueError):
            return -1

    def file_exists(self, path: str) -> bool:
        return self.find_chunk_index(path) > -1

    # ─────────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────────

    async def load_summary(self) -> None:
        """
        Fetch the summary and adopt its metadata and lookup table.

        A failed or empty fetch is treated as a first run: the store falls
        back to default metadata and an empty lookup. Never raises on
        remote errors.
        """
        summary: Optional[Summary] = None
        reason = "nothing stored"
        try:
            summary = Summary.from_remote(await self._remote.fetch(self.summary_path))
        except Exception as e:
            reason = str(e) or type(e).__name__

        if summary is None:
            self._record(
                DiagnosticKind.SUMMARY_UNAVAILABLE,
                f"No docs stored yet at {self.summary_path} ({reason})",
                path=self.summary_path,
            )
            summary = Summary()

        self._meta = resolve_meta(summary.meta, self._meta_template, self._version_default)
        self._lookup = summary.lookup
        self._ensure_slot(len(self._lookup) - 1)
        self._status.summary_loaded = True
        logger.debug(
            f"Loaded summary for {self._namespace}: {len(self._lookup)} chunks, "
            f"{sum(len(bucket) for bucket in self._lookup)} files"
        )

    async def load(self) -> None:
        """
        Load the summary if needed, then every chunk in ascending order.

        Chunks that fail to load stay unloaded and are retried on next
        access; the store is still marked as fully loaded.
        """
        if not self._status.summary_loaded:
            await self.load_summary()

        failed = 0
        for chunk_index in range(len(self._lookup)):
            if not await self.load_chunk(chunk_index):
                failed += 1

        self._status.chunks_loaded = True
        if failed:
            logger.warning(f"Loaded {self._namespace} with {failed} unavailable chunk(s)")

    async def load_chunk(self, chunk_index: int) -> bool:
        """
        Fetch a chunk unless it is already cached.

        Returns:
            True if the chunk is cached afterwards or was already cached,
            False if the fetch failed. A failure leaves the store untouched.
        """
        return await self._load_chunk(chunk_index) is None

    async def _load_chunk(self, chunk_index: int) -> Optional[StoreDiagnostic]:
        """Fetch a chunk; return a diagnostic on failure, None on success."""
        if self.is_chunk_loaded(chunk_index):
            return None

        path = self.chunk_path(chunk_index)
        try:
            document = await self._remote.fetch(path)
        except Exception as e:
            return self._record(
                DiagnosticKind.CHUNK_UNAVAILABLE,
                f"Failed to load chunk {path}: {str(e) or type(e).__name__}",
                path=path,
                chunk_index=chunk_index,
            )

        records = self._parse_chunk(document)
        if records is None:
            return self._record(
                DiagnosticKind.CHUNK_UNAVAILABLE,
                f"Chunk {path} is missing or is not a list of file records",
                path=path,
                chunk_index=chunk_index,
            )

        self._ensure_slot(chunk_index)
        start = content_offset(self._chunks, chunk_index)
        self._content[start:start] = records
        self._chunks[chunk_index] = records
        self._check_chunk(chunk_index)
        return None

    def _check_chunk(self, chunk_index: int) -> Optional[StoreDiagnostic]:
        """Compare a freshly loaded chunk with its lookup bucket; never repairs."""
        bucket = self._lookup[chunk_index] if chunk_index < len(self._lookup) else []
        keys = [self.file_key(record.path) for record in self._chunks[chunk_index] or []]
        if keys == bucket:
            return None

        if len(keys) != len(bucket):
            problem = f"has {len(keys)} records but its lookup bucket lists {len(bucket)}"
        else:
            problem = "does not list the paths of its lookup bucket in order"
        return self._record(
            DiagnosticKind.CONSISTENCY_FAULT,
            f"Chunk {chunk_index} of {self._namespace} {problem}. Rebuild?",
            path=self.chunk_path(chunk_index),
            chunk_index=chunk_index,
        )

    @staticmethod
    def _parse_chunk(document: Any) -> Optional[list[StructuredFile]]:
        if not isinstance(document, list):
            return None
        records = []
        for entry in document:
            if not isinstance(entry, (StructuredFile, Mapping)):
                return None
            records.append(StructuredFile.coerce(entry))
        return records

    # ─────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────

    async def get_file(self, path: str) -> Optional[StructuredFile]:
        """
        Return the record stored at ``path``, paging in its chunk if needed.

        Returns:
            The record, or None if the path is unknown or its chunk is
            unavailable. On a lookup/chunk mismatch the stored record is
            still returned; see ``get_file_result`` for the diagnostic.

        Raises:
            PreconditionError: If the summary has not been loaded
        """
        result = await self.get_file_result(path)
        return result.file

    async def get_file_result(self, path: str) -> FileLookupResult:
        """Look up ``path`` and report any fault alongside the record."""
        if not self._status.summary_loaded:
            raise PreconditionError("Must call .load_summary() before accessing files")

        chunk_index = self.find_chunk_index(path)
        if chunk_index == -1:
            return FileLookupResult()

        diagnostic = await self._load_chunk(chunk_index)
        if diagnostic is not None:
            return FileLookupResult(diagnostic=diagnostic)

        chunk = self._chunks[chunk_index] or []
        offset = self.find_offset_in_chunk(chunk_index, path)
        if offset >= len(chunk):
            return FileLookupResult(
                diagnostic=self._record(
                    DiagnosticKind.CONSISTENCY_FAULT,
                    f"Chunk {chunk_index} has {len(chunk)} records but {path} "
                    f"is indexed at {offset}. Rebuild?",
                    path=path,
                    chunk_index=chunk_index,
                )
            )

        record = chunk[offset]
        if record.path != path:
            return FileLookupResult(
                file=record,
                diagnostic=self._record(
                    DiagnosticKind.CONSISTENCY_FAULT,
                    f"Incorrect chunk/lookup: expected {path} in chunk {chunk_index} "
                    f"at {offset}, found {record.path}. Rebuild?",
                    path=path,
                    chunk_index=chunk_index,
                ),
            )
        return FileLookupResult(file=record)

    # ─────────────────────────────────────────────────────────────────
    # Writing
    # ─────────────────────────────────────────────────────────────────

    def add_file(self, file: Optional[FileInput]) -> bool:
        """
        Insert a record, or replace the one already stored at its path.

        Unlike ``update_file`` this cannot page in a chunk. Replacing a path
        whose chunk is not cached (for example after a failed load) is
        rejected with a ``WRITE_REJECTED`` diagnostic, while ``update_file``
        fetches the chunk and succeeds.

        Returns:
            True on success, False if the record was rejected

        Raises:
            PreconditionError: If ``load()`` has not completed
        """
        if not self._status.chunks_loaded:
            raise PreconditionError("Must call .load() before adding files")

        record = self._coerce(file)
        if record is None:
            return False
        return self._upsert(record) is None

    async def update_file(self, file: Optional[FileInput]) -> bool:
        """
        Replace the record stored at the file's path, or insert it if new.

        Pages in the containing chunk first when it is not cached.

        Returns:
            True on success, False if the record was rejected or its chunk
            could not be loaded

        Raises:
            PreconditionError: If ``load()`` has not completed
        """
        if not self._status.chunks_loaded:
            raise PreconditionError("Must call .load() before updating files")

        record = self._coerce(file)
        if record is None:
            return False

        chunk_index = self.find_chunk_index(record.path)
        if chunk_index != -1 and await self._load_chunk(chunk_index) is not None:
            return False
        return self._upsert(record) is None

    @staticmethod
    def _coerce(file: Optional[FileInput]) -> Optional[StructuredFile]:
        if file is None:
            return None
        record = StructuredFile.coerce(file)
        if not record.path:
            logger.debug("Rejecting file record without a path")
            return None
        return record

    def _upsert(self, record: StructuredFile) -> Optional[StoreDiagnostic]:
        """Insert or replace a record; return a diagnostic if it was rejected."""
        chunk_index = self.find_chunk_index(record.path)
        if chunk_index == -1:
            self._append(record)
            return None
        return self._replace(chunk_index, record)

    def _append(self, record: StructuredFile) -> None:
        key = self.file_key(record.path)
        tail = len(self._lookup) - 1
        if self._tail_accepts_append():
            self._lookup[tail].append(key)
        else:
            if tail >= 0 and not self.is_chunk_loaded(tail) and self._lookup[tail]:
                logger.warning(f"Chunk {tail} is not loaded; starting chunk {tail + 1}")
            self._lookup.append([key])
            tail += 1
            self._ensure_slot(tail)
            self._chunks[tail] = []

        chunk = self._chunks[tail]
        position = content_offset(self._chunks, tail) + len(chunk)
        chunk.append(record)
        self._content.insert(position, record)

    def _tail_accepts_append(self) -> bool:
        if not tail_bucket_has_room(self._lookup, self._chunk_size):
            return False
        tail = len(self._lookup) - 1
        chunk = self._chunks[tail]
        return bool(chunk) and len(chunk) == len(self._lookup[tail])

    def _replace(self, chunk_index: int, record: StructuredFile) -> Optional[StoreDiagnostic]:
        chunk = self._chunks[chunk_index]
        if not chunk:
            return self._record(
                DiagnosticKind.WRITE_REJECTED,
                f"Cannot replace {record.path}: chunk {chunk_index} is not loaded",
                path=record.path,
                chunk_index=chunk_index,
            )

        offset = self.find_offset_in_chunk(chunk_index, record.path)
        if offset < 0 or offset >= len(chunk):
            return self._record(
                DiagnosticKind.CONSISTENCY_FAULT,
                f"Cannot replace {record.path}: indexed at {offset} in chunk "
                f"{chunk_index} of {len(chunk)} records. Rebuild?",
                path=record.path,
                chunk_index=chunk_index,
            )

        chunk[offset] = record
        self._content[content_offset(self._chunks, chunk_index) + offset] = record
        return None

    # ─────────────────────────────────────────────────────────────────
    # Metadata
    # ─────────────────────────────────────────────────────────────────

    def update_metadata(self, values: Mapping[str, Any]) -> None:
        """Shallow-merge ``values`` into the metadata."""
        self._meta.merge(values)

    def set_updated_at(self, updated_at: Any) -> None:
        """
        Set ``meta.updated_at``.

        Args:
            updated_at: A datetime or an ISO-8601 string

        Raises:
            ValueError: If the value cannot be read as a timestamp
        """
        timestamp = parse_timestamp(updated_at)
        if timestamp is None:
            raise ValueError(f"Invalid updated_at timestamp: {updated_at!r}")
        self._meta.updated_at = timestamp

    # ─────────────────────────────────────────────────────────────────
    # Output
    # ─────────────────────────────────────────────────────────────────

    def output_summary(self) -> dict[str, Any]:
        """Return the summary document: metadata and lookup table."""
        return {"meta": self._meta.to_dict(), "lookup": self.lookup}

    def output_chunks(self) -> dict[str, list[dict[str, Any]]]:
        """
        Return every chunk document keyed by its logical path.

        When every lookup bucket is cached and all but the last are full,
        the content list is re-sliced into groups of ``chunk_size``,
        independently of the current cache slots. Otherwise each cached
        chunk is emitted at its own slot and unloaded chunks are left out,
        so writing the result back never replaces a chunk document this
        store has not read.
        """
        if self._layout_is_regular():
            return {
                self.chunk_path(index): [record.to_dict() for record in group]
                for index, group in enumerate(partition(self._content, self._chunk_size))
            }

        skipped = [
            index
            for index, bucket in enumerate(self._lookup)
            if bucket and not self.is_chunk_loaded(index)
        ]
        if skipped and self._content:
            self._record(
                DiagnosticKind.CONSISTENCY_FAULT,
                f"Chunks {skipped} of {self._namespace} are not loaded and are left "
                f"out of the output; their stored documents are kept",
            )
        return {
            self.chunk_path(index): [record.to_dict() for record in chunk]
            for index, chunk in enumerate(self._chunks)
            if chunk
        }

    def export(self) -> dict[str, Any]:
        """
        Return all documents to persist: the summary plus every chunk.

        Chunks that are not loaded are omitted; see ``output_chunks``.
        """
        return {self.summary_path: self.output_summary(), **self.output_chunks()}

    # ─────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────

    def _ensure_slot(self, chunk_index: int) -> None:
        missing = chunk_index + 1 - len(self._chunks)
        if missing > 0:
            self._chunks.extend([None] * missing)

    def _layout_is_regular(self) -> bool:
        """True if every bucket is cached in full and only the last is short."""
        last = len(self._lookup) - 1
        for index, bucket in enumerate(self._lookup):
            chunk = self._chunks[index] if index < len(self._chunks) else None
            if len(chunk or []) != len(bucket):
                return False
            if index < last and len(bucket) != self._chunk_size:
                return False
        return True

    def _record(
        self,
        kind: DiagnosticKind,
        message: str,
        path: Optional[str] = None,
        chunk_index: Optional[int] = None,
    ) -> StoreDiagnostic:
        diagnostic = StoreDiagnostic(kind=kind, message=message, path=path, chunk_index=chunk_index)
        self._diagnostics.append(diagnostic)
        logger.log(_DIAGNOSTIC_LOG_LEVELS[kind], message)
        return diagnostic


def create_chunked_store(
    namespace: str,
    remote: Union[RemoteFetcherInterface, RemoteFetchFunc],
    meta_template: Optional[Mapping[str, Any]] = None,
    config_path: Optional[Path | str] = None,
    key_func: Optional[KeyFunc] = None,
) -> ChunkedStore:
    """
    Factory function to create a ChunkedStore from configuration.

    Loads configuration from ``config_path`` (or the packaged defaults) with
    environment overrides, and wraps the remote in a RetryingRemoteFetcher
    when ``remote.max_retries`` is positive.

    Args:
        namespace: Name of the store's virtual directory
        remote: Async fetch function or RemoteFetcherInterface
        meta_template: Caller-defined metadata fields and their defaults
        config_path: Optional YAML or JSON config file
        key_func: Optional path-to-key function

    Returns:
        Configured ChunkedStore
    """
    config = load_config(config_path)

    if remote is not None and config.remote.max_retries > 0:
        remote = RetryingRemoteFetcher(
            create_remote_fetcher(remote),
            RetryConfig(
                max_retries=config.remote.max_retries,
                base_delay=config.remote.base_delay,
                max_delay=config.remote.max_delay,
                exponential_base=config.remote.exponential_base,
            ),
        )

    return ChunkedStore(
        namespace,
        remote,
        meta_template,
        key_func=key_func,
        config=config,
    )
