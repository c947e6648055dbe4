"""
Data models for the chunked document store.

Provides the file record, the metadata envelope and the summary document,
together with the merge rules used when a summary is loaded from the remote.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_STORE_VERSION = "1"

# Keys of the metadata document that map onto typed StoreMeta fields
RESERVED_META_KEYS = ("version", "created_at", "updated_at")


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Convert a timestamp from a remote document into a datetime.

    Args:
        value: A datetime, an ISO-8601 string (a trailing ``Z`` is accepted),
            or a falsy value.

    Returns:
        Parsed datetime, or None if the value is empty or unparseable.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Ignoring unparseable timestamp: {value!r}")
            return None
    logger.warning(f"Ignoring timestamp of unsupported type {type(value).__name__}")
    return None


def _format_timestamp(value: datetime) -> str:
    return value.isoformat()


@dataclass
class StructuredFile:
    """
    A single file record stored inside a chunk.

    Attributes:
        name: Display name of the file
        path: Path of the file; the record's identity key
        content: Opaque payload, stored and returned as-is
    """

    name: str = ""
    path: str = ""
    content: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert the record to the chunk document shape."""
        return {"name": self.name, "path": self.path, "content": self.content}

    def to_json(self) -> str:
        """Serialize the record to a JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StructuredFile":
        """Create a StructuredFile from a chunk document entry."""
        return cls(
            name=data.get("name", ""),
            path=data.get("path", ""),
            content=data.get("content"),
        )

    @classmethod
    def coerce(cls, value: "StructuredFile | Mapping[str, Any]") -> "StructuredFile":
        """Accept either a record or its dictionary form."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        raise TypeError(f"Expected StructuredFile or mapping, got {type(value).__name__}")


@dataclass
class StoreMeta:
    """
    Metadata envelope of a store.

    Attributes:
        version: Store format version
        created_at: When the store was first created
        updated_at: When the store was last updated
        extra: Caller-defined fields declared by the meta template
    """

    version: str = DEFAULT_STORE_VERSION
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)
    extra: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Return a metadata value by its document key."""
        if key in RESERVED_META_KEYS:
            return getattr(self, key)
        return self.extra.get(key, default)

    def merge(self, values: Mapping[str, Any]) -> None:
        """Shallow-merge document keys into the metadata."""
        for key, value in values.items():
            if key == "version":
                self.version = value
            elif key in ("created_at", "updated_at"):
                setattr(self, key, parse_timestamp(value) or now_utc())
            else:
                self.extra[key] = value

    def to_dict(self) -> dict[str, Any]:
        """Convert to the flat metadata document shape."""
        return {
            "version": self.version,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
            **self.extra,
        }


def resolve_meta(
    remote_meta: Optional[Mapping[str, Any]],
    template: Mapping[str, Any],
    version_default: str = DEFAULT_STORE_VERSION,
) -> StoreMeta:
    """
    Build metadata from a remote summary and the caller's template.

    The remote value wins when present; otherwise the template default is
    used. ``version`` falls back to ``version_default`` and both timestamps
    fall back to the current time. Keys outside the template are dropped.

    Args:
        remote_meta: ``meta`` section of the loaded summary, if any
        template: Caller-defined metadata fields and their defaults
        version_default: Version used when the remote has none

    Returns:
        Resolved StoreMeta
    """
    remote_meta = remote_meta or {}
    extra = {}
    for key, default in template.items():
        value = remote_meta.get(key)
        extra[key] = value if value is not None else copy.deepcopy(default)

    return StoreMeta(
        version=remote_meta.get("version") or version_default,
        created_at=parse_timestamp(remote_meta.get("created_at")) or now_utc(),
        updated_at=parse_timestamp(remote_meta.get("updated_at")) or now_utc(),
        extra=extra,
    )


@dataclass
class Summary:
    """
    The summary document: metadata plus the full lookup table.

    Attributes:
        meta: Raw ``meta`` mapping as stored remotely
        lookup: One list of file keys per chunk
    """

    meta: dict[str, Any] = field(default_factory=dict)
    lookup: list[list[str]] = field(default_factory=list)

    @classmethod
    def from_remote(cls, data: Any) -> Optional["Summary"]:
        """
        Parse a fetched summary document.

        Returns:
            Summary, or None if the document is missing, empty or not a mapping.
        """
        if not isinstance(data, Mapping) or not data:
            return None
        meta = data.get("meta") or {}
        lookup = data.get("lookup") or []
        return cls(
            meta=dict(meta) if isinstance(meta, Mapping) else {},
            lookup=[list(bucket) for bucket in lookup],
        )


__all__ = [
    "DEFAULT_STORE_VERSION",
    "RESERVED_META_KEYS",
    "StructuredFile",
    "StoreMeta",
    "Summary",
    "now_utc",
    "parse_timestamp",
    "resolve_meta",
]
