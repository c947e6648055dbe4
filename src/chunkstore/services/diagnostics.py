"""
Structured diagnostics for recoverable store faults.

Remote failures and lookup/chunk inconsistencies never raise out of the
store. They are logged and recorded as StoreDiagnostic entries so callers
can inspect them without scraping logs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from chunkstore.core.models import StructuredFile, now_utc


class DiagnosticKind(str, Enum):
    """Kinds of recoverable faults recorded by the store."""

    SUMMARY_UNAVAILABLE = "summary_unavailable"
    CHUNK_UNAVAILABLE = "chunk_unavailable"
    CONSISTENCY_FAULT = "consistency_fault"
    WRITE_REJECTED = "write_rejected"


@dataclass
class StoreDiagnostic:
    """
    A recoverable fault observed by the store.

    Attributes:
        kind: Category of the fault
        message: Human-readable description
        path: File path involved, if any
        chunk_index: Chunk involved, if any
        recorded_at: When the fault was observed
    """

    kind: DiagnosticKind
    message: str
    path: Optional[str] = None
    chunk_index: Optional[int] = None
    recorded_at: datetime = field(default_factory=now_utc)


@dataclass
class FileLookupResult:
    """Outcome of a file lookup.

    ``file`` is None when the path is unknown or its chunk is unavailable.
    ``diagnostic`` is set whenever the lookup hit a fault, including the
    case where a record was returned but its path does not match.
    """

    file: Optional[StructuredFile] = None
    diagnostic: Optional[StoreDiagnostic] = None

    @property
    def found(self) -> bool:
        return self.file is not None

    @property
    def ok(self) -> bool:
        return self.diagnostic is None
