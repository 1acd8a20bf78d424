"""Batch processing models: input files, progress events, warnings, results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, List, Dict, Any
from uuid import uuid4

from .enums import WarningKind, WarningLevel
from .ledger import ExtractedEntry, TitheRecord, TransactionLogEntry
from .registry import RosterMember


@dataclass
class BatchFile:
    """One uploaded ledger photograph."""
    name: str
    content: bytes
    mime_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class ExtractionHint:
    """Period context passed to the OCR collaborator."""
    month: Optional[str] = None
    week: Optional[str] = None
    target_date: Optional[date] = None


@dataclass
class BatchContext:
    """Assembly data a batch run reads but never changes."""
    roster: List[RosterMember] = field(default_factory=list)
    transaction_log: List[TransactionLogEntry] = field(default_factory=list)
    hint: Optional[ExtractionHint] = None


@dataclass
class BatchWarning:
    """Structured, non-fatal problem found while processing a batch."""
    kind: WarningKind
    message: str
    level: WarningLevel = WarningLevel.WARNING
    file_name: Optional[str] = None
    sequence_number: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass
class BatchProgress:
    """Emitted once per file, in submission order."""
    completed: int
    total: int
    file_name: str
    accepted: bool
    entries: List[ExtractedEntry] = field(default_factory=list)
    warnings: List[BatchWarning] = field(default_factory=list)


@dataclass
class BatchResult:
    """Final output of a batch run."""
    records: List[TitheRecord] = field(default_factory=list)
    warnings: List[BatchWarning] = field(default_factory=list)
    progress: List[BatchProgress] = field(default_factory=list)
    duplicate_groups: List[List[int]] = field(default_factory=list)
    gaps_detected: List[int] = field(default_factory=list)
    job_id: str = ""

    @property
    def matched_count(self) -> int:
        return sum(1 for r in self.records if r.is_matched)

    @property
    def unmatched_count(self) -> int:
        return len(self.records) - self.matched_count
