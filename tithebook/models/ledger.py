"""Ledger models: OCR rows, reconciled records, match and amount results."""

from dataclasses import dataclass, field
from typing import Optional, List

from .enums import ValidationReason
from .registry import RosterMember


@dataclass(frozen=True)
class ExtractedEntry:
    """
    One OCR-derived ledger row, exactly as the extractor read it.
    Immutable once created.
    """
    sequence_number: int
    raw_name: str
    amount: float = 0.0
    confidence: float = 1.0
    raw_amount: Optional[str] = None  # amount text as printed, e.g. "1OO"


@dataclass
class ScoredMember:
    """A roster candidate with its similarity score."""
    member: RosterMember
    score: float


@dataclass
class MatchResult:
    """Outcome of matching one raw name against a roster."""
    raw_name: str
    member: Optional[RosterMember] = None
    score: float = 0.0
    suggestions: List[ScoredMember] = field(default_factory=list)
    from_alias: bool = False

    @property
    def is_matched(self) -> bool:
        return self.member is not None


@dataclass
class AmountValidation:
    """Classification of one amount."""
    reason: ValidationReason = ValidationReason.OK
    message: str = ""
    suggested_amount: Optional[float] = None
    confidence: Optional[float] = None

    @property
    def is_flagged(self) -> bool:
        return self.reason in (
            ValidationReason.UNUSUAL_HIGH,
            ValidationReason.UNUSUAL_LOW,
            ValidationReason.ANOMALY,
        )


@dataclass
class MemberTitheHistory:
    """Giving statistics for one member, built from prior submissions."""
    member_id: str
    average_amount: float
    standard_deviation: float
    min_amount: float
    max_amount: float
    last_amount: float
    occurrences: int


@dataclass
class TitheRecord:
    """
    Reconciled ledger row handed downstream.

    membership_identity holds the matched member's display name, or an
    "[UNMATCHED] <raw name>" marker. narration collects bracketed
    machine-readable notes.
    """
    sequence_number: int
    raw_name: str
    amount: float = 0.0
    confidence: float = 1.0
    raw_amount: Optional[str] = None
    membership_identity: str = ""
    narration: str = ""
    member: Optional[RosterMember] = None
    validation: Optional[AmountValidation] = None

    @classmethod
    def from_entry(cls, entry: ExtractedEntry) -> "TitheRecord":
        return cls(
            sequence_number=entry.sequence_number,
            raw_name=entry.raw_name,
            amount=entry.amount,
            confidence=entry.confidence,
            raw_amount=entry.raw_amount,
            membership_identity=entry.raw_name,
        )

    @property
    def is_matched(self) -> bool:
        return self.member is not None

    def add_note(self, note: str) -> None:
        """Prepend a bracketed note to the narration."""
        self.narration = f"{note} {self.narration}".strip()


@dataclass
class TransactionLogEntry:
    """A prior submission for an assembly, used as giving history."""
    assembly_name: str
    records: List[TitheRecord] = field(default_factory=list)
    period: Optional[str] = None
