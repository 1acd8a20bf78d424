"""Data models for the tithe-book pipeline."""

from .enums import (
    ValidationReason,
    OrderAction,
    ActionType,
    SyncStatus,
    WarningLevel,
    WarningKind,
    ImageQuality,
    CorrectionSource,
)
from .registry import (
    RosterMember,
    MemberOrderEntry,
    OrderHistoryEntry,
    OrderSnapshot,
    AssemblyMetadata,
    IntegrityReport,
    RestoreResult,
    LearnedAlias,
    AmountCorrection,
)
from .ledger import (
    ExtractedEntry,
    ScoredMember,
    MatchResult,
    AmountValidation,
    MemberTitheHistory,
    TitheRecord,
    TransactionLogEntry,
)
from .sync import PendingAction, SyncReport
from .batch import (
    BatchFile,
    BatchContext,
    ExtractionHint,
    BatchWarning,
    BatchProgress,
    BatchResult,
)

__all__ = [
    # Enums
    "ValidationReason",
    "OrderAction",
    "ActionType",
    "SyncStatus",
    "WarningLevel",
    "WarningKind",
    "ImageQuality",
    "CorrectionSource",
    # Registry
    "RosterMember",
    "MemberOrderEntry",
    "OrderHistoryEntry",
    "OrderSnapshot",
    "AssemblyMetadata",
    "IntegrityReport",
    "RestoreResult",
    "LearnedAlias",
    "AmountCorrection",
    # Ledger
    "ExtractedEntry",
    "ScoredMember",
    "MatchResult",
    "AmountValidation",
    "MemberTitheHistory",
    "TitheRecord",
    "TransactionLogEntry",
    # Sync
    "PendingAction",
    "SyncReport",
    # Batch
    "BatchFile",
    "BatchContext",
    "ExtractionHint",
    "BatchWarning",
    "BatchProgress",
    "BatchResult",
]
