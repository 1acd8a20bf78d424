"""Enumerations for the tithe-book pipeline."""

from enum import Enum


class ValidationReason(str, Enum):
    """
    Classification of an extracted amount.

    OK: Nothing unusual (includes zero, a legitimate "did not give")
    OCR_ARTIFACT: A known misread; carries a suggested amount
    UNUSUAL_HIGH / UNUSUAL_LOW: Far from the member's own giving history
    ANOMALY: No personal history, far from the assembly-wide median
    """
    OK = "ok"
    OCR_ARTIFACT = "ocr_artifact"
    UNUSUAL_HIGH = "unusual_high"
    UNUSUAL_LOW = "unusual_low"
    ANOMALY = "anomaly"


class OrderAction(str, Enum):
    """Kind of mutation recorded in the member order history."""
    REORDER = "reorder"
    IMPORT = "import"
    RESET = "reset"
    AI_REORDER = "ai_reorder"
    MANUAL = "manual"


class ActionType(str, Enum):
    """Mutation types that can be queued for remote sync."""
    ADD_MEMBER = "add_member"
    UPDATE_MEMBER = "update_member"
    DELETE_MEMBER = "delete_member"
    UPDATE_TITHE = "update_tithe"


class SyncStatus(str, Enum):
    """State of the offline sync queue."""
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


class WarningLevel(str, Enum):
    """Severity of a batch warning."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class WarningKind(str, Enum):
    """What a batch warning is about."""
    IMAGE_REJECTED = "image_rejected"
    IMAGE_QUALITY = "image_quality"
    EXTRACTION_FAILED = "extraction_failed"
    STRUCTURE_INVALID = "structure_invalid"
    DUPLICATE_PAGES = "duplicate_pages"
    AMOUNT_DISCREPANCY = "amount_discrepancy"
    SEQUENCE_GAP = "sequence_gap"
    SEQUENCE_CONFLICT = "sequence_conflict"
    NO_ROSTER = "no_roster"
    UNMATCHED_NAME = "unmatched_name"
    AMOUNT_FLAGGED = "amount_flagged"
    OCR_CORRECTED = "ocr_corrected"


class ImageQuality(str, Enum):
    """Estimated usefulness of an image for OCR."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CorrectionSource(str, Enum):
    """Where a manual amount correction was made."""
    TITHE_ENTRY = "tithe_entry"
    VERIFICATION = "verification"
    BATCH = "batch"
