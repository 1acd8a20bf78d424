"""Reconciliation engine components."""

from .matcher import MemberMatcher, find_member_by_name, get_top_fuzzy_matches, match_member
from .amount_validator import (
    AmountValidator,
    AssemblyProfile,
    CorrectionBook,
    CorrectionSuggestion,
    build_assembly_profile,
    build_member_history,
    validate_amount,
)
from .page_sequencer import (
    PageSequencer,
    SequenceResult,
    detect_duplicate_pages,
    merge_duplicate_extractions,
    detect_amount_discrepancies,
    sequence_pages,
)
from .orchestrator import BatchOrchestrator

__all__ = [
    "MemberMatcher",
    "find_member_by_name",
    "get_top_fuzzy_matches",
    "match_member",
    "AmountValidator",
    "AssemblyProfile",
    "CorrectionBook",
    "CorrectionSuggestion",
    "build_assembly_profile",
    "build_member_history",
    "validate_amount",
    "PageSequencer",
    "SequenceResult",
    "detect_duplicate_pages",
    "merge_duplicate_extractions",
    "detect_amount_discrepancies",
    "sequence_pages",
    "BatchOrchestrator",
]
