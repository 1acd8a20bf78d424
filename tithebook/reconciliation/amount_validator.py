"""
Amount validation and anomaly detection.

Classifies each extracted amount as fine, a known OCR misread (with a
suggested value), or suspicious relative to the member's own giving
history or to the assembly as a whole. Pure: learned corrections and
statistics are passed in, never fetched.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import structlog

from ..config import get_settings
from ..models import (
    AmountCorrection,
    AmountValidation,
    MemberTitheHistory,
    TransactionLogEntry,
    ValidationReason,
)

logger = structlog.get_logger()

GLOBAL_ASSEMBLY = "__global__"

# Well-known letter-for-digit misreads
OCR_NUMBER_CORRECTIONS: Dict[str, float] = {
    "S0": 50,
    "5O": 50,
    "1OO": 100,
    "10O": 100,
    "1O0": 100,
    "2OO": 200,
    "20O": 200,
    "5OO": 500,
    "50O": 500,
    "1OOO": 1000,
    "100O": 1000,
    "10OO": 1000,
    "1O00": 1000,
}

# Letters that handwriting OCR confuses with digits
_LOOKALIKES = str.maketrans({
    "O": "0", "Q": "0", "D": "0",
    "I": "1", "L": "1", "|": "1",
    "S": "5",
    "B": "8",
    "Z": "2",
    "G": "6",
})


def normalize_amount_text(raw: str) -> str:
    """Canonical form of raw amount text: trimmed, uppercase."""
    return (raw or "").strip().upper()


def visual_key(raw: str) -> str:
    """Amount text with look-alike letters folded onto digits; "1OO" and "1O0" share a key."""
    text = normalize_amount_text(raw).translate(_LOOKALIKES)
    return "".join(ch for ch in text if ch.isdigit() or ch == ".")


def _is_plain_number(text: str) -> bool:
    try:
        float(text.replace(",", ""))
    except ValueError:
        return False
    return True


@dataclass
class CorrectionSuggestion:
    """A learned correction for one raw amount."""
    suggested_amount: float
    confidence: float
    occurrences: int
    is_exact_match: bool
    is_global: bool = False


class CorrectionBook:
    """
    Learned raw -> corrected pairs for one assembly plus the global ones.

    Lookup order: assembly exact, assembly look-alike, global exact,
    global look-alike. The most frequent corrected value wins.
    """

    def __init__(
        self,
        corrections: Iterable[AmountCorrection] = (),
        global_corrections: Iterable[AmountCorrection] = (),
    ):
        self._scopes = [
            (self._index(corrections), False),
            (self._index(global_corrections), True),
        ]

    @staticmethod
    def _index(corrections: Iterable[AmountCorrection]):
        exact: Dict[str, List[float]] = {}
        visual: Dict[str, List[float]] = {}
        for c in corrections:
            original = normalize_amount_text(c.original_value)
            exact.setdefault(original, []).append(float(c.corrected_value))
            key = visual_key(original)
            if key:
                visual.setdefault(key, []).append(float(c.corrected_value))
        return exact, visual

    def __len__(self) -> int:
        return sum(
            len(values)
            for (exact, _), _ in self._scopes
            for values in exact.values()
        )

    def suggest(self, raw: str) -> Optional[CorrectionSuggestion]:
        original = normalize_amount_text(raw)
        if not original:
            return None
        allow_visual = not _is_plain_number(original)

        for (exact, visual), is_global in self._scopes:
            values = exact.get(original)
            is_exact = True
            if not values and allow_visual:
                values = visual.get(visual_key(original))
                is_exact = False
            if values:
                return _suggestion_from(values, is_exact, is_global)
        return None


def _suggestion_from(values: List[float], is_exact: bool, is_global: bool) -> CorrectionSuggestion:
    value, count = Counter(values).most_common(1)[0]
    total = len(values)
    confidence = 0.5 + (count / total) * 0.3 + min(total / 10, 0.15)
    if is_global:
        confidence *= 0.9
    return CorrectionSuggestion(
        suggested_amount=value,
        confidence=min(0.95, confidence),
        occurrences=count,
        is_exact_match=is_exact,
        is_global=is_global,
    )


@dataclass
class AssemblyProfile:
    """Distribution of positive amounts for an assembly and period."""
    median: float
    mean: float
    sample_count: int


def build_assembly_profile(amounts: Iterable[float]) -> Optional[AssemblyProfile]:
    positive = np.array([a for a in amounts if a and a > 0], dtype=float)
    if positive.size == 0:
        return None
    return AssemblyProfile(
        median=float(np.median(positive)),
        mean=float(np.mean(positive)),
        sample_count=int(positive.size),
    )


def _record_belongs_to(record, member_id: str) -> bool:
    if record.member is not None:
        ids = {record.member.membership_id, record.member.old_membership_id or ""}
        return member_id in ids
    identity = record.membership_identity or ""
    return any(
        marker in identity
        for marker in (f"({member_id})", f"({member_id}|", f"|{member_id})")
    )


def build_member_history(
    member_id: str,
    transaction_log: Sequence[TransactionLogEntry],
) -> Optional[MemberTitheHistory]:
    """
    Giving statistics for one member from prior submissions.

    Only positive amounts count; a zero row means the member did not give.
    """
    if not member_id:
        return None

    amounts = [
        float(record.amount)
        for log in transaction_log
        for record in log.records
        if record.amount and record.amount > 0 and _record_belongs_to(record, member_id)
    ]
    if not amounts:
        return None

    values = np.array(amounts, dtype=float)
    return MemberTitheHistory(
        member_id=member_id,
        average_amount=round(float(values.mean()), 2),
        standard_deviation=round(float(values.std()), 2),
        min_amount=float(values.min()),
        max_amount=float(values.max()),
        last_amount=amounts[-1],
        occurrences=len(amounts),
    )


def _fmt(amount: float) -> str:
    return f"{amount:,.0f}" if float(amount).is_integer() else f"{amount:,.2f}"


class AmountValidator:
    """Classifies amounts; never raises for missing or thin history."""

    def __init__(
        self,
        deviation_multiple: Optional[float] = None,
        min_history: Optional[int] = None,
        assembly_multiple: Optional[float] = None,
        min_assembly_samples: Optional[int] = None,
    ):
        settings = get_settings()
        self.deviation_multiple = deviation_multiple if deviation_multiple is not None else settings.member_deviation_multiple
        self.min_history = min_history if min_history is not None else settings.min_history_occurrences
        self.assembly_multiple = assembly_multiple if assembly_multiple is not None else settings.assembly_anomaly_multiple
        self.min_assembly_samples = min_assembly_samples if min_assembly_samples is not None else settings.min_assembly_samples

    def validate(
        self,
        amount: float,
        assembly: str,
        history: Optional[MemberTitheHistory] = None,
        raw_amount: Optional[str] = None,
        corrections: Optional[CorrectionBook] = None,
        profile: Optional[AssemblyProfile] = None,
    ) -> AmountValidation:
        """
        Classify one amount.

        Args:
            amount: Parsed amount
            assembly: Assembly the amount belongs to
            history: The matched member's giving history, if any
            raw_amount: Amount text exactly as OCR read it
            corrections: Learned corrections for the assembly
            profile: Assembly-wide distribution for the period

        Returns:
            AmountValidation with the reason and a readable message
        """
        amount = float(amount or 0)

        artifact = self._check_ocr_artifact(amount, raw_amount, corrections)
        if artifact is not None:
            return artifact

        if amount == 0:
            return AmountValidation(reason=ValidationReason.OK)

        if history and history.occurrences >= self.min_history and history.average_amount > 0:
            avg = history.average_amount
            if amount > avg * self.deviation_multiple:
                return AmountValidation(
                    reason=ValidationReason.UNUSUAL_HIGH,
                    message=f"Amount {_fmt(amount)} is much higher than usual (avg: {_fmt(avg)})",
                )
            if amount < avg / self.deviation_multiple:
                return AmountValidation(
                    reason=ValidationReason.UNUSUAL_LOW,
                    message=f"Amount {_fmt(amount)} is much lower than usual (avg: {_fmt(avg)})",
                )
            return AmountValidation(reason=ValidationReason.OK)

        if profile and profile.sample_count >= self.min_assembly_samples and profile.median > 0:
            median = profile.median
            if amount > median * self.assembly_multiple or amount < median / self.assembly_multiple:
                return AmountValidation(
                    reason=ValidationReason.ANOMALY,
                    message=(
                        f"Amount {_fmt(amount)} is far outside the usual range "
                        f"for {assembly} (median: {_fmt(median)})"
                    ),
                )

        return AmountValidation(reason=ValidationReason.OK)

    def _check_ocr_artifact(
        self,
        amount: float,
        raw_amount: Optional[str],
        corrections: Optional[CorrectionBook],
    ) -> Optional[AmountValidation]:
        raw = normalize_amount_text(raw_amount) if raw_amount else ""
        if not raw:
            return None

        if corrections is not None:
            suggestion = corrections.suggest(raw)
            if suggestion is not None and suggestion.suggested_amount != amount:
                scope = "global pattern" if suggestion.is_global else "learned"
                return AmountValidation(
                    reason=ValidationReason.OCR_ARTIFACT,
                    message=(
                        f'"{raw}" corrected to {_fmt(suggestion.suggested_amount)} '
                        f"({scope}, {round(suggestion.confidence * 100)}% confidence)"
                    ),
                    suggested_amount=suggestion.suggested_amount,
                    confidence=suggestion.confidence,
                )

        known = OCR_NUMBER_CORRECTIONS.get(raw)
        if known is not None and known != amount:
            return AmountValidation(
                reason=ValidationReason.OCR_ARTIFACT,
                message=f'"{raw}" is a common misread of {_fmt(known)}',
                suggested_amount=float(known),
                confidence=0.8,
            )
        return None


def validate_amount(
    amount: float,
    assembly: str,
    history: Optional[MemberTitheHistory] = None,
    raw_amount: Optional[str] = None,
    corrections: Optional[CorrectionBook] = None,
    profile: Optional[AssemblyProfile] = None,
) -> AmountValidation:
    return AmountValidator().validate(amount, assembly, history, raw_amount, corrections, profile)
