"""
Handwriting learning store.

Keeps every manual amount correction an operator makes so the same
misread is corrected automatically next time. A correction seen in
enough distinct assemblies is promoted to the global pseudo-assembly.
"""

from collections import Counter
from typing import Dict, List, Optional

import structlog

from ..config import get_settings
from ..models import AmountCorrection, CorrectionSource
from ..reconciliation.amount_validator import (
    GLOBAL_ASSEMBLY,
    CorrectionBook,
    CorrectionSuggestion,
    normalize_amount_text,
)
from .base import DurableStore

logger = structlog.get_logger()

CORRECTIONS = "amount_corrections"


def _assembly_key(assembly: str) -> str:
    return (assembly or "").strip().lower()


def _same_value(original: str, corrected: float) -> bool:
    try:
        return float(original.replace(",", "")) == float(corrected)
    except ValueError:
        return False


class LearningStore:
    """Amount corrections persisted in a DurableStore."""

    def __init__(self, store: DurableStore, promotion_threshold: Optional[int] = None):
        self.store = store
        self.promotion_threshold = (
            promotion_threshold if promotion_threshold is not None else get_settings().global_promotion_assemblies
        )

    async def record_correction(
        self,
        assembly: str,
        original: str,
        corrected: float,
        member_id: Optional[str] = None,
        source: CorrectionSource = CorrectionSource.TITHE_ENTRY,
    ) -> Optional[AmountCorrection]:
        """
        Save one correction. Returns None when original already reads as
        the corrected value.
        """
        normalized = normalize_amount_text(original)
        if not normalized or _same_value(normalized, corrected):
            return None

        correction = AmountCorrection(
            assembly_name=_assembly_key(assembly),
            original_value=normalized,
            corrected_value=float(corrected),
            member_id=member_id.lower() if member_id else None,
            source=source,
        )
        await self.store.put(CORRECTIONS, correction.id, correction.to_dict())
        logger.info(
            "Amount correction learned",
            assembly=correction.assembly_name,
            original=normalized,
            corrected=correction.corrected_value,
        )

        if correction.assembly_name != GLOBAL_ASSEMBLY:
            await self._promote_if_qualifies(normalized, correction.corrected_value)
        return correction

    async def _promote_if_qualifies(self, original: str, corrected: float) -> bool:
        rows = await self.store.list_by_index(CORRECTIONS, "original_value", original)
        assemblies = {
            r["assembly_name"]
            for r in rows
            if float(r["corrected_value"]) == corrected and r["assembly_name"] != GLOBAL_ASSEMBLY
        }
        if len(assemblies) < self.promotion_threshold:
            return False

        already_global = any(
            r["assembly_name"] == GLOBAL_ASSEMBLY and float(r["corrected_value"]) == corrected
            for r in rows
        )
        if already_global:
            return False

        promoted = AmountCorrection(
            assembly_name=GLOBAL_ASSEMBLY,
            original_value=original,
            corrected_value=corrected,
            source=CorrectionSource.BATCH,
        )
        await self.store.put(CORRECTIONS, promoted.id, promoted.to_dict())
        logger.info("Correction promoted to global", original=original, corrected=corrected)
        return True

    async def get_corrections(self, assembly: str) -> List[AmountCorrection]:
        rows = await self.store.list_by_index(CORRECTIONS, "assembly_name", _assembly_key(assembly))
        corrections = [AmountCorrection.from_dict(r) for r in rows]
        return sorted(corrections, key=lambda c: c.timestamp)

    async def load_corrections(self, assembly: str) -> CorrectionBook:
        """Corrections for an assembly plus the global ones, ready for the validator."""
        local = await self.get_corrections(assembly)
        global_ = [] if _assembly_key(assembly) == GLOBAL_ASSEMBLY else await self.get_corrections(GLOBAL_ASSEMBLY)
        return CorrectionBook(local, global_)

    async def suggest_correction(self, assembly: str, raw: str) -> Optional[CorrectionSuggestion]:
        book = await self.load_corrections(assembly)
        return book.suggest(raw)

    async def most_common_corrections(self, assembly: str, limit: int = 10) -> List[Dict]:
        corrections = await self.get_corrections(assembly)
        counts = Counter((c.original_value, c.corrected_value) for c in corrections)
        return [
            {"original": original, "corrected": corrected, "count": count}
            for (original, corrected), count in counts.most_common(limit)
        ]

    async def clear_corrections(self, assembly: str) -> int:
        corrections = await self.get_corrections(assembly)
        deleted = await self.store.delete_many(CORRECTIONS, [c.id for c in corrections])
        logger.info("Amount corrections cleared", assembly=_assembly_key(assembly), deleted=deleted)
        return deleted
