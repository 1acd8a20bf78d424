"""
Page sequencer.

Operators often photograph the same ledger page twice, or submit several
pages of one book in a single batch. Each photo is OCR'd on its own, so
the batches arrive with no ordering between them. This module finds
duplicate photos, merges them row by row, and stitches the remaining
pages into one sequence, reporting gaps and numbering conflicts.

Ledger pages hold sets of 31 rows (1-31, 32-62, ...), numbering
continuing from one set to the next.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from ..config import get_settings
from ..models import ExtractedEntry, TitheRecord
from ..utils.names import token_similarity
from ..utils.text_similarity import token_sort_similarity

logger = structlog.get_logger()

SET_SIZE = 31

Batch = Sequence[ExtractedEntry]


def get_set_number(sequence_number: int) -> int:
    """Set a row belongs to: 1 for rows 1-31, 2 for 32-62, ... 0 if unnumbered."""
    if sequence_number <= 0:
        return 0
    return math.ceil(sequence_number / SET_SIZE)


def get_set_range(set_number: int) -> Tuple[int, int]:
    if set_number <= 0:
        return (0, 0)
    return ((set_number - 1) * SET_SIZE + 1, set_number * SET_SIZE)


@dataclass
class PageInfo:
    """Numbering summary of one extracted page."""
    starting_no: int = 0
    ending_no: int = 0
    entry_count: int = 0
    set_number: int = 0
    set_coverage: int = 0  # percent of the set's rows present


@dataclass
class DuplicateDetection:
    duplicate_groups: List[List[int]] = field(default_factory=list)
    unique: List[int] = field(default_factory=list)


@dataclass
class AmountDiscrepancy:
    """One row whose amount differs across photos of the same page."""
    sequence_number: int
    raw_name: str
    amounts: List[float]
    suggested_amount: float
    confidence: float
    message: str


@dataclass
class SequenceConflict:
    """A sequence number claimed by two different pages."""
    sequence_number: int
    kept_batch: int
    dropped_batch: int
    kept_name: str
    dropped_name: str


@dataclass
class SequenceResult:
    merged: List[TitheRecord] = field(default_factory=list)
    gaps_detected: List[int] = field(default_factory=list)
    page_order: List[int] = field(default_factory=list)
    conflicts: List[SequenceConflict] = field(default_factory=list)
    confidence: float = 0.0


def analyze_page_info(entries: Batch) -> PageInfo:
    numbers = sorted(e.sequence_number for e in entries if e.sequence_number > 0)
    if not numbers:
        return PageInfo(entry_count=len(entries))

    set_number = get_set_number(numbers[0])
    start, end = get_set_range(set_number)
    in_set = sum(1 for n in numbers if start <= n <= end)
    return PageInfo(
        starting_no=numbers[0],
        ending_no=numbers[-1],
        entry_count=len(entries),
        set_number=set_number,
        set_coverage=round(in_set / SET_SIZE * 100),
    )


def calculate_sequence_confidence(
    page_count: int,
    entry_count: int,
    duplicates: int,
    gaps: int,
) -> float:
    """Heuristic confidence in a sequencing, clamped to [0.3, 1.0]."""
    confidence = 1.0
    confidence -= (duplicates / (entry_count or 1)) * 0.3
    confidence -= gaps * 0.1
    if page_count > 3:
        confidence -= (page_count - 3) * 0.05
    return max(0.3, min(1.0, confidence))


def _rows_by_number(batch: Batch) -> Dict[int, ExtractedEntry]:
    """First row per positive sequence number."""
    rows: Dict[int, ExtractedEntry] = {}
    for entry in batch:
        if entry.sequence_number > 0 and entry.sequence_number not in rows:
            rows[entry.sequence_number] = entry
    return rows


def _row_keys(batch: Batch) -> List[Tuple[int, int]]:
    """(sequence number, occurrence) per row, so repeated numbers stay distinct."""
    seen: Counter = Counter()
    keys = []
    for entry in batch:
        keys.append((entry.sequence_number, seen[entry.sequence_number]))
        seen[entry.sequence_number] += 1
    return keys


class PageSequencer:
    """Duplicate detection and sequencing over per-photo extraction batches."""

    def __init__(
        self,
        overlap_threshold: Optional[float] = None,
        name_threshold: Optional[float] = None,
        confidence_margin: Optional[float] = None,
    ):
        settings = get_settings()
        self.overlap_threshold = (
            overlap_threshold if overlap_threshold is not None
            else settings.duplicate_overlap_threshold
        )
        self.name_threshold = (
            name_threshold if name_threshold is not None
            else settings.duplicate_name_threshold
        )
        self.confidence_margin = (
            confidence_margin if confidence_margin is not None
            else settings.merge_confidence_margin
        )

    def names_agree(self, a: str, b: str) -> bool:
        if not a.strip() and not b.strip():
            return True
        if token_similarity(a, b) >= self.name_threshold:
            return True
        return token_sort_similarity(a.strip(), b.strip()) >= self.name_threshold

    def pages_are_duplicates(self, a: Batch, b: Batch) -> bool:
        """
        Near-identical row sets: sequence numbers overlap by Jaccard at or
        above the overlap threshold, and enough shared rows carry
        similar names.
        """
        rows_a = _rows_by_number(a)
        rows_b = _rows_by_number(b)
        if not rows_a or not rows_b:
            return False

        shared = rows_a.keys() & rows_b.keys()
        union = rows_a.keys() | rows_b.keys()
        if len(shared) / len(union) < self.overlap_threshold:
            return False

        agreeing = sum(
            1 for n in shared if self.names_agree(rows_a[n].raw_name, rows_b[n].raw_name)
        )
        return agreeing / len(shared) >= self.overlap_threshold

    def detect_duplicate_pages(self, batches: Sequence[Batch]) -> DuplicateDetection:
        """
        Group batches that photograph the same page, transitively.
        unique keeps the lowest index of each group plus every
        non-duplicated batch, in submission order.
        """
        parent = list(range(len(batches)))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        for i in range(len(batches)):
            for j in range(i + 1, len(batches)):
                if find(i) != find(j) and self.pages_are_duplicates(batches[i], batches[j]):
                    parent[max(find(i), find(j))] = min(find(i), find(j))

        groups: Dict[int, List[int]] = {}
        for i in range(len(batches)):
            groups.setdefault(find(i), []).append(i)

        duplicate_groups = [g for _, g in sorted(groups.items()) if len(g) > 1]
        unique = [i for i in range(len(batches)) if find(i) == i]

        if duplicate_groups:
            logger.info("Duplicate pages detected", groups=duplicate_groups)
        return DuplicateDetection(duplicate_groups=duplicate_groups, unique=unique)

    def _prefer(self, current: ExtractedEntry, challenger: ExtractedEntry) -> ExtractedEntry:
        diff = challenger.confidence - current.confidence
        if diff > self.confidence_margin:
            return challenger
        if abs(diff) <= self.confidence_margin and not current.amount and challenger.amount:
            return challenger
        return current

    def merge_duplicate_extractions(
        self,
        batches: Sequence[Batch],
        group: Sequence[int],
    ) -> List[ExtractedEntry]:
        """
        Merge photos of one page row by row, keyed by sequence number.

        The more confident reading wins; within the confidence margin a
        non-zero amount beats a zero one, otherwise the earlier photo
        wins. Row order follows first appearance.
        """
        if not group:
            return []
        if len(group) == 1:
            return list(batches[group[0]])

        chosen: Dict[Tuple[int, int], ExtractedEntry] = {}
        for index in group:
            batch = batches[index]
            for key, entry in zip(_row_keys(batch), batch):
                current = chosen.get(key)
                chosen[key] = entry if current is None else self._prefer(current, entry)
        return list(chosen.values())

    def detect_amount_discrepancies(
        self,
        batches: Sequence[Batch],
        group: Sequence[int],
    ) -> List[AmountDiscrepancy]:
        """Rows whose amounts disagree across the photos of one page."""
        if len(group) < 2:
            return []

        others = [_rows_by_number(batches[i]) for i in group[1:]]
        found: List[AmountDiscrepancy] = []
        for entry in batches[group[0]]:
            amounts = [entry.amount]
            for rows in others:
                match = rows.get(entry.sequence_number)
                if match is not None:
                    amounts.append(match.amount)

            distinct = list(dict.fromkeys(amounts))
            if len(distinct) < 2 or not any(a > 0 for a in amounts):
                continue

            suggested, top = Counter(amounts).most_common(1)[0]
            if top == 1:
                non_zero = [a for a in amounts if a > 0]
                suggested = round(sum(non_zero) / len(non_zero))

            listed = ", ".join(f"{a:g}" for a in distinct)
            found.append(AmountDiscrepancy(
                sequence_number=entry.sequence_number,
                raw_name=entry.raw_name,
                amounts=distinct,
                suggested_amount=float(suggested),
                confidence=top / len(amounts),
                message=(
                    f"Row #{entry.sequence_number}: found different amounts "
                    f"({listed}). Suggested: {suggested:g}"
                ),
            ))
        return found

    def sequence_pages(self, batches: Sequence[Batch]) -> SequenceResult:
        """
        Stitch unique pages into one record set ordered by each page's
        first sequence number.

        A sequence number claimed by two pages belongs to the page
        submitted first; the other row is dropped and reported as a
        conflict. Gaps are reported, never filled.
        """
        if not batches:
            return SequenceResult()

        infos = [analyze_page_info(b) for b in batches]
        page_order = sorted(
            range(len(batches)),
            key=lambda i: (infos[i].starting_no or math.inf, i),
        )

        owner: Dict[int, int] = {}
        for index, batch in enumerate(batches):
            for entry in batch:
                if entry.sequence_number > 0:
                    owner.setdefault(entry.sequence_number, index)

        merged: List[TitheRecord] = []
        conflicts: List[SequenceConflict] = []
        for index in page_order:
            for entry in batches[index]:
                holder = owner.get(entry.sequence_number, index)
                if holder != index:
                    conflicts.append(SequenceConflict(
                        sequence_number=entry.sequence_number,
                        kept_batch=holder,
                        dropped_batch=index,
                        kept_name=_rows_by_number(batches[holder])[entry.sequence_number].raw_name,
                        dropped_name=entry.raw_name,
                    ))
                    continue
                merged.append(TitheRecord.from_entry(entry))

        numbers = sorted({r.sequence_number for r in merged if r.sequence_number > 0})
        gaps = [prev for prev, nxt in zip(numbers, numbers[1:]) if nxt - prev > 1]

        confidence = calculate_sequence_confidence(
            len(batches),
            sum(len(b) for b in batches),
            len(conflicts),
            len(gaps),
        )
        if conflicts or gaps:
            logger.warning(
                "Sequencing issues",
                conflicts=len(conflicts),
                gaps=gaps,
                confidence=round(confidence, 2),
            )
        return SequenceResult(
            merged=merged,
            gaps_detected=gaps,
            page_order=page_order,
            conflicts=conflicts,
            confidence=confidence,
        )


def detect_duplicate_pages(batches: Sequence[Batch]) -> DuplicateDetection:
    return PageSequencer().detect_duplicate_pages(batches)


def merge_duplicate_extractions(batches: Sequence[Batch], group: Sequence[int]) -> List[ExtractedEntry]:
    return PageSequencer().merge_duplicate_extractions(batches, group)


def detect_amount_discrepancies(batches: Sequence[Batch], group: Sequence[int]) -> List[AmountDiscrepancy]:
    return PageSequencer().detect_amount_discrepancies(batches, group)


def sequence_pages(batches: Sequence[Batch]) -> SequenceResult:
    return PageSequencer().sequence_pages(batches)
