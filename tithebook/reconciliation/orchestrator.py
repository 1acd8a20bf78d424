"""
Batch Orchestrator - Main pipeline coordinator.

Drives a set of uploaded ledger photographs through the pipeline:
1. Image pre-validation
2. Extraction (external OCR collaborator, rate limited)
3. Structural check of the extracted rows
4. Duplicate-photo merge and page sequencing
5. Member matching
6. Amount validation

Files are processed one after another, in submission order. A bad file
is skipped with a warning; it never aborts the batch.
"""

from typing import (
    TYPE_CHECKING,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)
from uuid import uuid4

import structlog

from ..exceptions import StoreError
from ..ingestion import (
    ImageValidator,
    parse_extraction,
    validate_extracted_tithe_data,
)
from ..integrations import TitheExtractor
from ..models import (
    BatchContext,
    BatchFile,
    BatchProgress,
    BatchResult,
    BatchWarning,
    ExtractedEntry,
    TitheRecord,
    ValidationReason,
    WarningKind,
    WarningLevel,
)
from ..utils.audit_logger import AuditLogger
from ..utils.rate_limiter import OCR, RateLimiter
from .amount_validator import (
    AmountValidator,
    CorrectionBook,
    build_assembly_profile,
    build_member_history,
)
from .matcher import MemberMatcher
from .page_sequencer import PageSequencer

if TYPE_CHECKING:
    from ..storage.learning import LearningStore
    from ..storage.member_order import MemberOrderStore

logger = structlog.get_logger()

UNMATCHED_PREFIX = "[UNMATCHED]"

BatchEvent = Union[BatchProgress, BatchResult]


def format_suggestions(suggestions) -> str:
    """[SUGGESTIONS: Surname First (87%); ...] for operator review."""
    parts = [
        f"{' '.join(p for p in (s.member.surname, s.member.first_name) if p)} "
        f"({round(s.score * 100)}%)"
        for s in suggestions
    ]
    return f"[SUGGESTIONS: {'; '.join(parts)}]"


class BatchOrchestrator:
    """
    Main orchestrator for ledger batch processing.

    The extractor is the only required collaborator. The member order
    store and learning store are optional; when present, learned aliases
    and learned amount corrections are loaded once per batch.
    """

    def __init__(
        self,
        extractor: TitheExtractor,
        rate_limiter: Optional[RateLimiter] = None,
        image_validator: Optional[ImageValidator] = None,
        matcher: Optional[MemberMatcher] = None,
        amount_validator: Optional[AmountValidator] = None,
        sequencer: Optional[PageSequencer] = None,
        order_store: Optional["MemberOrderStore"] = None,
        learning_store: Optional["LearningStore"] = None,
    ):
        self.extractor = extractor
        self.rate_limiter = rate_limiter or RateLimiter.from_settings()
        self.image_validator = image_validator or ImageValidator()
        self.matcher = matcher or MemberMatcher()
        self.amount_validator = amount_validator or AmountValidator()
        self.sequencer = sequencer or PageSequencer()
        self.order_store = order_store
        self.learning_store = learning_store

    async def process_batch(
        self,
        files: Sequence[BatchFile],
        assembly: str,
        context: Optional[BatchContext] = None,
        on_progress: Optional[Callable[[BatchProgress], None]] = None,
        on_warning: Optional[Callable[[BatchWarning], None]] = None,
    ) -> BatchResult:
        """
        Run the whole batch and return its result.

        Args:
            files: Uploaded photographs, in submission order
            assembly: Assembly the ledger belongs to
            context: Roster, prior transaction log and period hint
            on_progress: Optional observer, called once per file
            on_warning: Optional observer, called once per warning

        Returns:
            BatchResult with records, warnings and per-file progress

        Raises:
            ValueError: If assembly is empty
        """
        result = BatchResult()
        async for event in self.stream_batch(files, assembly, context, on_progress, on_warning):
            if isinstance(event, BatchResult):
                result = event
        return result

    async def stream_batch(
        self,
        files: Sequence[BatchFile],
        assembly: str,
        context: Optional[BatchContext] = None,
        on_progress: Optional[Callable[[BatchProgress], None]] = None,
        on_warning: Optional[Callable[[BatchWarning], None]] = None,
    ) -> AsyncIterator[BatchEvent]:
        """
        Yield one BatchProgress per file, in submission order, then the
        final BatchResult.

        Progress events carry each file's accepted entries, so a caller
        that abandons the batch early keeps everything finished so far.
        """
        if not assembly or not assembly.strip():
            raise ValueError("assembly name must not be empty")

        context = context or BatchContext()
        job_id = uuid4().hex[:8]
        audit = AuditLogger(job_id)
        result = BatchResult(job_id=job_id)

        def emit(warning: BatchWarning) -> BatchWarning:
            audit.log(warning)
            result.warnings.append(warning)
            if on_warning:
                on_warning(warning)
            return warning

        logger.info("Batch started", job_id=job_id, assembly=assembly, files=len(files))

        batches: List[List[ExtractedEntry]] = []
        batch_files: List[int] = []
        total = len(files)

        for position, file in enumerate(files):
            entries, accepted, file_warnings = await self._process_file(file, context)
            for warning in file_warnings:
                emit(warning)

            if accepted:
                batches.append(entries)
                batch_files.append(position)

            progress = BatchProgress(
                completed=position + 1,
                total=total,
                file_name=file.name,
                accepted=accepted,
                entries=list(entries),
                warnings=file_warnings,
            )
            result.progress.append(progress)
            if on_progress:
                on_progress(progress)
            yield progress

        unique_batches, page_files = self._merge_duplicates(batches, batch_files, files, result, emit)

        sequenced = self.sequencer.sequence_pages(unique_batches)
        result.gaps_detected = sequenced.gaps_detected
        for conflict in sequenced.conflicts:
            emit(BatchWarning(
                kind=WarningKind.SEQUENCE_CONFLICT,
                message=(
                    f"Row #{conflict.sequence_number} appears on two pages; kept "
                    f"'{conflict.kept_name}', dropped '{conflict.dropped_name}'"
                ),
                sequence_number=conflict.sequence_number,
                details={
                    "kept_file": files[page_files[conflict.kept_batch]].name,
                    "dropped_file": files[page_files[conflict.dropped_batch]].name,
                },
            ))
        for gap in sequenced.gaps_detected:
            emit(BatchWarning(
                kind=WarningKind.SEQUENCE_GAP,
                message=f"Numbering skips after row #{gap}",
                level=WarningLevel.INFO,
                sequence_number=gap,
            ))

        result.records = sequenced.merged
        await self._reconcile_records(result.records, assembly, context, emit)

        logger.info(
            "Batch complete",
            job_id=job_id,
            assembly=assembly,
            records=len(result.records),
            matched=result.matched_count,
            unmatched=result.unmatched_count,
            warnings=len(result.warnings),
        )
        yield result

    async def _process_file(
        self,
        file: BatchFile,
        context: BatchContext,
    ) -> Tuple[List[ExtractedEntry], bool, List[BatchWarning]]:
        """validate -> extract -> structural check, for one file."""
        warnings: List[BatchWarning] = []

        validation = self.image_validator.validate(file)
        if not validation.is_valid:
            warnings.append(BatchWarning(
                kind=WarningKind.IMAGE_REJECTED,
                message=f"{file.name}: {'; '.join(validation.errors)}",
                level=WarningLevel.ERROR,
                file_name=file.name,
                details={"confidence": validation.confidence},
            ))
            return [], False, warnings

        for message in validation.warnings:
            warnings.append(BatchWarning(
                kind=WarningKind.IMAGE_QUALITY,
                message=f"{file.name}: {message}",
                level=WarningLevel.INFO,
                file_name=file.name,
                details={"quality": validation.estimated_quality.value},
            ))

        await self.rate_limiter.wait_for_slot(OCR)
        try:
            payload = await self.extractor.extract(
                file.content,
                context.hint,
                context.transaction_log,
                context.roster,
            )
            parsed = parse_extraction(payload)
        except Exception as e:
            # extractor failures skip this file only
            logger.error("Extraction failed", file=file.name, error=str(e))
            warnings.append(BatchWarning(
                kind=WarningKind.EXTRACTION_FAILED,
                message=f"{file.name}: extraction failed ({e})",
                level=WarningLevel.ERROR,
                file_name=file.name,
            ))
            return [], False, warnings

        if parsed.rejected:
            warnings.append(BatchWarning(
                kind=WarningKind.STRUCTURE_INVALID,
                message=f"{file.name}: {len(parsed.rejected)} unreadable row(s) dropped",
                file_name=file.name,
                details={"rejected": [r["index"] for r in parsed.rejected]},
            ))

        structure = validate_extracted_tithe_data(parsed.entries)
        if not structure.is_valid_format or not structure.has_amount_data:
            warnings.append(BatchWarning(
                kind=WarningKind.STRUCTURE_INVALID,
                message=(
                    f"{file.name}: does not look like a tithe book page "
                    f"({structure.row_count} row(s), "
                    f"amounts {'found' if structure.has_amount_data else 'missing'})"
                ),
                file_name=file.name,
                details={"confidence": structure.confidence_score},
            ))

        return parsed.entries, True, warnings

    def _merge_duplicates(
        self,
        batches: List[List[ExtractedEntry]],
        batch_files: List[int],
        files: Sequence[BatchFile],
        result: BatchResult,
        emit: Callable[[BatchWarning], BatchWarning],
    ) -> Tuple[List[List[ExtractedEntry]], List[int]]:
        """
        Collapse photos of the same page. Returns one batch per page and
        the submission position of each.
        """
        if len(batches) < 2:
            return batches, batch_files

        detection = self.sequencer.detect_duplicate_pages(batches)
        merged: Dict[int, List[ExtractedEntry]] = {}

        for group in detection.duplicate_groups:
            names = [files[batch_files[i]].name for i in group]
            result.duplicate_groups.append([batch_files[i] for i in group])
            emit(BatchWarning(
                kind=WarningKind.DUPLICATE_PAGES,
                message=f"Same page photographed {len(group)} times: {', '.join(names)}",
                level=WarningLevel.INFO,
                details={"files": names},
            ))

            for discrepancy in self.sequencer.detect_amount_discrepancies(batches, group):
                emit(BatchWarning(
                    kind=WarningKind.AMOUNT_DISCREPANCY,
                    message=discrepancy.message,
                    sequence_number=discrepancy.sequence_number,
                    details={
                        "amounts": discrepancy.amounts,
                        "suggested_amount": discrepancy.suggested_amount,
                        "confidence": discrepancy.confidence,
                    },
                ))

            merged[group[0]] = self.sequencer.merge_duplicate_extractions(batches, group)

        return (
            [merged.get(i, batches[i]) for i in detection.unique],
            [batch_files[i] for i in detection.unique],
        )

    async def _load_learning(self, assembly: str) -> Tuple[Dict[str, str], Optional[CorrectionBook]]:
        aliases: Dict[str, str] = {}
        corrections = None
        if self.order_store is not None:
            try:
                aliases = await self.order_store.get_alias_map(assembly)
            except StoreError as e:
                logger.warning("Learned aliases unavailable", assembly=assembly, error=str(e))
        if self.learning_store is not None:
            try:
                corrections = await self.learning_store.load_corrections(assembly)
            except StoreError as e:
                logger.warning("Learned corrections unavailable", assembly=assembly, error=str(e))
        return aliases, corrections

    async def _reconcile_records(
        self,
        records: List[TitheRecord],
        assembly: str,
        context: BatchContext,
        emit: Callable[[BatchWarning], BatchWarning],
    ) -> None:
        """Match every record and validate its amount, in place."""
        if not records:
            return

        roster = context.roster
        if not roster:
            emit(BatchWarning(
                kind=WarningKind.NO_ROSTER,
                message=f"No member list loaded for {assembly}; names were not matched",
            ))

        aliases, corrections = await self._load_learning(assembly)

        prior_amounts = [
            r.amount
            for entry in context.transaction_log
            for r in entry.records
        ]
        profile = build_assembly_profile([r.amount for r in records] + prior_amounts)

        for record in records:
            history = None
            if roster:
                match = self.matcher.match_member(record.raw_name, roster, aliases)
                if match.is_matched:
                    record.member = match.member
                    record.membership_identity = match.member.display_name
                    history = build_member_history(match.member.member_key, context.transaction_log)
                else:
                    record.membership_identity = f"{UNMATCHED_PREFIX} {record.raw_name}"
                    if match.suggestions:
                        record.add_note(format_suggestions(match.suggestions))
                    emit(BatchWarning(
                        kind=WarningKind.UNMATCHED_NAME,
                        message=f"No confident match for '{record.raw_name}'",
                        level=WarningLevel.INFO,
                        sequence_number=record.sequence_number,
                        details={"best_score": round(match.score, 3)},
                    ))

            validation = self.amount_validator.validate(
                record.amount,
                assembly,
                history=history,
                raw_amount=record.raw_amount,
                corrections=corrections,
                profile=profile,
            )

            if validation.reason == ValidationReason.OCR_ARTIFACT:
                record.amount = validation.suggested_amount
                record.add_note(f"[OCR CORRECTED: {validation.message}]")
                emit(BatchWarning(
                    kind=WarningKind.OCR_CORRECTED,
                    message=validation.message,
                    level=WarningLevel.INFO,
                    sequence_number=record.sequence_number,
                    details={"suggested_amount": validation.suggested_amount},
                ))
                # the corrected amount still gets the history checks
                recheck = self.amount_validator.validate(
                    record.amount, assembly, history=history, profile=profile,
                )
                if recheck.is_flagged:
                    validation = recheck

            if validation.is_flagged:
                record.add_note(f"[ANOMALY: {validation.message}]")
                emit(BatchWarning(
                    kind=WarningKind.AMOUNT_FLAGGED,
                    message=validation.message,
                    sequence_number=record.sequence_number,
                    details={"reason": validation.reason.value},
                ))

            record.validation = validation
