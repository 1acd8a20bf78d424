"""
Boundary validation of OCR collaborator output.

The extractor's payload is untyped JSON-like data; it is validated here,
immediately on receipt, and only clean ExtractedEntry rows go further.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..exceptions import ExtractionError
from ..models import ExtractedEntry
from .image_validator import clean_ocr_name

logger = structlog.get_logger()

_AMOUNT_NOISE_RE = re.compile(r"[,\s]|GH[S₵C]?|₵|\$", re.IGNORECASE)


class OcrRow(BaseModel):
    """One row as reported by the extractor."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sequence_number: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("sequence_number", "sequenceNumber", "No.", "No", "no"),
    )
    raw_name: str = Field(
        default="",
        validation_alias=AliasChoices("raw_name", "rawName", "Name", "name"),
    )
    amount: float = Field(
        default=0.0,
        validation_alias=AliasChoices("amount", "Amount"),
    )
    raw_amount: Optional[str] = None
    confidence: float = Field(
        default=1.0,
        validation_alias=AliasChoices("confidence", "Confidence"),
    )

    @model_validator(mode="before")
    @classmethod
    def keep_amount_text(cls, data: Any) -> Any:
        """Remember the amount exactly as read; it keys the correction book."""
        if isinstance(data, dict) and "raw_amount" not in data:
            for key in ("amount", "Amount"):
                if key in data and data[key] is not None:
                    data = {**data, "raw_amount": str(data[key]).strip()}
                    break
        return data

    @field_validator("raw_name", mode="before")
    @classmethod
    def coerce_name(cls, value: Any) -> str:
        return "" if value is None else clean_ocr_name(str(value))

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, value: Any) -> float:
        if value is None or value == "":
            return 0.0
        if isinstance(value, (int, float)):
            return float(value)
        text = _AMOUNT_NOISE_RE.sub("", str(value))
        try:
            return float(text)
        except ValueError:
            # unreadable text; the amount validator may still recover it
            return 0.0

    @field_validator("amount")
    @classmethod
    def non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("amount must not be negative")
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def parse_confidence(cls, value: Any) -> float:
        if value is None or value == "":
            return 1.0
        number = float(value)
        if 1.0 < number <= 100.0:
            number = number / 100.0
        if number < 0 or number > 1:
            raise ValueError("confidence must be within 0..1 or 0..100")
        return number


@dataclass
class ParsedExtraction:
    """Rows that passed validation plus a description of those that did not."""
    entries: List[ExtractedEntry] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)


def parse_extraction(payload: Any) -> ParsedExtraction:
    """
    Validate an extractor payload.

    Accepts a list of rows or a mapping with an "entries" list. Rows
    without a sequence number continue the numbering of the row before.

    Raises:
        ExtractionError: If the payload shape itself is unusable
    """
    if isinstance(payload, dict):
        rows = payload.get("entries")
    else:
        rows = payload

    if not isinstance(rows, (list, tuple)):
        raise ExtractionError(
            "Extractor returned an unrecognised payload",
            details={"type": type(payload).__name__},
        )

    result = ParsedExtraction()
    last_sequence = 0
    for index, row in enumerate(rows):
        if isinstance(row, ExtractedEntry):
            result.entries.append(row)
            last_sequence = row.sequence_number
            continue
        try:
            parsed = OcrRow.model_validate(row)
        except ValidationError as e:
            result.rejected.append({"index": index, "error": str(e), "row": row})
            continue

        sequence = parsed.sequence_number if parsed.sequence_number is not None else last_sequence + 1
        last_sequence = sequence
        result.entries.append(
            ExtractedEntry(
                sequence_number=sequence,
                raw_name=parsed.raw_name,
                amount=parsed.amount,
                confidence=parsed.confidence,
                raw_amount=parsed.raw_amount,
            )
        )

    if result.rejected:
        logger.warning(
            "Rejected malformed OCR rows",
            rejected=len(result.rejected),
            accepted=len(result.entries),
        )

    return result
