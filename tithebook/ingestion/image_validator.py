"""
Pre-OCR image validation and post-OCR structural checks.

Rejects photographs too small or too damaged to read before the
expensive extraction call is made.
"""

import io
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import structlog
from PIL import Image, UnidentifiedImageError

from ..config import get_settings
from ..models import BatchFile, ExtractedEntry, ImageQuality

logger = structlog.get_logger()

SUPPORTED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
})

# Canonical title -> abbreviations seen in handwritten ledgers
TITLE_ALIASES = {
    "DEACONESS": ["DCNS", "DEAC", "DCN", "DEAS", "DEACONESS"],
    "ELDER": ["ELD", "ELDR", "ELDER"],
    "PASTOR": ["PST", "PS", "PASTOR", "PTR"],
    "APOSTLE": ["APT", "APST", "APOSTLE"],
    "OVERSEER": ["OVS", "OVSR", "OVERSEER"],
    "DEACON": ["DEACON", "DCON"],
    "EVANGELIST": ["EVG", "EVNG", "EVANGELIST"],
    "REVEREND": ["REV", "REVD", "REVEREND"],
    "SISTER": ["SIS", "SR", "SISTER"],
    "BROTHER": ["BRO", "BR", "BROTHER"],
    "MR": ["MR"],
    "MRS": ["MRS"],
    "MISS": ["MISS", "MS"],
    "MADAM": ["MADAM", "MDM"],
    "MAAME": ["MAAME"],
}

_ARTIFACT_RE = re.compile(r"[|\\/\[\]{}]")
_EDGE_PUNCT_RE = re.compile(r"^[.,;:\-_]+|[.,;:\-_]+$")


@dataclass
class ImageValidationResult:
    """Outcome of validating one image file."""
    is_valid: bool
    confidence: float
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    dimensions: Optional[Tuple[int, int]] = None
    estimated_quality: ImageQuality = ImageQuality.HIGH


@dataclass
class TitheBookValidationResult:
    """Structural sanity of an OCR result."""
    is_valid_format: bool
    has_name_column: bool
    has_amount_data: bool
    row_count: int
    confidence_score: float


class ImageValidator:
    """Checks MIME type, file size and resolution of ledger photographs."""

    def __init__(
        self,
        min_width: Optional[int] = None,
        min_height: Optional[int] = None,
        recommended_width: Optional[int] = None,
        recommended_height: Optional[int] = None,
    ):
        self.settings = get_settings()
        self.min_width = min_width if min_width is not None else self.settings.min_image_width
        self.min_height = min_height if min_height is not None else self.settings.min_image_height
        self.recommended_width = recommended_width if recommended_width is not None else self.settings.recommended_image_width
        self.recommended_height = recommended_height if recommended_height is not None else self.settings.recommended_image_height

    def validate(self, file: BatchFile) -> ImageValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        confidence = 1.0
        quality = ImageQuality.HIGH

        if file.mime_type.lower() not in SUPPORTED_MIME_TYPES:
            errors.append(
                f"Unsupported file type: {file.mime_type}. Please use JPEG, PNG, or WebP."
            )
            confidence = 0.0

        if file.size < self.settings.min_image_bytes:
            warnings.append(
                "Image file is very small (<100KB). Quality may be insufficient "
                "for accurate text extraction."
            )
            confidence *= 0.7
            quality = ImageQuality.LOW
        elif file.size > self.settings.max_image_bytes:
            warnings.append("Image file is very large (>20MB). Processing may take longer.")

        dimensions = None
        try:
            dimensions = _read_dimensions(file.content)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.debug("Image unreadable", file_name=file.name, error=str(e))
            errors.append("Failed to read image dimensions. File may be corrupted.")
            confidence = 0.0

        if dimensions is not None:
            width, height = dimensions
            if width < self.min_width or height < self.min_height:
                errors.append(
                    f"Image resolution too low ({width}x{height}). "
                    f"Minimum recommended: {self.min_width}x{self.min_height}px."
                )
                confidence *= 0.5
                quality = ImageQuality.LOW
            elif width < self.recommended_width or height < self.recommended_height:
                warnings.append(
                    f"Image resolution ({width}x{height}) is below recommended "
                    f"({self.recommended_width}x{self.recommended_height}). "
                    "Some text may be harder to read."
                )
                confidence *= 0.85
                if quality == ImageQuality.HIGH:
                    quality = ImageQuality.MEDIUM

        return ImageValidationResult(
            is_valid=not errors,
            confidence=confidence,
            errors=errors,
            warnings=warnings,
            dimensions=dimensions,
            estimated_quality=quality,
        )


def _read_dimensions(content: bytes) -> Tuple[int, int]:
    with Image.open(io.BytesIO(content)) as img:
        size = img.size
        img.verify()
    return size


def validate_tithe_book_image(file: BatchFile) -> ImageValidationResult:
    return ImageValidator().validate(file)


def validate_extracted_tithe_data(entries: Sequence[ExtractedEntry]) -> TitheBookValidationResult:
    """
    Structural check of OCR output. Failing it is a warning, never an abort.
    """
    if not entries:
        return TitheBookValidationResult(
            is_valid_format=False,
            has_name_column=False,
            has_amount_data=False,
            row_count=0,
            confidence_score=0.0,
        )

    has_name = any(e.raw_name and e.raw_name.strip() for e in entries)
    has_amount = any(e.amount > 0 for e in entries)
    confidence = sum(e.confidence for e in entries) / len(entries)

    return TitheBookValidationResult(
        is_valid_format=has_name,
        has_name_column=has_name,
        has_amount_data=has_amount,
        row_count=len(entries),
        confidence_score=confidence,
    )


def clean_ocr_name(raw_name: str) -> str:
    """Strip OCR artifacts, collapse whitespace and trim edge punctuation."""
    if not raw_name:
        return ""
    cleaned = _ARTIFACT_RE.sub("", raw_name)
    cleaned = " ".join(cleaned.split())
    return _EDGE_PUNCT_RE.sub("", cleaned).strip()


def normalize_title(title: str) -> str:
    if not title:
        return ""
    upper = title.strip().upper().rstrip(".")
    for canonical, aliases in TITLE_ALIASES.items():
        if upper == canonical or upper in aliases:
            return canonical
    return upper
