"""Ingestion: image pre-validation and OCR payload validation."""

from .image_validator import (
    ImageValidator,
    ImageValidationResult,
    TitheBookValidationResult,
    validate_tithe_book_image,
    validate_extracted_tithe_data,
    clean_ocr_name,
    normalize_title,
)
from .ocr_schema import OcrRow, ParsedExtraction, parse_extraction

__all__ = [
    "ImageValidator",
    "ImageValidationResult",
    "TitheBookValidationResult",
    "validate_tithe_book_image",
    "validate_extracted_tithe_data",
    "clean_ocr_name",
    "normalize_title",
    "OcrRow",
    "ParsedExtraction",
    "parse_extraction",
]
