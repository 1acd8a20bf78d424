"""
Tests for image pre-validation and OCR payload parsing.
"""

import pytest

from tithebook.exceptions import ExtractionError
from tithebook.ingestion import (
    ImageValidator,
    OcrRow,
    clean_ocr_name,
    normalize_title,
    parse_extraction,
    validate_extracted_tithe_data,
    validate_tithe_book_image,
)
from tithebook.models import BatchFile, ExtractedEntry, ImageQuality

from conftest import make_entries


@pytest.fixture
def validator():
    return ImageValidator(min_width=100, min_height=100, recommended_width=200, recommended_height=200)


class TestImageValidator:
    """Pre-OCR checks."""

    def test_unsupported_type(self, validator, image_file):
        result = validator.validate(image_file(mime_type="application/pdf"))

        assert not result.is_valid
        assert result.confidence == 0.0
        assert "Unsupported file type" in result.errors[0]

    def test_corrupt_content(self, validator):
        result = validator.validate(BatchFile(name="x.png", content=b"not an image", mime_type="image/png"))

        assert not result.is_valid
        assert "corrupted" in result.errors[0]

    def test_too_small_resolution(self, validator, image_file):
        result = validator.validate(image_file(width=80, height=300))

        assert not result.is_valid
        assert result.dimensions == (80, 300)
        assert result.estimated_quality == ImageQuality.LOW

    def test_below_recommended(self, validator, image_file):
        result = validator.validate(image_file(width=150, height=150))

        assert result.is_valid
        assert any("below recommended" in w for w in result.warnings)

    def test_small_file_warning(self, validator, image_file):
        result = validator.validate(image_file(width=250, height=250))

        assert result.is_valid
        assert result.estimated_quality == ImageQuality.LOW
        assert any("very small" in w for w in result.warnings)
        assert result.confidence == pytest.approx(0.7)

    def test_jpeg_accepted(self, validator, image_file):
        result = validator.validate(image_file(name="p.jpg", width=250, height=250, fmt="JPEG", mime_type="image/jpeg"))
        assert result.is_valid

    def test_module_helper_uses_default_minimums(self, image_file):
        result = validate_tithe_book_image(image_file(width=400, height=300))

        assert not result.is_valid
        assert "Minimum recommended: 800x600px" in result.errors[0]


class TestStructuralCheck:
    """Post-OCR sanity of the rows."""

    def test_valid_page(self):
        result = validate_extracted_tithe_data(make_entries([(1, "Kofi", 50, 0.8), (2, "Ama", 0, 0.6)]))

        assert result.is_valid_format
        assert result.has_amount_data
        assert result.row_count == 2
        assert result.confidence_score == pytest.approx(0.7)

    def test_no_amounts(self):
        result = validate_extracted_tithe_data(make_entries([(1, "Kofi", 0)]))
        assert result.is_valid_format
        assert not result.has_amount_data

    def test_empty(self):
        result = validate_extracted_tithe_data([])
        assert not result.is_valid_format
        assert result.row_count == 0


class TestNameCleanup:
    """OCR name and title tidying."""

    def test_clean_ocr_name(self):
        assert clean_ocr_name("  |Kofi   Mensah. ") == "Kofi Mensah"
        assert clean_ocr_name("[Ama] Serwaa") == "Ama Serwaa"
        assert clean_ocr_name("") == ""

    def test_normalize_title(self):
        assert normalize_title("Dcns.") == "DEACONESS"
        assert normalize_title("eld") == "ELDER"
        assert normalize_title("Prophet") == "PROPHET"
        assert normalize_title("") == ""

    def test_deacon_and_deaconess_are_distinct(self):
        assert normalize_title("Deacon") == "DEACON"
        assert normalize_title("dcon.") == "DEACON"
        assert normalize_title("DCN") == "DEACONESS"


class TestOcrRow:
    """Validation of a single extractor row."""

    def test_aliases_and_amount_text(self):
        row = OcrRow.model_validate({"No.": 4, "Name": " Kofi Mensah ", "Amount": "GH₵ 1,200"})

        assert row.sequence_number == 4
        assert row.raw_name == "Kofi Mensah"
        assert row.amount == 1200.0
        assert row.raw_amount == "GH₵ 1,200"

    def test_name_artifacts_removed(self):
        row = OcrRow.model_validate({"Name": "|Kofi  Mensah.", "Amount": 10})
        assert row.raw_name == "Kofi Mensah"

    def test_unreadable_amount_is_zero(self):
        row = OcrRow.model_validate({"name": "Kofi", "amount": "1OO"})

        assert row.amount == 0.0
        assert row.raw_amount == "1OO"

    def test_percentage_confidence(self):
        assert OcrRow.model_validate({"name": "Kofi", "confidence": 85}).confidence == pytest.approx(0.85)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            OcrRow.model_validate({"name": "Kofi", "amount": -5})


class TestParseExtraction:
    """Whole-payload parsing."""

    def test_mapping_payload(self):
        parsed = parse_extraction({"entries": [
            {"sequenceNumber": 1, "rawName": "Kofi", "amount": 50},
            {"sequenceNumber": 2, "rawName": "Ama", "amount": "20"},
        ]})

        assert [e.sequence_number for e in parsed.entries] == [1, 2]
        assert parsed.entries[1].amount == 20.0
        assert parsed.rejected == []

    def test_missing_numbers_continue_sequence(self):
        parsed = parse_extraction([
            {"No.": 32, "Name": "Kofi", "Amount": 10},
            {"Name": "Ama", "Amount": 10},
            {"Name": "Yaw", "Amount": 10},
        ])
        assert [e.sequence_number for e in parsed.entries] == [32, 33, 34]

    def test_names_are_cleaned(self):
        parsed = parse_extraction([{"No.": 1, "Name": "[Ama] Serwaa", "Amount": 10}])
        assert parsed.entries[0].raw_name == "Ama Serwaa"

    def test_bad_rows_rejected(self):
        parsed = parse_extraction([
            {"No.": 1, "Name": "Kofi", "Amount": 10},
            "garbage",
            {"No.": 3, "Name": "Yaw", "confidence": 400},
        ])

        assert len(parsed.entries) == 1
        assert [r["index"] for r in parsed.rejected] == [1, 2]

    def test_entries_pass_through(self):
        entry = ExtractedEntry(sequence_number=7, raw_name="Kofi", amount=5)
        assert parse_extraction([entry]).entries == [entry]

    @pytest.mark.parametrize("payload", [None, "text", {"rows": []}, 42])
    def test_unusable_payload(self, payload):
        with pytest.raises(ExtractionError):
            parse_extraction(payload)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
