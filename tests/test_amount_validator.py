"""
Tests for amount validation and anomaly detection.
"""

import pytest

from tithebook.models import (
    AmountCorrection,
    MemberTitheHistory,
    RosterMember,
    TitheRecord,
    TransactionLogEntry,
    ValidationReason,
)
from tithebook.reconciliation.amount_validator import (
    GLOBAL_ASSEMBLY,
    AmountValidator,
    CorrectionBook,
    build_assembly_profile,
    build_member_history,
    validate_amount,
    visual_key,
)


@pytest.fixture
def validator():
    return AmountValidator(
        deviation_multiple=5.0,
        min_history=3,
        assembly_multiple=10.0,
        min_assembly_samples=5,
    )


def history(average, occurrences=6):
    return MemberTitheHistory(
        member_id="TAC001",
        average_amount=average,
        standard_deviation=0.0,
        min_amount=average,
        max_amount=average,
        last_amount=average,
        occurrences=occurrences,
    )


def correction(original, corrected, assembly="central"):
    return AmountCorrection(
        assembly_name=assembly,
        original_value=original,
        corrected_value=corrected,
    )


class TestMemberHistory:
    """Checks against the member's own giving."""

    def test_unusual_high(self, validator):
        result = validator.validate(5000, "central", history=history(50))

        assert result.reason == ValidationReason.UNUSUAL_HIGH
        assert result.is_flagged
        assert "5,000" in result.message
        assert "avg: 50" in result.message

    def test_unusual_low(self, validator):
        result = validator.validate(5, "central", history=history(100))
        assert result.reason == ValidationReason.UNUSUAL_LOW

    def test_within_range(self, validator):
        assert validator.validate(120, "central", history=history(100)).reason == ValidationReason.OK

    def test_zero_is_always_ok(self, validator):
        result = validator.validate(0, "central", history=history(100))
        assert result.reason == ValidationReason.OK
        assert not result.is_flagged

    def test_thin_history_is_ignored(self, validator):
        result = validator.validate(5000, "central", history=history(50, occurrences=2))
        assert result.reason == ValidationReason.OK


class TestAssemblyProfile:
    """Fallback to the assembly-wide distribution."""

    def test_anomaly_without_history(self, validator):
        profile = build_assembly_profile([50, 60, 40, 55, 45, 50])
        result = validator.validate(20000, "central", profile=profile)

        assert result.reason == ValidationReason.ANOMALY
        assert "central" in result.message

    def test_tiny_amount_is_anomaly(self, validator):
        profile = build_assembly_profile([500, 600, 400, 550, 450])
        assert validator.validate(2, "central", profile=profile).reason == ValidationReason.ANOMALY

    def test_too_few_samples(self, validator):
        profile = build_assembly_profile([50, 60, 0, 0])
        assert profile.sample_count == 2
        assert validator.validate(20000, "central", profile=profile).reason == ValidationReason.OK

    def test_explicit_zero_sample_minimum_is_kept(self):
        validator = AmountValidator(assembly_multiple=10.0, min_assembly_samples=0)
        profile = build_assembly_profile([50, 60, 0, 0])

        assert validator.min_assembly_samples == 0
        assert validator.validate(20000, "central", profile=profile).reason == ValidationReason.ANOMALY

    def test_no_profile_for_empty_amounts(self):
        assert build_assembly_profile([0, 0]) is None

    def test_no_data_is_ok(self):
        assert validate_amount(123, "central").reason == ValidationReason.OK


class TestOcrArtifacts:
    """Known and learned misreads."""

    def test_static_table(self, validator):
        result = validator.validate(0, "central", raw_amount="1OO")

        assert result.reason == ValidationReason.OCR_ARTIFACT
        assert result.suggested_amount == 100
        assert result.message == '"1OO" is a common misread of 100'

    def test_learned_correction_wins(self, validator):
        book = CorrectionBook([correction("1OO", 1000), correction("1OO", 1000)])
        result = validator.validate(0, "central", raw_amount="1oo", corrections=book)

        assert result.reason == ValidationReason.OCR_ARTIFACT
        assert result.suggested_amount == 1000
        assert "learned" in result.message

    def test_look_alike_match(self):
        book = CorrectionBook([correction("2OO", 200)])
        suggestion = book.suggest("2O0")

        assert suggestion.suggested_amount == 200
        assert not suggestion.is_exact_match

    def test_plain_numbers_need_exact_match(self):
        book = CorrectionBook([correction("5O", 50)])
        assert book.suggest("50") is None

    def test_assembly_beats_global(self):
        book = CorrectionBook(
            [correction("7O", 70)],
            [correction("7O", 700, assembly=GLOBAL_ASSEMBLY)],
        )
        suggestion = book.suggest("7O")

        assert suggestion.suggested_amount == 70
        assert not suggestion.is_global

    def test_global_confidence_discounted(self):
        book = CorrectionBook([], [correction("7O", 70, assembly=GLOBAL_ASSEMBLY)])
        suggestion = book.suggest("7O")

        assert suggestion.is_global
        # (0.5 + 0.3 + 0.1) * 0.9
        assert suggestion.confidence == pytest.approx(0.81)

    def test_most_frequent_value_wins(self):
        book = CorrectionBook([correction("3O", 30), correction("3O", 30), correction("3O", 80)])
        suggestion = book.suggest("3O")

        assert suggestion.suggested_amount == 30
        assert suggestion.occurrences == 2
        assert suggestion.confidence <= 0.95

    def test_correct_reading_is_not_flagged(self, validator):
        result = validator.validate(100, "central", raw_amount="1OO")
        assert result.reason == ValidationReason.OK

    def test_visual_key(self):
        assert visual_key("1OO") == visual_key("1O0") == "100"
        assert visual_key("S0") == "50"


class TestBuildMemberHistory:
    """Statistics from prior submissions."""

    def test_from_matched_records(self):
        member = RosterMember(membership_id="TAC001", surname="MENSAH", first_name="KOFI")
        records = [TitheRecord(sequence_number=1, raw_name="Kofi", amount=a, member=member) for a in (40, 50, 60)]
        log = [TransactionLogEntry(assembly_name="central", records=records)]

        stats = build_member_history("TAC001", log)

        assert stats.occurrences == 3
        assert stats.average_amount == 50
        assert stats.min_amount == 40
        assert stats.max_amount == 60
        assert stats.last_amount == 60

    def test_from_identity_strings(self):
        records = [
            TitheRecord(sequence_number=1, raw_name="x", amount=100, membership_identity="Mensah Kofi (TAC001)"),
            TitheRecord(sequence_number=2, raw_name="y", amount=300, membership_identity="Owusu Kwabena (TAC010|TAC001)"),
            TitheRecord(sequence_number=3, raw_name="z", amount=999, membership_identity="Boateng Adwoa (TAC0010)"),
            TitheRecord(sequence_number=4, raw_name="k", amount=0, membership_identity="Mensah Kofi (TAC001)"),
        ]
        stats = build_member_history("TAC001", [TransactionLogEntry(assembly_name="central", records=records)])

        assert stats.occurrences == 2
        assert stats.average_amount == 200

    def test_no_history(self):
        assert build_member_history("TAC001", []) is None
        assert build_member_history("", []) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
