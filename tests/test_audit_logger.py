"""
Tests for the batch audit trail and logging setup.
"""

import json
import logging

import pytest
import structlog

from tithebook.logging import setup_logging
from tithebook.models import BatchWarning, WarningKind, WarningLevel
from tithebook.utils.audit_logger import AuditLogger


@pytest.fixture
def audit():
    trail = AuditLogger("job12345")
    trail.log_many([
        BatchWarning(kind=WarningKind.IMAGE_REJECTED, message="p1.png: bad", level=WarningLevel.ERROR, file_name="p1.png"),
        BatchWarning(kind=WarningKind.UNMATCHED_NAME, message="No match", level=WarningLevel.INFO, sequence_number=4),
        BatchWarning(kind=WarningKind.UNMATCHED_NAME, message="No match", level=WarningLevel.INFO, sequence_number=9),
        BatchWarning(kind=WarningKind.AMOUNT_FLAGGED, message="Too high", details={"reason": "unusual_high"}),
    ])
    return trail


class TestAuditLogger:
    """Collecting and exporting warnings."""

    def test_filters(self, audit):
        assert len(audit.get_entries()) == 4
        assert len(audit.get_entries(kind=WarningKind.UNMATCHED_NAME)) == 2
        assert [e.kind for e in audit.get_entries(level=WarningLevel.ERROR)] == [WarningKind.IMAGE_REJECTED]
        assert audit.get_entries(kind=WarningKind.UNMATCHED_NAME, level=WarningLevel.ERROR) == []

    def test_summary(self, audit):
        summary = audit.summary()

        assert summary["total_entries"] == 4
        assert summary["kind_counts"]["unmatched_name"] == 2
        assert summary["level_counts"] == {"error": 1, "info": 2, "warning": 1}

    def test_export(self, audit, tmp_path):
        path = audit.export_to_file(tmp_path / "out" / "audit.json")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["job_id"] == "job12345"
        assert data["total_entries"] == 4
        assert data["entries"][0]["kind"] == "image_rejected"
        assert data["entries"][3]["details"] == {"reason": "unusual_high"}


class TestSetupLogging:
    """Host-side logging configuration."""

    def test_writes_key_value_lines(self, tmp_path):
        log_file = tmp_path / "logs" / "tithebook.log"
        try:
            setup_logging("INFO", log_file)
            structlog.get_logger("tithebook.test").info("Batch started", job_id="abc")
            for handler in logging.getLogger().handlers:
                handler.flush()

            text = log_file.read_text(encoding="utf-8")
            assert "event='Batch started'" in text
            assert "job_id='abc'" in text
        finally:
            for handler in list(logging.getLogger().handlers):
                if isinstance(handler, logging.FileHandler):
                    handler.close()
            structlog.reset_defaults()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
