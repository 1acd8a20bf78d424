"""
Audit trail of batch warnings.
"""

import json
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog

from ..config import get_settings
from ..models import BatchWarning, WarningKind, WarningLevel

logger = structlog.get_logger()


class AuditLogger:
    """
    Collects the structured warnings of one batch run.
    Every warning is also sent to structlog as it arrives.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.entries: List[BatchWarning] = []
        self.settings = get_settings()

    def log(self, warning: BatchWarning) -> None:
        """Add a warning."""
        self.entries.append(warning)

        log_method = logger.error if warning.level == WarningLevel.ERROR else (
            logger.warning if warning.level == WarningLevel.WARNING else logger.info
        )
        log_method(
            warning.message,
            job_id=self.job_id,
            kind=warning.kind.value,
            file_name=warning.file_name,
            sequence_number=warning.sequence_number,
        )

    def log_many(self, warnings: List[BatchWarning]) -> None:
        for warning in warnings:
            self.log(warning)

    def get_entries(
        self,
        kind: Optional[WarningKind] = None,
        level: Optional[WarningLevel] = None,
    ) -> List[BatchWarning]:
        """Get filtered warnings."""
        entries = self.entries

        if kind:
            entries = [e for e in entries if e.kind == kind]

        if level:
            entries = [e for e in entries if e.level == level]

        return entries

    def export_to_file(self, output_path: Optional[Path] = None) -> Path:
        """Export the trail to a JSON file."""
        if output_path is None:
            output_path = self.settings.reports_dir / f"batch_{self.job_id}.json"

        output_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "job_id": self.job_id,
            "exported_at": datetime.utcnow().isoformat(),
            "total_entries": len(self.entries),
            "entries": [
                {
                    "id": e.id,
                    "timestamp": e.timestamp.isoformat(),
                    "kind": e.kind.value,
                    "level": e.level.value,
                    "message": e.message,
                    "file_name": e.file_name,
                    "sequence_number": e.sequence_number,
                    "details": e.details,
                }
                for e in self.entries
            ],
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        logger.info("Batch audit exported", path=str(output_path))
        return output_path

    def summary(self) -> dict:
        """Counts by kind and level."""
        return {
            "total_entries": len(self.entries),
            "kind_counts": dict(Counter(e.kind.value for e in self.entries)),
            "level_counts": dict(Counter(e.level.value for e in self.entries)),
        }
