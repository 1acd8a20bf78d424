"""Offline sync queue models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

from .enums import ActionType, SyncStatus


@dataclass
class PendingAction:
    """
    A queued mutation destined for the remote store.

    Deleted only on confirmed remote success or an explicit queue clear;
    failures bump retry_count and set last_error.
    """
    id: str  # sortable, defines FIFO order
    type: ActionType
    payload: Dict[str, Any] = field(default_factory=dict)
    entity_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)
    retry_count: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "payload": self.payload,
            "entity_id": self.entity_id,
            "timestamp": self.timestamp.isoformat(),
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingAction":
        return cls(
            id=data["id"],
            type=ActionType(data["type"]),
            payload=data.get("payload") or {},
            entity_id=data.get("entity_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            retry_count=data.get("retry_count", 0),
            last_error=data.get("last_error"),
        )


@dataclass
class SyncReport:
    """Outcome of one sync cycle."""
    status: SyncStatus
    synced: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    held_back: List[str] = field(default_factory=list)
    message: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
