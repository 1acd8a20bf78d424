"""Registry models: roster members, durable member ordering and learned data."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import uuid4

from .enums import OrderAction, CorrectionSource


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class RosterMember:
    """
    One registered member of an assembly's master list.
    Read-only to the pipeline; owned by the master-list import.
    """
    membership_id: str
    surname: str = ""
    first_name: str = ""
    other_names: str = ""
    title: str = ""
    old_membership_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Given names followed by surname."""
        parts = [self.first_name, self.other_names, self.surname]
        return " ".join(p.strip() for p in parts if p and p.strip())

    @property
    def display_name(self) -> str:
        """Canonical ledger identity: surname, given names, then ids."""
        parts = [self.surname, self.first_name, self.other_names]
        name = " ".join(p.strip() for p in parts if p and p.strip())
        if self.old_membership_id:
            ids = f"({self.membership_id}|{self.old_membership_id})"
        else:
            ids = f"({self.membership_id})"
        return f"{name} {ids}".strip()

    @property
    def member_key(self) -> str:
        """Primary id, falling back to the legacy id."""
        return self.membership_id or (self.old_membership_id or "")


@dataclass
class MemberOrderEntry:
    """
    One row of an assembly's durable tithe-book ordering.

    The id is derived from assembly and member id so that re-imports
    of the same member always land on the same row.
    """
    assembly_name: str
    member_id: str
    display_name: str
    tithe_book_index: Optional[int]
    first_seen_date: str = ""  # ISO date
    first_seen_month: str = ""  # YYYY-MM
    last_updated: datetime = field(default_factory=datetime.utcnow)
    is_active: bool = True
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = self.make_id(self.assembly_name, self.member_id)

    @staticmethod
    def make_id(assembly_name: str, member_id: str) -> str:
        return f"{assembly_name.strip().lower()}-{member_id.strip().lower()}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assembly_name": self.assembly_name,
            "member_id": self.member_id,
            "display_name": self.display_name,
            "tithe_book_index": self.tithe_book_index,
            "first_seen_date": self.first_seen_date,
            "first_seen_month": self.first_seen_month,
            "last_updated": _ts(self.last_updated),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemberOrderEntry":
        return cls(
            id=data["id"],
            assembly_name=data["assembly_name"],
            member_id=data["member_id"],
            display_name=data.get("display_name", ""),
            tithe_book_index=data.get("tithe_book_index"),
            first_seen_date=data.get("first_seen_date", ""),
            first_seen_month=data.get("first_seen_month", ""),
            last_updated=_parse_ts(data.get("last_updated")) or datetime.utcnow(),
            is_active=data.get("is_active", True),
        )


@dataclass
class OrderSnapshot:
    """Full copy of an assembly's ordering taken before a mutation."""
    assembly_name: str
    entries: List[MemberOrderEntry]
    reason: str = ""
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assembly_name": self.assembly_name,
            "reason": self.reason,
            "created_at": _ts(self.created_at),
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderSnapshot":
        return cls(
            id=data["id"],
            assembly_name=data["assembly_name"],
            reason=data.get("reason", ""),
            created_at=_parse_ts(data.get("created_at")) or datetime.utcnow(),
            entries=[MemberOrderEntry.from_dict(e) for e in data.get("entries", [])],
        )


@dataclass
class OrderHistoryEntry:
    """Append-only record of one ordering mutation."""
    assembly_name: str
    action: OrderAction
    description: str = ""
    affected_count: int = 0
    snapshot_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assembly_name": self.assembly_name,
            "action": self.action.value,
            "description": self.description,
            "affected_count": self.affected_count,
            "snapshot_id": self.snapshot_id,
            "details": self.details,
            "timestamp": _ts(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderHistoryEntry":
        return cls(
            id=data["id"],
            assembly_name=data["assembly_name"],
            action=OrderAction(data["action"]),
            description=data.get("description", ""),
            affected_count=data.get("affected_count", 0),
            snapshot_id=data.get("snapshot_id"),
            details=data.get("details") or {},
            timestamp=_parse_ts(data.get("timestamp")) or datetime.utcnow(),
        )


@dataclass
class AssemblyMetadata:
    """Bookkeeping for one assembly's stored order."""
    assembly_name: str
    total_members: int = 0
    last_sync_date: Optional[datetime] = None
    last_master_list_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assembly_name": self.assembly_name,
            "total_members": self.total_members,
            "last_sync_date": _ts(self.last_sync_date),
            "last_master_list_hash": self.last_master_list_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssemblyMetadata":
        return cls(
            assembly_name=data["assembly_name"],
            total_members=data.get("total_members", 0),
            last_sync_date=_parse_ts(data.get("last_sync_date")),
            last_master_list_hash=data.get("last_master_list_hash", ""),
        )


@dataclass
class IntegrityReport:
    """Read-only diagnostic over an ordering."""
    is_healthy: bool
    duplicate_indices: Dict[int, List[str]] = field(default_factory=dict)  # index -> member ids
    orphaned_members: List[str] = field(default_factory=list)
    total_active: int = 0


@dataclass
class RestoreResult:
    """Outcome of a snapshot restore; never raised, always returned."""
    success: bool
    restored_count: int = 0
    error: Optional[str] = None


@dataclass
class LearnedAlias:
    """Operator-confirmed mapping from an extracted name to a roster member."""
    assembly_name: str
    extracted_name: str  # normalized
    member_id: str
    display_name: str = ""
    usage_count: int = 1
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_used: datetime = field(default_factory=datetime.utcnow)
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = self.make_id(self.assembly_name, self.extracted_name)

    @staticmethod
    def make_id(assembly_name: str, extracted_name: str) -> str:
        slug = "-".join(extracted_name.split())
        return f"alias-{assembly_name.strip().lower()}-{slug}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assembly_name": self.assembly_name,
            "extracted_name": self.extracted_name,
            "member_id": self.member_id,
            "display_name": self.display_name,
            "usage_count": self.usage_count,
            "created_at": _ts(self.created_at),
            "last_used": _ts(self.last_used),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnedAlias":
        return cls(
            id=data["id"],
            assembly_name=data["assembly_name"],
            extracted_name=data["extracted_name"],
            member_id=data["member_id"],
            display_name=data.get("display_name", ""),
            usage_count=data.get("usage_count", 1),
            created_at=_parse_ts(data.get("created_at")) or datetime.utcnow(),
            last_used=_parse_ts(data.get("last_used")) or datetime.utcnow(),
        )


@dataclass
class AmountCorrection:
    """One manual amount correction made by an operator."""
    assembly_name: str
    original_value: str  # raw OCR text, normalized
    corrected_value: float
    member_id: Optional[str] = None
    source: CorrectionSource = CorrectionSource.TITHE_ENTRY
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assembly_name": self.assembly_name,
            "original_value": self.original_value,
            "corrected_value": self.corrected_value,
            "member_id": self.member_id,
            "source": self.source.value,
            "timestamp": _ts(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AmountCorrection":
        return cls(
            id=data["id"],
            assembly_name=data["assembly_name"],
            original_value=data["original_value"],
            corrected_value=data["corrected_value"],
            member_id=data.get("member_id"),
            source=CorrectionSource(data.get("source", CorrectionSource.TITHE_ENTRY.value)),
            timestamp=_parse_ts(data.get("timestamp")) or datetime.utcnow(),
        )
