"""Local durable storage: store backends, member ordering and learned corrections."""

from .base import DurableStore
from .memory_store import MemoryStore
from .sqlite_store import SQLiteStore
from .member_order import MemberOrderStore, MasterListSyncResult, OrderImportResult
from .learning import LearningStore

__all__ = [
    "DurableStore",
    "MemoryStore",
    "SQLiteStore",
    "MemberOrderStore",
    "MasterListSyncResult",
    "OrderImportResult",
    "LearningStore",
]
