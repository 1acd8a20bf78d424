"""Offline sync queue."""

from .queue import SyncQueue

__all__ = ["SyncQueue"]
