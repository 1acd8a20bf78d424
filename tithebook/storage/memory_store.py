"""In-process DurableStore, for tests and hosts without a disk."""

import asyncio
import copy
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .base import Record


class MemoryStore:
    """Dict-backed store. Values are deep-copied in and out."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Record]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection: str, key: str) -> Optional[Record]:
        value = self._data.get(collection, {}).get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, collection: str, key: str, value: Record) -> None:
        async with self._lock:
            self._data.setdefault(collection, {})[key] = copy.deepcopy(value)

    async def put_many(self, collection: str, items: Iterable[Tuple[str, Record]]) -> None:
        staged = {key: copy.deepcopy(value) for key, value in items}
        async with self._lock:
            self._data.setdefault(collection, {}).update(staged)

    async def delete(self, collection: str, key: str) -> bool:
        async with self._lock:
            return self._data.get(collection, {}).pop(key, None) is not None

    async def delete_many(self, collection: str, keys: Iterable[str]) -> int:
        async with self._lock:
            bucket = self._data.get(collection, {})
            return sum(1 for key in list(keys) if bucket.pop(key, None) is not None)

    async def list_by_index(self, collection: str, field: str, value: Any) -> List[Record]:
        bucket = self._data.get(collection, {})
        return [
            copy.deepcopy(bucket[key])
            for key in sorted(bucket)
            if bucket[key].get(field) == value
        ]

    async def list_all(self, collection: str) -> List[Record]:
        bucket = self._data.get(collection, {})
        return [copy.deepcopy(bucket[key]) for key in sorted(bucket)]
