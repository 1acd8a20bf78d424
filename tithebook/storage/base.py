"""
Local durable store contract.

Records are JSON-compatible dicts grouped in named collections. Single
puts are atomic per record; put_many and delete_many are atomic as a
whole.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

Record = Dict[str, Any]


@runtime_checkable
class DurableStore(Protocol):
    """Key-value store with simple field-equality indexes."""

    async def get(self, collection: str, key: str) -> Optional[Record]:
        ...

    async def put(self, collection: str, key: str, value: Record) -> None:
        ...

    async def put_many(self, collection: str, items: Iterable[Tuple[str, Record]]) -> None:
        ...

    async def delete(self, collection: str, key: str) -> bool:
        ...

    async def delete_many(self, collection: str, keys: Iterable[str]) -> int:
        ...

    async def list_by_index(self, collection: str, field: str, value: Any) -> List[Record]:
        """Records whose top-level field equals value, ordered by key."""
        ...

    async def list_all(self, collection: str) -> List[Record]:
        ...
