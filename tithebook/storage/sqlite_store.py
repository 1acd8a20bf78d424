"""
SQLite-backed DurableStore using aiosqlite.

One row per record, value stored as JSON, WAL journal. Each call opens
its own connection and commits on success only.
"""

import json
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple, Union

import aiosqlite
import structlog

from ..config import get_settings
from ..exceptions import StoreError
from .base import Record

logger = structlog.get_logger()

_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
  collection TEXT NOT NULL,
  key TEXT NOT NULL,
  value TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  PRIMARY KEY (collection, key)
);
"""


class SQLiteStore:
    """Durable store in a single SQLite file."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else get_settings().database_path
        self._schema_ready = False

    @asynccontextmanager
    async def _conn(self):
        if not self._schema_ready:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self.path))
        try:
            await db.execute("PRAGMA journal_mode=WAL;")
            if not self._schema_ready:
                await db.execute(_SCHEMA)
                self._schema_ready = True
            yield db
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            logger.error("Store operation failed", path=str(self.path), error=str(e))
            raise StoreError(f"SQLite store failure: {e}") from e
        finally:
            await db.close()

    async def get(self, collection: str, key: str) -> Optional[Record]:
        async with self._conn() as db:
            cur = await db.execute(
                "SELECT value FROM records WHERE collection=? AND key=?",
                (collection, key),
            )
            row = await cur.fetchone()
        return json.loads(row[0]) if row else None

    async def put(self, collection: str, key: str, value: Record) -> None:
        async with self._conn() as db:
            await db.execute(
                "INSERT OR REPLACE INTO records(collection, key, value, updated_at) VALUES (?,?,?,?)",
                (collection, key, _dumps(value), datetime.utcnow().isoformat()),
            )

    async def put_many(self, collection: str, items: Iterable[Tuple[str, Record]]) -> None:
        now = datetime.utcnow().isoformat()
        rows = [(collection, key, _dumps(value), now) for key, value in items]
        if not rows:
            return
        async with self._conn() as db:
            await db.executemany(
                "INSERT OR REPLACE INTO records(collection, key, value, updated_at) VALUES (?,?,?,?)",
                rows,
            )

    async def delete(self, collection: str, key: str) -> bool:
        async with self._conn() as db:
            cur = await db.execute(
                "DELETE FROM records WHERE collection=? AND key=?",
                (collection, key),
            )
            return cur.rowcount > 0

    async def delete_many(self, collection: str, keys: Iterable[str]) -> int:
        params = [(collection, key) for key in keys]
        if not params:
            return 0
        async with self._conn() as db:
            before = db.total_changes
            await db.executemany(
                "DELETE FROM records WHERE collection=? AND key=?",
                params,
            )
            return db.total_changes - before

    async def list_by_index(self, collection: str, field: str, value: Any) -> List[Record]:
        # json_extract yields 0/1 for JSON booleans
        if isinstance(value, bool):
            value = int(value)
        async with self._conn() as db:
            cur = await db.execute(
                "SELECT value FROM records WHERE collection=? "
                "AND json_extract(value, ?) = ? ORDER BY key",
                (collection, f"$.{field}", value),
            )
            rows = await cur.fetchall()
        return [json.loads(r[0]) for r in rows]

    async def list_all(self, collection: str) -> List[Record]:
        async with self._conn() as db:
            cur = await db.execute(
                "SELECT value FROM records WHERE collection=? ORDER BY key",
                (collection,),
            )
            rows = await cur.fetchall()
        return [json.loads(r[0]) for r in rows]


def _dumps(value: Record) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)
