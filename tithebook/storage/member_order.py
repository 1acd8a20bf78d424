"""
Member order store.

The authoritative, durable mapping from member to tithe-book position
for each assembly, independent of any single weekly import. Every
mutation is serialized per assembly, written with one put_many, and
recorded in an append-only history, usually paired with a snapshot of
the order taken just before it.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import structlog

from ..config import get_settings
from ..models import (
    AssemblyMetadata,
    IntegrityReport,
    LearnedAlias,
    MemberOrderEntry,
    OrderAction,
    OrderHistoryEntry,
    OrderSnapshot,
    RestoreResult,
    RosterMember,
)
from ..exceptions import TithebookError
from ..utils.names import normalize_name
from .base import DurableStore

logger = structlog.get_logger()

ORDERS = "member_orders"
HISTORY = "order_history"
SNAPSHOTS = "order_snapshots"
METADATA = "assembly_meta"
ALIASES = "learned_aliases"

EXPORT_VERSION = 1


def _assembly_key(assembly: str) -> str:
    return (assembly or "").strip().lower()


def _require_assembly(assembly: str) -> str:
    key = _assembly_key(assembly)
    if not key:
        raise ValueError("assembly name must not be empty")
    return key


def _index_key(entry: MemberOrderEntry) -> tuple:
    # unindexed entries sort last
    index = entry.tithe_book_index
    return (index is None, index if index is not None else 0, entry.member_id.lower())


def master_list_hash(members: Iterable[RosterMember]) -> str:
    ids = ",".join(sorted(m.member_key for m in members))
    return hashlib.sha1(ids.encode("utf-8")).hexdigest()[:16]


@dataclass
class MasterListSyncResult:
    """What a master-list sync did."""
    new_members: List[str] = field(default_factory=list)
    existing_members: List[str] = field(default_factory=list)
    skipped: int = 0
    total_processed: int = 0


@dataclass
class OrderImportResult:
    """Outcome of importing an exported order."""
    success: bool = False
    imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


class MemberOrderStore:
    """Durable per-assembly tithe-book ordering with history and snapshots."""

    def __init__(
        self,
        store: DurableStore,
        snapshot_retention: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.snapshot_retention = snapshot_retention if snapshot_retention is not None else get_settings().snapshot_retention
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._last_stamp = 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock(self, assembly: str) -> asyncio.Lock:
        key = _assembly_key(assembly)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _stamp(self) -> int:
        """Strictly increasing ordering stamp for history and snapshots."""
        self._last_stamp = max(time.time_ns(), self._last_stamp + 1)
        return self._last_stamp

    async def _load_entries(self, assembly: str) -> List[MemberOrderEntry]:
        rows = await self.store.list_by_index(ORDERS, "assembly_key", _assembly_key(assembly))
        return [MemberOrderEntry.from_dict(r) for r in rows]

    async def _write_entries(self, entries: Sequence[MemberOrderEntry]) -> None:
        await self.store.put_many(
            ORDERS,
            [
                (e.id, {**e.to_dict(), "assembly_key": _assembly_key(e.assembly_name)})
                for e in entries
            ],
        )

    async def _take_snapshot(
        self,
        assembly: str,
        entries: Sequence[MemberOrderEntry],
        reason: str,
    ) -> OrderSnapshot:
        snapshot = OrderSnapshot(
            assembly_name=assembly,
            entries=[MemberOrderEntry.from_dict(e.to_dict()) for e in entries],
            reason=reason,
            created_at=self._clock(),
        )
        await self.store.put(
            SNAPSHOTS,
            snapshot.id,
            {**snapshot.to_dict(), "assembly_key": _assembly_key(assembly), "seq": self._stamp()},
        )
        await self._prune_snapshots(assembly)
        return snapshot

    async def _prune_snapshots(self, assembly: str) -> int:
        rows = await self.store.list_by_index(SNAPSHOTS, "assembly_key", _assembly_key(assembly))
        rows.sort(key=lambda r: r.get("seq", 0), reverse=True)
        stale = [r["id"] for r in rows[self.snapshot_retention:]]
        if stale:
            await self.store.delete_many(SNAPSHOTS, stale)
            logger.debug("Old snapshots pruned", assembly=assembly, deleted=len(stale))
        return len(stale)

    async def _log_change(
        self,
        assembly: str,
        action: OrderAction,
        description: str,
        affected_count: int,
        snapshot_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> OrderHistoryEntry:
        entry = OrderHistoryEntry(
            assembly_name=assembly,
            action=action,
            description=description,
            affected_count=affected_count,
            snapshot_id=snapshot_id,
            details=details or {},
            timestamp=self._clock(),
        )
        await self.store.put(
            HISTORY,
            entry.id,
            {**entry.to_dict(), "assembly_key": _assembly_key(assembly), "seq": self._stamp()},
        )
        logger.info(
            "Member order changed",
            assembly=assembly,
            action=action.value,
            affected=affected_count,
            description=description,
        )
        return entry

    async def _write_metadata(self, assembly: str, total: int, members_hash: str) -> None:
        meta = AssemblyMetadata(
            assembly_name=assembly,
            total_members=total,
            last_sync_date=self._clock(),
            last_master_list_hash=members_hash,
        )
        await self.store.put(METADATA, _assembly_key(assembly), meta.to_dict())

    def _new_entry(self, assembly: str, member: RosterMember, index: int) -> MemberOrderEntry:
        now = self._clock()
        return MemberOrderEntry(
            assembly_name=assembly,
            member_id=member.member_key,
            display_name=member.display_name,
            tithe_book_index=index,
            first_seen_date=now.date().isoformat(),
            first_seen_month=now.strftime("%Y-%m"),
            last_updated=now,
            is_active=True,
        )

    @staticmethod
    def _active_sorted(entries: Iterable[MemberOrderEntry]) -> List[MemberOrderEntry]:
        return sorted((e for e in entries if e.is_active), key=_index_key)

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    async def has_persisted_order(self, assembly: str) -> bool:
        return bool(await self._load_entries(assembly))

    async def initialize_order(self, members: Sequence[RosterMember], assembly: str) -> int:
        """
        Seed the order from a first master list, in list order.

        Returns the number of entries created; 0 if the assembly already
        has an order.
        """
        _require_assembly(assembly)
        async with self._lock(assembly):
            if await self._load_entries(assembly):
                logger.debug("Order already initialized", assembly=assembly)
                return 0

            entries: List[MemberOrderEntry] = []
            seen = set()
            for member in members:
                member_id = member.member_key
                if not member_id or member_id.lower() in seen:
                    continue
                seen.add(member_id.lower())
                entries.append(self._new_entry(assembly, member, len(entries) + 1))

            await self._write_entries(entries)
            await self._write_metadata(assembly, len(entries), master_list_hash(members))
            await self._log_change(
                assembly,
                OrderAction.IMPORT,
                "Initialized order from master list",
                len(entries),
            )
            return len(entries)

    async def get_ordered_members(self, assembly: str) -> List[MemberOrderEntry]:
        """Active entries by tithe-book index."""
        return self._active_sorted(await self._load_entries(assembly))

    async def sync_with_master_list(
        self,
        members: Sequence[RosterMember],
        assembly: str,
    ) -> MasterListSyncResult:
        """
        Reconcile a freshly imported master list with the stored order.

        Members already ordered keep their index. New members and
        returning members are appended after the current last index, so
        active indices stay exactly 1..N.
        """
        _require_assembly(assembly)
        result = MasterListSyncResult(total_processed=len(members))

        async with self._lock(assembly):
            entries = await self._load_entries(assembly)
            by_member = {e.member_id.lower(): e for e in entries}
            next_index = max(
                (e.tithe_book_index for e in entries if e.is_active and e.tithe_book_index is not None),
                default=0,
            )
            now = self._clock()

            changed: List[MemberOrderEntry] = []
            appended = 0
            for member in members:
                member_id = member.member_key
                if not member_id:
                    result.skipped += 1
                    continue

                existing = by_member.get(member_id.lower())
                if existing is not None:
                    result.existing_members.append(member_id)
                    if existing.is_active:
                        continue
                    # inactive rows keep stale indices; only the next free slot is reusable
                    existing.is_active = True
                    existing.last_updated = now
                    next_index += 1
                    if existing.tithe_book_index != next_index:
                        existing.tithe_book_index = next_index
                        appended += 1
                    changed.append(existing)
                    continue

                next_index += 1
                entry = self._new_entry(assembly, member, next_index)
                by_member[member_id.lower()] = entry
                changed.append(entry)
                result.new_members.append(member_id)
                appended += 1

            snapshot = None
            if changed:
                snapshot = await self._take_snapshot(assembly, entries, "before master list sync")
                await self._write_entries(changed)

            total = sum(1 for e in by_member.values() if e.is_active)
            await self._write_metadata(assembly, total, master_list_hash(members))

            if changed:
                await self._log_change(
                    assembly,
                    OrderAction.IMPORT,
                    f"Synced master list: {len(result.new_members)} new member(s)",
                    len(changed),
                    snapshot_id=snapshot.id,
                    details={"new_members": result.new_members, "appended": appended},
                )

        return result

    async def apply_new_order(
        self,
        ordered_member_ids: Sequence[str],
        assembly: str,
        action: OrderAction = OrderAction.REORDER,
    ) -> OrderHistoryEntry:
        """
        Rewrite indices to follow the given sequence.

        Active members left out of the sequence keep their relative order
        after the listed ones. Unknown ids are ignored and reported in the
        history entry details.
        """
        _require_assembly(assembly)
        if action not in (OrderAction.REORDER, OrderAction.AI_REORDER):
            raise ValueError(f"apply_new_order does not record {action.value!r} changes")

        async with self._lock(assembly):
            entries = await self._load_entries(assembly)
            active = self._active_sorted(entries)
            by_member = {e.member_id.lower(): e for e in active}

            ordered: List[MemberOrderEntry] = []
            placed = set()
            unknown: List[str] = []
            for member_id in ordered_member_ids:
                key = (member_id or "").lower()
                entry = by_member.get(key)
                if entry is None:
                    unknown.append(member_id)
                    continue
                if key in placed:
                    continue
                placed.add(key)
                ordered.append(entry)
            ordered.extend(e for e in active if e.member_id.lower() not in placed)

            snapshot = await self._take_snapshot(assembly, entries, f"before {action.value}")

            now = self._clock()
            changed = []
            for position, entry in enumerate(ordered, start=1):
                if entry.tithe_book_index != position:
                    entry.tithe_book_index = position
                    entry.last_updated = now
                    changed.append(entry)
            await self._write_entries(changed)

            if unknown:
                logger.warning("Unknown member ids ignored in reorder", assembly=assembly, unknown=unknown)

            return await self._log_change(
                assembly,
                action,
                f"Reordered {len(changed)} member(s)",
                len(changed),
                snapshot_id=snapshot.id,
                details={"unknown_ids": unknown},
            )

    async def update_member_position(self, member_id: str, new_index: int, assembly: str) -> bool:
        """
        Move one member to new_index, swapping with its current holder.
        Returns False if the member is not in the order.
        """
        _require_assembly(assembly)
        async with self._lock(assembly):
            entries = await self._load_entries(assembly)
            active = self._active_sorted(entries)
            if new_index < 1 or new_index > len(active):
                raise ValueError(f"new_index must be within 1..{len(active)}")

            target_id = MemberOrderEntry.make_id(assembly, member_id)
            entry = next((e for e in active if e.id == target_id), None)
            if entry is None:
                return False

            old_index = entry.tithe_book_index
            if old_index == new_index:
                return True

            holder = next(
                (e for e in active if e.tithe_book_index == new_index and e.id != entry.id),
                None,
            )
            snapshot = await self._take_snapshot(assembly, entries, "before manual move")

            now = self._clock()
            changed = [entry]
            if holder is not None:
                holder.tithe_book_index = old_index
                holder.last_updated = now
                changed.append(holder)
            entry.tithe_book_index = new_index
            entry.last_updated = now
            await self._write_entries(changed)

            if holder is not None:
                description = (
                    f"Swapped #{old_index} ({entry.display_name}) with "
                    f"#{new_index} ({holder.display_name})"
                )
            else:
                description = f"Moved {entry.display_name} to #{new_index} (was #{old_index})"
            await self._log_change(
                assembly,
                OrderAction.MANUAL,
                description,
                len(changed),
                snapshot_id=snapshot.id,
            )
            return True

    async def reset_order_from_master_list(
        self,
        members: Sequence[RosterMember],
        assembly: str,
    ) -> int:
        """
        Renumber the order to follow the master list exactly.

        First-seen dates survive; members no longer on the list become
        inactive. Returns the number of active entries afterwards.
        """
        _require_assembly(assembly)
        async with self._lock(assembly):
            entries = await self._load_entries(assembly)
            by_member = {e.member_id.lower(): e for e in entries}
            snapshot = await self._take_snapshot(assembly, entries, "before reset")

            now = self._clock()
            kept = set()
            changed: List[MemberOrderEntry] = []
            for member in members:
                member_id = member.member_key
                if not member_id or member_id.lower() in kept:
                    continue
                kept.add(member_id.lower())
                index = len(kept)
                existing = by_member.get(member_id.lower())
                if existing is None:
                    changed.append(self._new_entry(assembly, member, index))
                    continue
                existing.tithe_book_index = index
                existing.display_name = member.display_name
                existing.is_active = True
                existing.last_updated = now
                changed.append(existing)

            for key, entry in by_member.items():
                if key not in kept and entry.is_active:
                    entry.is_active = False
                    entry.last_updated = now
                    changed.append(entry)

            await self._write_entries(changed)
            await self._write_metadata(assembly, len(kept), master_list_hash(members))
            await self._log_change(
                assembly,
                OrderAction.RESET,
                "Reset order to match master list",
                len(kept),
                snapshot_id=snapshot.id,
            )
            return len(kept)

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    @staticmethod
    def validate_integrity(entries: Iterable[MemberOrderEntry]) -> IntegrityReport:
        """
        Diagnose duplicate and missing indices among active entries.
        Never mutates anything.
        """
        by_index: Dict[int, List[str]] = {}
        orphans: List[str] = []
        total = 0
        for entry in entries:
            if not entry.is_active:
                continue
            total += 1
            index = entry.tithe_book_index
            if index is None or not isinstance(index, int) or index < 1:
                orphans.append(entry.member_id)
                continue
            by_index.setdefault(index, []).append(entry.member_id)

        duplicates = {i: ids for i, ids in sorted(by_index.items()) if len(ids) > 1}
        return IntegrityReport(
            is_healthy=not duplicates and not orphans,
            duplicate_indices=duplicates,
            orphaned_members=orphans,
            total_active=total,
        )

    async def check_assembly_integrity(self, assembly: str) -> IntegrityReport:
        return self.validate_integrity(await self._load_entries(assembly))

    async def repair_order(self, assembly: str) -> int:
        """
        Explicit repair: the most recently updated holder of a duplicated
        index keeps it, other holders and orphans move to the end, then
        indices are compacted to 1..N. Returns the number of entries moved.
        """
        _require_assembly(assembly)
        async with self._lock(assembly):
            entries = await self._load_entries(assembly)
            report = self.validate_integrity(entries)
            active = [e for e in entries if e.is_active]

            keepers: List[MemberOrderEntry] = []
            displaced: List[MemberOrderEntry] = []
            by_index: Dict[int, List[MemberOrderEntry]] = {}
            for entry in active:
                index = entry.tithe_book_index
                if index is None or not isinstance(index, int) or index < 1:
                    displaced.append(entry)
                else:
                    by_index.setdefault(index, []).append(entry)

            for index in sorted(by_index):
                holders = sorted(
                    by_index[index],
                    key=lambda e: (e.last_updated, e.member_id.lower()),
                    reverse=True,
                )
                keepers.append(holders[0])
                displaced.extend(holders[1:])

            ordered = keepers + sorted(displaced, key=_index_key)
            needs_compaction = any(
                e.tithe_book_index != position for position, e in enumerate(ordered, start=1)
            )
            if report.is_healthy and not needs_compaction:
                return 0

            snapshot = await self._take_snapshot(assembly, entries, "before repair")
            now = self._clock()
            changed = []
            for position, entry in enumerate(ordered, start=1):
                if entry.tithe_book_index != position:
                    entry.tithe_book_index = position
                    entry.last_updated = now
                    changed.append(entry)
            await self._write_entries(changed)

            moved = len(displaced)
            await self._log_change(
                assembly,
                OrderAction.MANUAL,
                (
                    f"Repaired order: {len(report.duplicate_indices)} duplicate index(es), "
                    f"{len(report.orphaned_members)} orphan(s)"
                ),
                len(changed),
                snapshot_id=snapshot.id,
                details={
                    "duplicate_indices": {str(k): v for k, v in report.duplicate_indices.items()},
                    "orphaned_members": report.orphaned_members,
                },
            )
            return moved

    # ------------------------------------------------------------------
    # History and snapshots
    # ------------------------------------------------------------------

    async def get_order_history(self, assembly: str, limit: int = 50) -> List[OrderHistoryEntry]:
        """Newest first."""
        rows = await self.store.list_by_index(HISTORY, "assembly_key", _assembly_key(assembly))
        rows.sort(key=lambda r: r.get("seq", 0), reverse=True)
        return [OrderHistoryEntry.from_dict(r) for r in rows[:limit]]

    async def get_snapshots(self, assembly: str, limit: int = 10) -> List[OrderSnapshot]:
        """Newest first."""
        rows = await self.store.list_by_index(SNAPSHOTS, "assembly_key", _assembly_key(assembly))
        rows.sort(key=lambda r: r.get("seq", 0), reverse=True)
        return [OrderSnapshot.from_dict(r) for r in rows[:limit]]

    async def get_snapshot_for_history(self, history_id: str) -> Optional[OrderSnapshot]:
        row = await self.store.get(HISTORY, history_id)
        if not row or not row.get("snapshot_id"):
            return None
        snapshot = await self.store.get(SNAPSHOTS, row["snapshot_id"])
        return OrderSnapshot.from_dict(snapshot) if snapshot else None

    async def restore_snapshot(self, snapshot_id: str) -> RestoreResult:
        """
        Put an assembly's order back exactly as a snapshot recorded it.

        Entries created after the snapshot are kept active and appended in
        their current order. Failures are returned, not raised.
        """
        try:
            row = await self.store.get(SNAPSHOTS, snapshot_id)
            if not row:
                return RestoreResult(success=False, error="Snapshot not found")
            snapshot = OrderSnapshot.from_dict(row)
            assembly = snapshot.assembly_name

            async with self._lock(assembly):
                entries = await self._load_entries(assembly)
                current = {e.id: e for e in entries}
                pre_restore = await self._take_snapshot(assembly, entries, "before restore")

                now = self._clock()
                restored: List[MemberOrderEntry] = []
                for saved in snapshot.entries:
                    entry = current.pop(saved.id, None)
                    if entry is None:
                        entry = saved
                    entry.tithe_book_index = saved.tithe_book_index
                    entry.is_active = saved.is_active
                    entry.display_name = saved.display_name
                    entry.last_updated = now
                    restored.append(entry)

                last = max(
                    (e.tithe_book_index for e in restored
                     if e.is_active and e.tithe_book_index is not None),
                    default=0,
                )
                newer = self._active_sorted(current.values())
                for entry in newer:
                    last += 1
                    entry.tithe_book_index = last
                    entry.last_updated = now

                await self._write_entries(restored + newer)
                await self._log_change(
                    assembly,
                    OrderAction.RESET,
                    f"Restored order from snapshot ({snapshot.created_at.date().isoformat()})",
                    len(restored),
                    snapshot_id=pre_restore.id,
                    details={"restored_snapshot_id": snapshot_id, "appended": len(newer)},
                )

            return RestoreResult(success=True, restored_count=len(restored))
        except (TithebookError, KeyError, ValueError, TypeError, AttributeError) as e:
            # malformed snapshot rows surface as decode errors
            logger.exception("Snapshot restore failed", snapshot_id=snapshot_id)
            return RestoreResult(success=False, error=str(e))

    # ------------------------------------------------------------------
    # Export / import and bookkeeping
    # ------------------------------------------------------------------

    async def export_order(self, assembly: str) -> Dict[str, Any]:
        active = await self.get_ordered_members(assembly)
        return {
            "version": EXPORT_VERSION,
            "assembly_name": assembly,
            "export_date": self._clock().isoformat(),
            "member_count": len(active),
            "members": [
                {
                    "member_id": e.member_id,
                    "display_name": e.display_name,
                    "tithe_book_index": e.tithe_book_index,
                }
                for e in active
            ],
        }

    async def import_order(self, data: Dict[str, Any], assembly: str) -> OrderImportResult:
        """
        Apply an exported order. Members missing from the export follow
        the imported ones; indices are compacted to 1..N.
        """
        result = OrderImportResult()
        if data.get("version") != EXPORT_VERSION:
            result.errors.append(f"Unsupported version: {data.get('version')}")
            return result
        if _assembly_key(data.get("assembly_name", "")) != _assembly_key(assembly):
            result.errors.append(
                f"Assembly mismatch: expected {assembly}, got {data.get('assembly_name')}"
            )
            return result

        async with self._lock(assembly):
            entries = await self._load_entries(assembly)
            active = {e.member_id.lower(): e for e in entries if e.is_active}

            wanted: Dict[str, int] = {}
            for member in data.get("members", []):
                key = str(member.get("member_id", "")).lower()
                if key in active and key not in wanted:
                    wanted[key] = int(member.get("tithe_book_index") or 0)
                    result.imported += 1
                else:
                    result.skipped += 1

            ordered = sorted(
                active.values(),
                key=lambda e: (
                    e.member_id.lower() not in wanted,
                    wanted.get(e.member_id.lower(), 0),
                    _index_key(e),
                ),
            )

            snapshot = await self._take_snapshot(assembly, entries, "before import")
            now = self._clock()
            changed = []
            for position, entry in enumerate(ordered, start=1):
                if entry.tithe_book_index != position:
                    entry.tithe_book_index = position
                    entry.last_updated = now
                    changed.append(entry)
            await self._write_entries(changed)
            await self._log_change(
                assembly,
                OrderAction.IMPORT,
                f"Imported order from backup ({data.get('export_date', 'unknown date')})",
                result.imported,
                snapshot_id=snapshot.id,
            )

        result.success = True
        return result

    async def get_assembly_metadata(self, assembly: str) -> Optional[AssemblyMetadata]:
        row = await self.store.get(METADATA, _assembly_key(assembly))
        return AssemblyMetadata.from_dict(row) if row else None

    async def get_won_souls(self, assembly: str, month: Optional[str] = None) -> List[MemberOrderEntry]:
        """Active members first seen in month (YYYY-MM), default this month."""
        target = month or self._clock().strftime("%Y-%m")
        return [
            e for e in await self.get_ordered_members(assembly)
            if e.first_seen_month == target
        ]

    async def delete_assembly_data(self, assembly: str) -> None:
        """Drop an assembly's order, snapshots, metadata and aliases. History is kept."""
        key = _assembly_key(assembly)
        async with self._lock(assembly):
            for collection in (ORDERS, SNAPSHOTS, ALIASES):
                rows = await self.store.list_by_index(collection, "assembly_key", key)
                await self.store.delete_many(collection, [r["id"] for r in rows])
            await self.store.delete(METADATA, key)
        logger.info("Assembly order data deleted", assembly=assembly)

    # ------------------------------------------------------------------
    # Learned aliases
    # ------------------------------------------------------------------

    async def save_learned_alias(
        self,
        assembly: str,
        extracted_name: str,
        member: RosterMember,
    ) -> Optional[LearnedAlias]:
        """Remember that extracted_name means member. Repeat saves bump usage."""
        normalized = normalize_name(extracted_name)
        if not normalized:
            logger.warning("Empty alias ignored", assembly=assembly)
            return None

        alias_id = LearnedAlias.make_id(assembly, normalized)
        existing = await self.store.get(ALIASES, alias_id)
        now = self._clock()
        alias = LearnedAlias(
            id=alias_id,
            assembly_name=assembly,
            extracted_name=normalized,
            member_id=member.member_key,
            display_name=member.display_name,
            usage_count=(existing["usage_count"] + 1) if existing else 1,
            created_at=LearnedAlias.from_dict(existing).created_at if existing else now,
            last_used=now,
        )
        await self.store.put(
            ALIASES,
            alias.id,
            {**alias.to_dict(), "assembly_key": _assembly_key(assembly)},
        )
        logger.info("Alias learned", assembly=assembly, extracted=normalized, member_id=alias.member_id)
        return alias

    async def get_learned_aliases(self, assembly: str) -> List[LearnedAlias]:
        rows = await self.store.list_by_index(ALIASES, "assembly_key", _assembly_key(assembly))
        return [LearnedAlias.from_dict(r) for r in rows]

    async def find_alias_match(self, assembly: str, extracted_name: str) -> Optional[LearnedAlias]:
        normalized = normalize_name(extracted_name)
        if not normalized:
            return None
        row = await self.store.get(ALIASES, LearnedAlias.make_id(assembly, normalized))
        return LearnedAlias.from_dict(row) if row else None

    async def get_alias_map(self, assembly: str) -> Dict[str, str]:
        """Normalized extracted name -> member id, as the matcher expects."""
        return {a.extracted_name: a.member_id for a in await self.get_learned_aliases(assembly)}

    async def increment_alias_usage(self, alias_id: str) -> bool:
        row = await self.store.get(ALIASES, alias_id)
        if not row:
            return False
        row["usage_count"] = row.get("usage_count", 0) + 1
        row["last_used"] = self._clock().isoformat()
        await self.store.put(ALIASES, alias_id, row)
        return True

    async def delete_learned_alias(self, alias_id: str) -> bool:
        return await self.store.delete(ALIASES, alias_id)
