"""
Tests for the durable member order store.
"""

from datetime import datetime

import pytest

from tithebook.models import MemberOrderEntry, OrderAction, RosterMember
from tithebook.storage import MemberOrderStore
from tithebook.storage.member_order import ORDERS, SNAPSHOTS, master_list_hash

NOW = datetime(2024, 3, 10, 9, 0)


@pytest.fixture
def orders(memory_store):
    return MemberOrderStore(memory_store, snapshot_retention=10, clock=lambda: NOW)


def ids(entries):
    return [e.member_id for e in entries]


async def seeded(orders, roster, assembly="central"):
    await orders.initialize_order(roster, assembly)
    return orders


class TestInitialize:
    """Seeding from the first master list."""

    @pytest.mark.asyncio
    async def test_initial_order_follows_list(self, orders, roster):
        created = await orders.initialize_order(roster, "central")

        assert created == 5
        members = await orders.get_ordered_members("central")
        assert ids(members) == ["TAC001", "TAC002", "TAC003", "TAC004", "TAC005"]
        assert [m.tithe_book_index for m in members] == [1, 2, 3, 4, 5]
        assert members[0].first_seen_month == "2024-03"

        report = await orders.check_assembly_integrity("central")
        assert report.is_healthy
        assert report.total_active == 5

    @pytest.mark.asyncio
    async def test_second_initialize_is_noop(self, orders, roster):
        await orders.initialize_order(roster, "central")
        assert await orders.initialize_order(roster[:2], "central") == 0
        assert len(await orders.get_ordered_members("central")) == 5

    @pytest.mark.asyncio
    async def test_duplicates_in_list_are_dropped(self, orders, roster):
        assert await orders.initialize_order(roster + roster[:2], "central") == 5

    @pytest.mark.asyncio
    async def test_metadata_written(self, orders, roster):
        await orders.initialize_order(roster, "central")
        meta = await orders.get_assembly_metadata("Central")

        assert meta.total_members == 5
        assert meta.last_master_list_hash == master_list_hash(roster)

    @pytest.mark.asyncio
    async def test_assemblies_are_isolated(self, orders, roster):
        await orders.initialize_order(roster, "central")
        assert not await orders.has_persisted_order("north")
        assert await orders.has_persisted_order("CENTRAL")

    @pytest.mark.asyncio
    async def test_empty_assembly_rejected(self, orders, roster):
        with pytest.raises(ValueError):
            await orders.initialize_order(roster, "  ")


class TestMasterListSync:
    """Reconciling a new master list with the stored order."""

    @pytest.mark.asyncio
    async def test_new_members_are_appended(self, orders, roster):
        await orders.initialize_order(roster[:3], "central")
        result = await orders.sync_with_master_list(list(reversed(roster)), "central")

        assert result.new_members == ["TAC005", "TAC004"]
        assert sorted(result.existing_members) == ["TAC001", "TAC002", "TAC003"]
        assert result.total_processed == 5

        members = await orders.get_ordered_members("central")
        assert ids(members) == ["TAC001", "TAC002", "TAC003", "TAC005", "TAC004"]
        assert (await orders.get_assembly_metadata("central")).total_members == 5

        latest = (await orders.get_order_history("central", limit=1))[0]
        assert latest.action == OrderAction.IMPORT
        assert latest.snapshot_id is not None

    @pytest.mark.asyncio
    async def test_unchanged_list_records_no_history(self, orders, roster):
        await seeded(orders, roster)
        before = len(await orders.get_order_history("central"))

        result = await orders.sync_with_master_list(roster, "central")

        assert result.new_members == []
        assert len(await orders.get_order_history("central")) == before

    @pytest.mark.asyncio
    async def test_returning_member_gets_free_slot(self, orders, roster):
        await seeded(orders, roster[:3])
        await orders.reset_order_from_master_list([roster[0], roster[2]], "central")

        await orders.sync_with_master_list(roster[:3], "central")

        members = await orders.get_ordered_members("central")
        assert ids(members) == ["TAC001", "TAC003", "TAC002"]
        assert (await orders.check_assembly_integrity("central")).is_healthy

    @pytest.mark.asyncio
    async def test_returning_member_with_stale_high_index(self, orders, roster):
        await seeded(orders, roster)
        await orders.reset_order_from_master_list(roster[:3], "central")
        newcomers = [
            RosterMember(membership_id="TAC006", surname="ADJEI", first_name="ESI"),
            RosterMember(membership_id="TAC007", surname="BOAHEN", first_name="KWAME"),
        ]

        await orders.sync_with_master_list(roster[:3] + [roster[4]] + newcomers, "central")

        members = await orders.get_ordered_members("central")
        assert ids(members) == ["TAC001", "TAC002", "TAC003", "TAC005", "TAC006", "TAC007"]
        assert [m.tithe_book_index for m in members] == [1, 2, 3, 4, 5, 6]
        assert (await orders.check_assembly_integrity("central")).is_healthy

    @pytest.mark.asyncio
    async def test_returning_members_close_the_range(self, orders, roster):
        await seeded(orders, roster)
        await orders.reset_order_from_master_list(roster[:3], "central")

        await orders.sync_with_master_list(roster[:3] + [roster[4], roster[3]], "central")

        members = await orders.get_ordered_members("central")
        assert ids(members) == ["TAC001", "TAC002", "TAC003", "TAC005", "TAC004"]
        assert [m.tithe_book_index for m in members] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_members_without_id_are_skipped(self, orders, roster):
        await seeded(orders, roster)
        result = await orders.sync_with_master_list([RosterMember(membership_id="")], "central")
        assert result.skipped == 1


class TestReorder:
    """Applying a new ordering and restoring it."""

    @pytest.mark.asyncio
    async def test_listed_members_first(self, orders, roster):
        await seeded(orders, roster)
        entry = await orders.apply_new_order(["TAC003", "tac001", "GHOST"], "central")

        assert ids(await orders.get_ordered_members("central")) == [
            "TAC003", "TAC001", "TAC002", "TAC004", "TAC005",
        ]
        assert entry.action == OrderAction.REORDER
        assert entry.details["unknown_ids"] == ["GHOST"]
        assert entry.snapshot_id is not None

    @pytest.mark.asyncio
    async def test_ai_reorder_action(self, orders, roster):
        await seeded(orders, roster)
        entry = await orders.apply_new_order(["TAC005"], "central", action=OrderAction.AI_REORDER)
        assert entry.action == OrderAction.AI_REORDER

    @pytest.mark.asyncio
    async def test_other_actions_rejected(self, orders, roster):
        await seeded(orders, roster)
        with pytest.raises(ValueError):
            await orders.apply_new_order(["TAC005"], "central", action=OrderAction.MANUAL)

    @pytest.mark.asyncio
    async def test_restore_reproduces_previous_order(self, orders, roster):
        await seeded(orders, roster)
        original = ids(await orders.get_ordered_members("central"))
        entry = await orders.apply_new_order(["TAC005", "TAC004"], "central")

        result = await orders.restore_snapshot(entry.snapshot_id)

        assert result.success
        assert result.restored_count == 5
        assert ids(await orders.get_ordered_members("central")) == original

        latest = (await orders.get_order_history("central", limit=1))[0]
        assert latest.action == OrderAction.RESET
        assert latest.details["restored_snapshot_id"] == entry.snapshot_id

    @pytest.mark.asyncio
    async def test_restore_keeps_newer_members(self, orders, roster):
        await seeded(orders, roster[:3])
        entry = await orders.apply_new_order(["TAC003"], "central")
        await orders.sync_with_master_list(roster, "central")

        result = await orders.restore_snapshot(entry.snapshot_id)

        assert result.success
        members = await orders.get_ordered_members("central")
        assert ids(members) == ["TAC001", "TAC002", "TAC003", "TAC004", "TAC005"]
        assert [m.tithe_book_index for m in members] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_restore_missing_snapshot(self, orders):
        result = await orders.restore_snapshot("nope")

        assert not result.success
        assert result.error == "Snapshot not found"

    @pytest.mark.asyncio
    async def test_restore_malformed_snapshot_reports_failure(self, orders, memory_store, roster):
        await seeded(orders, roster)
        await memory_store.put(SNAPSHOTS, "broken", {"id": "broken", "assembly_name": "central", "entries": [42]})

        result = await orders.restore_snapshot("broken")

        assert not result.success
        assert result.error
        assert ids(await orders.get_ordered_members("central"))[0] == "TAC001"

    @pytest.mark.asyncio
    async def test_snapshot_for_history(self, orders, roster):
        await seeded(orders, roster)
        entry = await orders.apply_new_order(["TAC002"], "central")

        snapshot = await orders.get_snapshot_for_history(entry.id)

        assert snapshot.id == entry.snapshot_id
        assert ids(sorted(snapshot.entries, key=lambda e: e.tithe_book_index))[0] == "TAC001"

    @pytest.mark.asyncio
    async def test_snapshot_retention(self, memory_store, roster):
        orders = MemberOrderStore(memory_store, snapshot_retention=2, clock=lambda: NOW)
        await seeded(orders, roster)
        for first in ("TAC002", "TAC003", "TAC004", "TAC005"):
            await orders.apply_new_order([first], "central")

        snapshots = await orders.get_snapshots("central")
        assert len(snapshots) == 2
        assert snapshots[0].entries[0].assembly_name == "central"

    @pytest.mark.asyncio
    async def test_zero_retention_keeps_no_snapshots(self, memory_store, roster):
        orders = MemberOrderStore(memory_store, snapshot_retention=0, clock=lambda: NOW)
        await seeded(orders, roster)
        await orders.apply_new_order(["TAC002"], "central")

        assert orders.snapshot_retention == 0
        assert await orders.get_snapshots("central") == []

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, orders, roster):
        await seeded(orders, roster)
        await orders.apply_new_order(["TAC002"], "central")

        history = await orders.get_order_history("central")
        assert [h.action for h in history] == [OrderAction.REORDER, OrderAction.IMPORT]


class TestManualMove:
    """Single-member position updates."""

    @pytest.mark.asyncio
    async def test_swap_with_holder(self, orders, roster):
        await seeded(orders, roster)

        assert await orders.update_member_position("TAC005", 1, "central")

        members = await orders.get_ordered_members("central")
        assert ids(members) == ["TAC005", "TAC002", "TAC003", "TAC004", "TAC001"]
        latest = (await orders.get_order_history("central", limit=1))[0]
        assert latest.action == OrderAction.MANUAL
        assert latest.description.startswith("Swapped #5 (ASANTE YAW PETER (TAC005))")

    @pytest.mark.asyncio
    async def test_out_of_range(self, orders, roster):
        await seeded(orders, roster)
        with pytest.raises(ValueError):
            await orders.update_member_position("TAC001", 6, "central")
        with pytest.raises(ValueError):
            await orders.update_member_position("TAC001", 0, "central")

    @pytest.mark.asyncio
    async def test_unknown_member(self, orders, roster):
        await seeded(orders, roster)
        assert not await orders.update_member_position("GHOST", 1, "central")

    @pytest.mark.asyncio
    async def test_same_position(self, orders, roster):
        await seeded(orders, roster)
        before = len(await orders.get_order_history("central"))

        assert await orders.update_member_position("TAC002", 2, "central")
        assert len(await orders.get_order_history("central")) == before


class TestReset:
    """Renumbering to match the master list."""

    @pytest.mark.asyncio
    async def test_reset_deactivates_missing(self, orders, roster):
        await seeded(orders, roster)
        await orders.apply_new_order(["TAC005"], "central")

        active = await orders.reset_order_from_master_list([roster[1], roster[0]], "central")

        assert active == 2
        assert ids(await orders.get_ordered_members("central")) == ["TAC002", "TAC001"]
        latest = (await orders.get_order_history("central", limit=1))[0]
        assert latest.action == OrderAction.RESET


class TestIntegrity:
    """Diagnosis and explicit repair."""

    def test_validate_is_pure(self):
        entries = [
            MemberOrderEntry("central", "A", "A", 1),
            MemberOrderEntry("central", "B", "B", 1),
            MemberOrderEntry("central", "C", "C", None),
            MemberOrderEntry("central", "D", "D", 7, is_active=False),
        ]
        report = MemberOrderStore.validate_integrity(entries)

        assert not report.is_healthy
        assert report.duplicate_indices == {1: ["A", "B"]}
        assert report.orphaned_members == ["C"]
        assert report.total_active == 3
        assert entries[1].tithe_book_index == 1

    @pytest.mark.asyncio
    async def test_repair_duplicate_index(self, orders, memory_store, roster):
        await seeded(orders, roster[:3])
        row = await memory_store.get(ORDERS, "central-tac002")
        row["tithe_book_index"] = 1
        row["last_updated"] = "2020-01-01T00:00:00"
        await memory_store.put(ORDERS, row["id"], row)

        report = await orders.check_assembly_integrity("central")
        assert report.duplicate_indices == {1: ["TAC001", "TAC002"]}

        moved = await orders.repair_order("central")

        assert moved == 1
        assert ids(await orders.get_ordered_members("central")) == ["TAC001", "TAC003", "TAC002"]
        assert (await orders.check_assembly_integrity("central")).is_healthy

    @pytest.mark.asyncio
    async def test_repair_orphan(self, orders, memory_store, roster):
        await seeded(orders, roster[:3])
        row = await memory_store.get(ORDERS, "central-tac001")
        row["tithe_book_index"] = None
        await memory_store.put(ORDERS, row["id"], row)

        assert await orders.repair_order("central") == 1

        members = await orders.get_ordered_members("central")
        assert ids(members) == ["TAC002", "TAC003", "TAC001"]
        assert [m.tithe_book_index for m in members] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_healthy_order_untouched(self, orders, roster):
        await seeded(orders, roster)
        before = len(await orders.get_order_history("central"))

        assert await orders.repair_order("central") == 0
        assert len(await orders.get_order_history("central")) == before


class TestExportImport:
    """Backup round trip of an ordering."""

    @pytest.mark.asyncio
    async def test_import_restores_exported_order(self, orders, roster):
        await seeded(orders, roster)
        await orders.apply_new_order(["TAC005", "TAC004", "TAC003", "TAC002", "TAC001"], "central")
        exported = await orders.export_order("central")
        await orders.reset_order_from_master_list(roster, "central")

        result = await orders.import_order(exported, "Central")

        assert result.success
        assert result.imported == 5
        assert exported["member_count"] == 5
        assert ids(await orders.get_ordered_members("central")) == [
            "TAC005", "TAC004", "TAC003", "TAC002", "TAC001",
        ]

    @pytest.mark.asyncio
    async def test_unknown_members_skipped(self, orders, roster):
        await seeded(orders, roster)
        data = await orders.export_order("central")
        data["members"].append({"member_id": "GHOST", "tithe_book_index": 6})

        result = await orders.import_order(data, "central")
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_version_mismatch(self, orders, roster):
        await seeded(orders, roster)
        data = await orders.export_order("central")
        data["version"] = 2

        result = await orders.import_order(data, "central")

        assert not result.success
        assert result.errors == ["Unsupported version: 2"]

    @pytest.mark.asyncio
    async def test_assembly_mismatch(self, orders, roster):
        await seeded(orders, roster)
        data = await orders.export_order("central")

        result = await orders.import_order(data, "north")
        assert result.errors == ["Assembly mismatch: expected north, got central"]


class TestBookkeeping:
    """Won souls and assembly deletion."""

    @pytest.mark.asyncio
    async def test_won_souls(self, orders, roster):
        await seeded(orders, roster)

        assert len(await orders.get_won_souls("central")) == 5
        assert await orders.get_won_souls("central", month="2024-02") == []

    @pytest.mark.asyncio
    async def test_delete_keeps_history(self, orders, roster):
        await seeded(orders, roster)
        await orders.apply_new_order(["TAC002"], "central")
        await orders.save_learned_alias("central", "K. Mensah", roster[0])

        await orders.delete_assembly_data("central")

        assert not await orders.has_persisted_order("central")
        assert await orders.get_snapshots("central") == []
        assert await orders.get_assembly_metadata("central") is None
        assert await orders.get_learned_aliases("central") == []
        assert len(await orders.get_order_history("central")) == 2


class TestLearnedAliases:
    """Operator-confirmed name aliases."""

    @pytest.mark.asyncio
    async def test_save_and_find(self, orders, roster):
        alias = await orders.save_learned_alias("central", "Elder K. Mensah", roster[0])

        assert alias.extracted_name == "k mensah"
        assert alias.usage_count == 1

        found = await orders.find_alias_match("central", "K MENSAH")
        assert found.member_id == "TAC001"
        assert await orders.find_alias_match("north", "K MENSAH") is None
        assert await orders.get_alias_map("central") == {"k mensah": "TAC001"}

    @pytest.mark.asyncio
    async def test_repeat_save_bumps_usage(self, orders, roster):
        await orders.save_learned_alias("central", "K. Mensah", roster[0])
        alias = await orders.save_learned_alias("central", "k mensah", roster[0])

        assert alias.usage_count == 2
        assert len(await orders.get_learned_aliases("central")) == 1

    @pytest.mark.asyncio
    async def test_increment_and_delete(self, orders, roster):
        alias = await orders.save_learned_alias("central", "K. Mensah", roster[0])

        assert await orders.increment_alias_usage(alias.id)
        assert (await orders.find_alias_match("central", "k mensah")).usage_count == 2

        assert await orders.delete_learned_alias(alias.id)
        assert await orders.find_alias_match("central", "k mensah") is None
        assert not await orders.increment_alias_usage(alias.id)

    @pytest.mark.asyncio
    async def test_empty_name_ignored(self, orders, roster):
        assert await orders.save_learned_alias("central", "  Elder ", roster[0]) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
