"""Tests for the two-replica storages."""

from datetime import timedelta

import pytest
from conftest import NOW, make_task

from todolist.models import Snapshot, TodoItem
from todolist.storage.dual import ConflictAwareDualStorage, DualWriteStorage
from todolist.storage.memory import MemoryStorage


class BrokenStorage(MemoryStorage):
    """Storage whose every call fails."""

    async def load_items(self) -> list[TodoItem]:
        raise OSError("disk on fire")

    async def persist_items(self, items: list[TodoItem]) -> None:
        raise OSError("disk on fire")


def ids(items: list[TodoItem]) -> set[str]:
    return {item.id for item in items}


@pytest.mark.asyncio
async def test_load_merges_and_writes_back() -> None:
    """Test a load converges both replicas to the union."""
    local = MemoryStorage([make_task("A", id="A")])
    cloud = MemoryStorage([make_task("B", id="B")])
    storage = ConflictAwareDualStorage(local, cloud)

    items = await storage.load_items()

    assert ids(items) == {"A", "B"}
    assert ids(local.items) == {"A", "B"}
    assert ids(cloud.items) == {"A", "B"}


@pytest.mark.asyncio
async def test_unavailable_cloud_degrades_to_local() -> None:
    """Test an unreachable replica contributes nothing and drops writes."""
    local = MemoryStorage([make_task("A", id="A")])
    cloud = MemoryStorage([make_task("B", id="B")])
    cloud.available = False
    storage = ConflictAwareDualStorage(local, cloud)

    items = await storage.load_items()

    assert ids(items) == {"A"}
    assert cloud.persist_count == 0
    assert ids(cloud.items) == {"B"}


@pytest.mark.asyncio
async def test_failing_replica_is_treated_as_empty() -> None:
    """Test read and write errors on one side never reach the caller."""
    local = MemoryStorage([make_task("A", id="A")])
    storage = ConflictAwareDualStorage(local, BrokenStorage())

    snapshot = await storage.load_snapshot()
    await storage.persist_snapshot(snapshot)

    assert ids(snapshot.tasks) == {"A"}
    assert local.persist_count == 2


@pytest.mark.asyncio
async def test_persist_keeps_newer_remote_edit() -> None:
    """Test persisting a stale copy does not overwrite a newer edit from the other replica."""
    local = MemoryStorage([make_task("old", id="t1", updated_at=NOW)])
    cloud = MemoryStorage([make_task("edited elsewhere", id="t1", updated_at=NOW + timedelta(minutes=1))])
    storage = ConflictAwareDualStorage(local, cloud)

    await storage.persist_snapshot(Snapshot(tasks=[make_task("old", id="t1", updated_at=NOW)]))

    assert [item.title for item in local.items] == ["edited elsewhere"]
    assert [item.title for item in cloud.items] == ["edited elsewhere"]


@pytest.mark.asyncio
async def test_deletion_reaches_both_replicas() -> None:
    """Test a tombstoned task is removed from both replicas on persist."""
    task = make_task("doomed", id="t1", updated_at=NOW)
    local = MemoryStorage([task])
    cloud = MemoryStorage([task])
    storage = ConflictAwareDualStorage(local, cloud)

    await storage.persist_snapshot(Snapshot(tombstones={"t1": NOW + timedelta(seconds=5)}))

    assert local.items == []
    assert cloud.items == []
    assert await storage.load_items() == []


@pytest.mark.asyncio
async def test_item_storage_persists_items() -> None:
    """Test persist_items keeps both replicas' other tasks."""
    local = MemoryStorage([make_task("A", id="A")])
    cloud = MemoryStorage([make_task("B", id="B")])
    storage = ConflictAwareDualStorage(local, cloud)

    await storage.persist_items([make_task("C", id="C")])

    assert ids(local.items) == {"A", "B", "C"}
    assert ids(cloud.items) == {"A", "B", "C"}


@pytest.mark.asyncio
async def test_dual_write_storage() -> None:
    """Test writes reach both backends and reads come from the primary."""
    primary = MemoryStorage([make_task("P", id="P")])
    secondary = MemoryStorage([make_task("S", id="S")])
    storage = DualWriteStorage(primary, secondary)

    assert ids(await storage.load_items()) == {"P"}

    await storage.persist_items([make_task("N", id="N")])

    assert ids(primary.items) == {"N"}
    assert ids(secondary.items) == {"N"}
