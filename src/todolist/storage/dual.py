"""Storages that write through to two backends."""

import asyncio
import logging

from todolist.models import Snapshot, TodoItem
from todolist.storage.base import TodoStorage
from todolist.storage.merge import merge_snapshots

logger = logging.getLogger(__name__)


class DualWriteStorage(TodoStorage):
    """Reads from the primary, writes to both backends. No merging."""

    def __init__(self, primary: TodoStorage, secondary: TodoStorage) -> None:
        self.primary = primary
        self.secondary = secondary

    async def load_items(self) -> list[TodoItem]:
        return await self.primary.load_items()

    async def persist_items(self, items: list[TodoItem]) -> None:
        await self.primary.persist_items(items)
        await self.secondary.persist_items(items)

    async def load_snapshot(self) -> Snapshot:
        return await self.primary.load_snapshot()

    async def persist_snapshot(self, snapshot: Snapshot) -> None:
        await self.primary.persist_snapshot(snapshot)
        await self.secondary.persist_snapshot(snapshot)


class ConflictAwareDualStorage(TodoStorage):
    """Keeps a local and a cloud replica converged.

    Every load reads both replicas concurrently, merges them in memory and
    writes the merged snapshot back to both. A replica that fails to load
    counts as empty, so the merge degrades to whatever the other side holds.
    """

    def __init__(self, local: TodoStorage, cloud: TodoStorage) -> None:
        self.local = local
        self.cloud = cloud

    async def load_items(self) -> list[TodoItem]:
        return (await self.load_snapshot()).tasks

    async def persist_items(self, items: list[TodoItem]) -> None:
        snapshot = await self.load_snapshot()
        snapshot.tasks = items
        await self.persist_snapshot(snapshot)

    async def load_snapshot(self) -> Snapshot:
        local_snapshot, cloud_snapshot = await self._read_both()
        merged = merge_snapshots(local_snapshot, cloud_snapshot)
        await self._write_both(merged)
        return merged

    async def persist_snapshot(self, snapshot: Snapshot) -> None:
        """Merge snapshot over both replicas and write the result to each."""
        local_snapshot, cloud_snapshot = await self._read_both()
        merged = merge_snapshots(snapshot, merge_snapshots(local_snapshot, cloud_snapshot))
        await self._write_both(merged)

    async def _read_both(self) -> tuple[Snapshot, Snapshot]:
        local_snapshot, cloud_snapshot = await asyncio.gather(
            self._read(self.local, "local"),
            self._read(self.cloud, "cloud"),
        )
        return local_snapshot, cloud_snapshot

    async def _write_both(self, snapshot: Snapshot) -> None:
        await asyncio.gather(
            self._write(self.local, snapshot.copy_deep(), "local"),
            self._write(self.cloud, snapshot.copy_deep(), "cloud"),
        )

    async def _read(self, storage: TodoStorage, side: str) -> Snapshot:
        try:
            return await storage.load_snapshot()
        except Exception as e:
            logger.warning(f"[ConflictAwareDualStorage] Failed to load {side} replica, treating as empty: {e}")
            return Snapshot()

    async def _write(self, storage: TodoStorage, snapshot: Snapshot, side: str) -> None:
        try:
            await storage.persist_snapshot(snapshot)
        except Exception as e:
            logger.error(f"[ConflictAwareDualStorage] Failed to persist {side} replica: {e}", exc_info=True)
