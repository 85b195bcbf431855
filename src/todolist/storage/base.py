"""Storage capability interface."""

from typing import Protocol

from todolist.models import Snapshot, TodoItem


class TodoStorage(Protocol):
    """Protocol for task persistence backends.

    Every backend stores task items. Backends that can also store lists,
    groups and settings override the snapshot methods; the defaults fall back
    to the item-level methods.
    """

    async def load_items(self) -> list[TodoItem]:
        """Load all stored tasks."""
        ...

    async def persist_items(self, items: list[TodoItem]) -> None:
        """Store tasks, replacing the previous set."""
        ...

    async def load_snapshot(self) -> Snapshot:
        """Load the full snapshot (tasks only for item-level backends)."""
        return Snapshot(tasks=await self.load_items())

    async def persist_snapshot(self, snapshot: Snapshot) -> None:
        """Store the full snapshot (tasks only for item-level backends)."""
        await self.persist_items(snapshot.tasks)
