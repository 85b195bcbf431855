"""In-process item-only storage."""

import logging

from todolist.models import TodoItem
from todolist.storage.base import TodoStorage

logger = logging.getLogger(__name__)


class MemoryStorage(TodoStorage):
    """Item-only backend holding deep copies of the stored tasks.

    Only tasks survive a round trip; lists, groups and settings are dropped.
    Set ``available`` to False to simulate an unreachable replica.
    """

    def __init__(self, items: list[TodoItem] | None = None) -> None:
        self._items = [item.model_copy(deep=True) for item in items or []]
        self.available = True
        self.persist_count = 0

    async def load_items(self) -> list[TodoItem]:
        if not self.available:
            logger.warning("[MemoryStorage] Storage unavailable, returning no tasks")
            return []
        return [item.model_copy(deep=True) for item in self._items]

    async def persist_items(self, items: list[TodoItem]) -> None:
        if not self.available:
            logger.error("[MemoryStorage] Storage unavailable, dropping write")
            return
        self._items = [item.model_copy(deep=True) for item in items]
        self.persist_count += 1

    @property
    def items(self) -> list[TodoItem]:
        """Currently stored tasks (not copied)."""
        return self._items
