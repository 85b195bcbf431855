"""In-memory task store with debounced persistence."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from todolist.models import (
    DEFAULT_LIST_ID,
    AppPreferences,
    ListGroup,
    Priority,
    ProfileSettings,
    RepeatRule,
    Snapshot,
    Subtask,
    Tag,
    TagColor,
    TodoItem,
    TodoList,
    normalized_tag_name,
    utc_now,
)
from todolist.parsing.calendar import LocalCalendar
from todolist.parsing.quick_add import QuickAddParser
from todolist.storage.base import TodoStorage
from todolist.storage.merge import ensure_default_list, merge_snapshots, reassign_orphans

logger = logging.getLogger(__name__)

DEFAULT_PERSIST_DELAY = 0.22

_TICK = timedelta(microseconds=1)


@dataclass
class TaskDraft:
    """Fields for a task created from the full editor."""

    title: str
    description_markdown: str = ""
    priority: Priority = Priority.MEDIUM
    due_date: datetime | None = None
    is_important: bool = False
    my_day_date: datetime | None = None
    tags: list[Tag] = field(default_factory=list)
    subtasks: list[Subtask] = field(default_factory=list)
    repeat_rule: RepeatRule = RepeatRule.NONE
    list_id: str = DEFAULT_LIST_ID


@dataclass
class QuickAddResult:
    created: bool
    recognized_tokens: list[str]
    created_task_id: str | None = None


class TaskStore:
    """Single-writer store for tasks, lists, groups and settings.

    All mutating methods are synchronous and must be called from the event
    loop that owns the store, so mutations never interleave. Each mutation
    schedules a debounced write of the whole snapshot; a burst of mutations
    results in one write.
    """

    def __init__(
        self,
        storage: TodoStorage,
        parser: QuickAddParser | None = None,
        calendar: LocalCalendar | None = None,
        clock: Callable[[], datetime] = utc_now,
        persist_delay: float = DEFAULT_PERSIST_DELAY,
    ) -> None:
        self._storage = storage
        self._calendar = calendar or LocalCalendar()
        self._clock = clock
        self._parser = parser or QuickAddParser(self._calendar, now_provider=clock)
        self._persist_delay = persist_delay
        self._snapshot = Snapshot(lists=[TodoList.default_tasks()])
        self._listeners: list[Callable[[str], None]] = []
        self._persist_task: asyncio.Task[None] | None = None
        self._reload_task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._dirty = False

    # Read access

    @property
    def storage(self) -> TodoStorage:
        return self._storage

    @property
    def calendar(self) -> LocalCalendar:
        return self._calendar

    @property
    def items(self) -> list[TodoItem]:
        return self._snapshot.tasks

    @property
    def lists(self) -> list[TodoList]:
        return self._snapshot.lists

    @property
    def groups(self) -> list[ListGroup]:
        return self._snapshot.groups

    @property
    def profile(self) -> ProfileSettings:
        return self._snapshot.profile

    @property
    def app_prefs(self) -> AppPreferences:
        return self._snapshot.app_prefs

    @property
    def is_dirty(self) -> bool:
        """True while a mutation has not been written yet."""
        return self._dirty

    def snapshot(self) -> Snapshot:
        """Deep copy of the live state."""
        return self._snapshot.copy_deep()

    def task(self, task_id: str | None) -> TodoItem | None:
        if task_id is None:
            return None
        return next((item for item in self._snapshot.tasks if item.id == task_id), None)

    def todo_list(self, list_id: str) -> TodoList | None:
        return next((entry for entry in self._snapshot.lists if entry.id == list_id), None)

    def group(self, group_id: str) -> ListGroup | None:
        return next((entry for entry in self._snapshot.groups if entry.id == group_id), None)

    @property
    def tags(self) -> list[Tag]:
        """Tag catalog: every tag in use, deduplicated by normalized name."""
        seen: set[str] = set()
        collected: list[Tag] = []
        for item in self._snapshot.tasks:
            for tag in item.tags:
                key = normalized_tag_name(tag.name)
                if not key or key in seen:
                    continue
                seen.add(key)
                collected.append(tag)
        return sorted(collected, key=lambda tag: tag.name.casefold())

    def all_tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags]

    # Listeners

    def add_listener(self, listener: Callable[[str], None]) -> None:
        """Register a callback invoked with a reason after every change."""
        self._listeners.append(listener)

    def _notify(self, reason: str) -> None:
        for listener in self._listeners:
            try:
                listener(reason)
            except Exception as e:
                logger.error(f"[TaskStore] Listener error: {e}", exc_info=True)

    def _changed(self, reason: str) -> None:
        self._dirty = True
        self._schedule_persist()
        self._notify(reason)

    # Timestamps

    def _stamp(self, previous: datetime | None = None) -> datetime:
        """Current time, strictly after previous so updatedAt never goes back."""
        now = self._clock()
        if previous is not None and now <= previous:
            return previous + _TICK
        return now

    def _touch(self, item: TodoItem) -> None:
        item.updated_at = self._stamp(item.updated_at)

    def _start_of_day(self, value: datetime | None) -> datetime | None:
        return self._calendar.start_of_day(value) if value is not None else None

    def _next_manual_order(self, list_id: str, exclude: TodoItem | None = None) -> float:
        orders = [
            item.manual_order
            for item in self._snapshot.tasks
            if item.list_id == list_id and item is not exclude
        ]
        return float(int(max(orders, default=0)) + 1)

    def _valid_list_id(self, list_id: str | None) -> str:
        if list_id and self.todo_list(list_id) is not None:
            return list_id
        return DEFAULT_LIST_ID

    # Task mutations

    def create_task(self, draft: TaskDraft) -> TodoItem | None:
        """Create a task from a draft. Returns None when the title is blank."""
        title = draft.title.strip()
        if not title:
            return None

        now = self._stamp()
        list_id = self._valid_list_id(draft.list_id)
        item = TodoItem(
            title=title,
            description_markdown=draft.description_markdown.strip(),
            priority=draft.priority,
            due_date=draft.due_date,
            is_important=draft.is_important,
            my_day_date=self._start_of_day(draft.my_day_date),
            list_id=list_id,
            manual_order=self._next_manual_order(list_id),
            subtasks=[subtask.model_copy() for subtask in draft.subtasks],
            tags=[tag.model_copy() for tag in draft.tags],
            repeat_rule=draft.repeat_rule,
            created_at=now,
            updated_at=now,
        )
        self._snapshot.tasks.append(item)
        logger.info(f"[TaskStore] Created task {item.id}")
        self._changed("task_created")
        return item

    def create_quick_task(
        self,
        raw_text: str,
        preferred_my_day_date: datetime | None = None,
        list_id: str | None = None,
    ) -> QuickAddResult:
        """Create a task from one line of quick-add text.

        Falls back to the raw text as title when parsing consumed every
        token; a blank title is reported as not created.
        """
        parsed = self._parser.parse(raw_text)
        title = parsed.title or raw_text.strip()
        if not title:
            return QuickAddResult(created=False, recognized_tokens=parsed.recognized_tokens)

        item = self.create_task(
            TaskDraft(
                title=title,
                priority=parsed.priority,
                due_date=parsed.due_date,
                my_day_date=preferred_my_day_date,
                repeat_rule=parsed.repeat_rule,
                list_id=list_id or DEFAULT_LIST_ID,
            )
        )
        if item is None:
            return QuickAddResult(created=False, recognized_tokens=parsed.recognized_tokens)
        return QuickAddResult(
            created=True,
            recognized_tokens=parsed.recognized_tokens,
            created_task_id=item.id,
        )

    def add_template_items(
        self,
        titles: Iterable[str],
        preferred_my_day_date: datetime | None = None,
        list_id: str = DEFAULT_LIST_ID,
    ) -> list[TodoItem]:
        """Create one task per non-blank title, in order."""
        created: list[TodoItem] = []
        for title in titles:
            item = self.create_task(TaskDraft(title=title, my_day_date=preferred_my_day_date, list_id=list_id))
            if item is not None:
                created.append(item)
        if created:
            logger.info(f"[TaskStore] Added {len(created)} template tasks")
        return created

    def update_task(self, task_id: str, mutate: Callable[[TodoItem], None]) -> TodoItem | None:
        """Apply mutate to a task and restore the task invariants afterwards."""
        item = self.task(task_id)
        if item is None:
            return None

        previous_list = item.list_id
        previous_updated = item.updated_at
        mutate(item)

        item.list_id = self._valid_list_id(item.list_id)
        if item.list_id != previous_list:
            item.manual_order = self._next_manual_order(item.list_id, exclude=item)
        item.my_day_date = self._start_of_day(item.my_day_date)
        if item.is_completed and item.completed_at is None:
            item.completed_at = self._clock()
        if not item.is_completed:
            item.completed_at = None
        item.updated_at = self._stamp(previous_updated)

        if item.list_id != previous_list:
            self._compact([previous_list])
        self._changed("task_updated")
        return item

    def delete_tasks(self, task_ids: Iterable[str]) -> int:
        """Delete tasks and compact the manual order of the lists they left."""
        ids = set(task_ids)
        removed = [item for item in self._snapshot.tasks if item.id in ids]
        if not removed:
            return 0

        self._snapshot.tasks = [item for item in self._snapshot.tasks if item.id not in ids]
        for item in removed:
            self._snapshot.tombstones[item.id] = self._stamp(item.updated_at)
        self._compact({item.list_id for item in removed})

        logger.info(f"[TaskStore] Deleted {len(removed)} tasks")
        self._changed("task_deleted")
        return len(removed)

    def toggle_completion(self, task_id: str) -> TodoItem | None:
        """Toggle completion; completing a repeating task spawns its next occurrence."""
        item = self.task(task_id)
        if item is None:
            return None

        item.is_completed = not item.is_completed
        item.updated_at = self._stamp(item.updated_at)
        item.completed_at = item.updated_at if item.is_completed else None

        if item.is_completed:
            self._spawn_repeat(item)
        self._changed("task_updated")
        return item

    def toggle_important(self, task_id: str) -> TodoItem | None:
        item = self.task(task_id)
        if item is None:
            return None
        item.is_important = not item.is_important
        self._touch(item)
        self._changed("task_updated")
        return item

    def add_to_my_day(self, task_id: str, date: datetime | None = None) -> TodoItem | None:
        item = self.task(task_id)
        if item is None:
            return None
        item.my_day_date = self._calendar.start_of_day(date or self._clock())
        self._touch(item)
        self._changed("task_updated")
        return item

    def remove_from_my_day(self, task_id: str) -> TodoItem | None:
        item = self.task(task_id)
        if item is None:
            return None
        item.my_day_date = None
        self._touch(item)
        self._changed("task_updated")
        return item

    def reorder_task(self, task_id: str, position: int) -> TodoItem | None:
        """Move a task to position (0-based) within its list's manual order."""
        item = self.task(task_id)
        if item is None:
            return None

        siblings = self._tasks_in_order(item.list_id)
        siblings.remove(item)
        position = max(0, min(position, len(siblings)))
        siblings.insert(position, item)
        self._renumber(siblings)
        self._changed("task_reordered")
        return item

    def _spawn_repeat(self, item: TodoItem) -> TodoItem | None:
        base = item.due_date or self._clock()
        if item.repeat_rule == RepeatRule.DAILY:
            next_due = self._calendar.add_days(base, 1)
        elif item.repeat_rule == RepeatRule.WEEKLY:
            next_due = self._calendar.add_days(base, 7)
        elif item.repeat_rule == RepeatRule.MONTHLY:
            next_due = self._calendar.add_months(base, 1)
        else:
            return None

        now = self._stamp()
        repeated = TodoItem(
            title=item.title,
            description_markdown=item.description_markdown,
            priority=item.priority,
            due_date=next_due,
            is_important=item.is_important,
            my_day_date=item.my_day_date,
            list_id=item.list_id,
            manual_order=self._next_manual_order(item.list_id),
            subtasks=[Subtask(title=subtask.title) for subtask in item.subtasks],
            tags=[tag.model_copy() for tag in item.tags],
            repeat_rule=item.repeat_rule,
            created_at=now,
            updated_at=now,
        )
        self._snapshot.tasks.append(repeated)
        logger.info(f"[TaskStore] Spawned next {item.repeat_rule.value} occurrence of {item.id}")
        return repeated

    def _tasks_in_order(self, list_id: str) -> list[TodoItem]:
        return sorted(
            (item for item in self._snapshot.tasks if item.list_id == list_id),
            key=lambda item: item.manual_order,
        )

    def _renumber(self, ordered: list[TodoItem]) -> None:
        for index, item in enumerate(ordered, start=1):
            if item.manual_order != index:
                item.manual_order = float(index)
                self._touch(item)

    def _compact(self, list_ids: Iterable[str]) -> None:
        """Renumber each list's tasks to 1..n, keeping their relative order."""
        for list_id in list_ids:
            self._renumber(self._tasks_in_order(list_id))

    # Lists and groups

    def create_list(
        self,
        title: str,
        icon: str = "list.bullet",
        color: TagColor = TagColor.BLUE,
        group_id: str | None = None,
    ) -> TodoList | None:
        title = title.strip()
        if not title:
            return None
        now = self._stamp()
        todo_list = TodoList(
            title=title,
            icon=icon,
            color=color,
            group_id=group_id if group_id and self.group(group_id) else None,
            manual_order=max((entry.manual_order for entry in self._snapshot.lists), default=0) + 1,
            created_at=now,
            updated_at=now,
        )
        self._snapshot.lists.append(todo_list)
        self._changed("list_created")
        return todo_list

    def update_list(self, list_id: str, mutate: Callable[[TodoList], None]) -> TodoList | None:
        todo_list = self.todo_list(list_id)
        if todo_list is None:
            return None
        previous_updated = todo_list.updated_at
        mutate(todo_list)
        if todo_list.group_id and self.group(todo_list.group_id) is None:
            todo_list.group_id = None
        todo_list.updated_at = self._stamp(previous_updated)
        self._changed("list_updated")
        return todo_list

    def delete_list(self, list_id: str) -> bool:
        """Delete a custom list, moving its tasks to the default list."""
        if list_id == DEFAULT_LIST_ID:
            raise ValueError("The default list cannot be deleted")
        todo_list = self.todo_list(list_id)
        if todo_list is None:
            return False

        self._snapshot.lists.remove(todo_list)
        self._snapshot.tombstones[list_id] = self._stamp(todo_list.updated_at)
        for item in self._tasks_in_order(list_id):
            item.list_id = DEFAULT_LIST_ID
            item.manual_order = self._next_manual_order(DEFAULT_LIST_ID, exclude=item)
            self._touch(item)
        self._changed("list_deleted")
        return True

    def create_group(self, title: str) -> ListGroup | None:
        title = title.strip()
        if not title:
            return None
        now = self._stamp()
        group = ListGroup(
            title=title,
            manual_order=max((entry.manual_order for entry in self._snapshot.groups), default=0) + 1,
            created_at=now,
            updated_at=now,
        )
        self._snapshot.groups.append(group)
        self._changed("group_created")
        return group

    def toggle_group_collapsed(self, group_id: str) -> ListGroup | None:
        group = self.group(group_id)
        if group is None:
            return None
        group.is_collapsed = not group.is_collapsed
        group.updated_at = self._stamp(group.updated_at)
        self._changed("group_updated")
        return group

    def delete_group(self, group_id: str) -> bool:
        """Delete a group; its lists stay and become ungrouped."""
        group = self.group(group_id)
        if group is None:
            return False
        self._snapshot.groups.remove(group)
        self._snapshot.tombstones[group_id] = self._stamp(group.updated_at)
        for todo_list in self._snapshot.lists:
            if todo_list.group_id == group_id:
                todo_list.group_id = None
                todo_list.updated_at = self._stamp(todo_list.updated_at)
        self._changed("group_deleted")
        return True

    # Settings

    def update_profile(self, display_name: str) -> ProfileSettings:
        profile = self._snapshot.profile
        profile.display_name = display_name.strip()
        profile.updated_at = self._stamp(profile.updated_at)
        self._changed("profile_updated")
        return profile

    def update_preferences(self, mutate: Callable[[AppPreferences], None]) -> AppPreferences:
        prefs = self._snapshot.app_prefs
        previous_updated = prefs.updated_at
        mutate(prefs)
        prefs.updated_at = self._stamp(previous_updated)
        self._changed("preferences_updated")
        return prefs

    # Loading

    async def load(self) -> None:
        """Load state from storage, keeping any edits already made in memory."""
        await self._merge_from_storage("loaded")

    async def reload(self) -> None:
        """Merge a fresh snapshot from storage into the live state."""
        await self._merge_from_storage("reloaded")

    async def _merge_from_storage(self, reason: str) -> None:
        try:
            loaded = await self._storage.load_snapshot()
        except Exception as e:
            logger.error(f"[TaskStore] Failed to load snapshot: {e}", exc_info=True)
            return

        # Live state is the local side, so unsaved edits win ties
        merged = merge_snapshots(self._snapshot, loaded)
        merged.lists = ensure_default_list(merged.lists)
        reassign_orphans(merged.tasks, merged.lists)
        self._snapshot = merged
        logger.info(
            f"[TaskStore] {reason.capitalize()} {len(merged.tasks)} tasks, {len(merged.lists)} lists"
        )
        if self._dirty:
            self._schedule_persist()
        self._notify(reason)

    def schedule_reload(self, delay: float | None = None) -> None:
        """Debounced reload, used when the replica changes on disk."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[TaskStore] No running event loop, reload not scheduled")
            return

        self._cancel_if_pending(self._reload_task, loop)
        self._reload_task = loop.create_task(self._reload_later(self._persist_delay if delay is None else delay))

    async def _reload_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._reload_task is asyncio.current_task():
            self._reload_task = None
        await self.reload()

    # Persistence

    @staticmethod
    def _cancel_if_pending(task: "asyncio.Task[None] | None", loop: asyncio.AbstractEventLoop) -> None:
        # Tasks of another loop (a closed test loop, say) are left alone
        if task is not None and not task.done() and task.get_loop() is loop:
            task.cancel()

    def _schedule_persist(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[TaskStore] No running event loop, write deferred to flush()")
            return

        self._cancel_if_pending(self._persist_task, loop)
        self._persist_task = loop.create_task(self._persist_later())

    async def _persist_later(self) -> None:
        await asyncio.sleep(self._persist_delay)
        # From here on the write is in flight and no longer cancelable
        if self._persist_task is asyncio.current_task():
            self._persist_task = None
        await self._write()

    async def _write(self) -> None:
        async with self._write_lock:
            snapshot = self._snapshot.copy_deep()
            self._dirty = False
            try:
                await self._storage.persist_snapshot(snapshot)
            except Exception as e:
                self._dirty = True
                logger.error(f"[TaskStore] Failed to persist snapshot: {e}", exc_info=True)

    async def flush(self) -> None:
        """Write pending changes now and wait for writes in flight."""
        pending = self._persist_task
        self._persist_task = None
        self._cancel_if_pending(pending, asyncio.get_running_loop())
        if self._dirty:
            await self._write()
        else:
            async with self._write_lock:
                pass

    async def close(self) -> None:
        """Cancel a pending reload and flush pending writes."""
        reload_task = self._reload_task
        self._reload_task = None
        self._cancel_if_pending(reload_task, asyncio.get_running_loop())
        await self.flush()
