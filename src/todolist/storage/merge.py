"""Reconciliation of two independently written snapshots.

All functions here are pure: they never mutate their inputs and return new
objects. ``local`` wins every exact tie.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import TypeVar

from todolist.models import (
    DEFAULT_LIST_ID,
    ListGroup,
    Snapshot,
    Subtask,
    Tag,
    TodoItem,
    TodoList,
    normalized_tag_name,
)

# Edits this close together are treated as concurrent and unioned
NEAR_SIMULTANEOUS_WINDOW = timedelta(seconds=1)

# Deletions older than this, measured from the newest change in the data, are forgotten
TOMBSTONE_RETENTION = timedelta(days=30)

_E = TypeVar("_E", TodoList, ListGroup)


def _max_date(first: datetime | None, second: datetime | None) -> datetime | None:
    if first is None:
        return second
    if second is None:
        return first
    return max(first, second)


def merge_tags(newer: Sequence[Tag], older: Sequence[Tag]) -> list[Tag]:
    """Union by normalized name, newer side first, sorted case-insensitively."""
    seen: set[str] = set()
    merged: list[Tag] = []
    for tag in [*newer, *older]:
        key = normalized_tag_name(tag.name)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(tag.model_copy())
    return sorted(merged, key=lambda tag: tag.name.casefold())


def merge_subtasks(kept: Sequence[Subtask], other: Sequence[Subtask]) -> list[Subtask]:
    """Union by id; a subtask completed on either side stays completed."""
    merged: dict[str, Subtask] = {subtask.id: subtask.model_copy() for subtask in kept}
    for subtask in other:
        existing = merged.get(subtask.id)
        if existing is None:
            merged[subtask.id] = subtask.model_copy()
            continue
        merged[subtask.id] = Subtask(
            id=existing.id,
            title=existing.title or subtask.title,
            is_completed=existing.is_completed or subtask.is_completed,
        )
    return list(merged.values())


def merge_task(local: TodoItem, remote: TodoItem) -> TodoItem:
    """Merge two versions of one task.

    The newer version wins. When both were written within one second of each
    other, tags and subtasks are unioned, a non-empty description is kept and
    the later My Day / completion dates are taken.
    """
    if local.updated_at >= remote.updated_at:
        newer, older = local, remote
    else:
        newer, older = remote, local
    merged = newer.model_copy(deep=True)

    if abs(local.updated_at - remote.updated_at) <= NEAR_SIMULTANEOUS_WINDOW:
        merged.tags = merge_tags(newer.tags, older.tags)
        merged.subtasks = merge_subtasks(newer.subtasks, older.subtasks)
        if not merged.description_markdown and older.description_markdown:
            merged.description_markdown = older.description_markdown
        merged.my_day_date = _max_date(local.my_day_date, remote.my_day_date)
        if merged.is_completed:
            merged.completed_at = _max_date(local.completed_at, remote.completed_at)

    merged.updated_at = max(local.updated_at, remote.updated_at)
    return merged


def merge_tasks(local: Sequence[TodoItem], remote: Sequence[TodoItem]) -> list[TodoItem]:
    """Merge task collections matched by id.

    Local order is kept; tasks only on the remote side are appended ordered by
    (updatedAt, createdAt).
    """
    remote_by_id = {item.id: item for item in remote}
    merged: list[TodoItem] = []
    for item in local:
        other = remote_by_id.pop(item.id, None)
        merged.append(merge_task(item, other) if other is not None else item.model_copy(deep=True))

    remaining = sorted(remote_by_id.values(), key=lambda item: (item.updated_at, item.created_at))
    merged.extend(item.model_copy(deep=True) for item in remaining)
    return merged


def merge_entities(local: Sequence[_E], remote: Sequence[_E]) -> list[_E]:
    """Merge lists or groups by id; the newer entity wins wholesale."""
    remote_by_id = {entity.id: entity for entity in remote}
    merged: list[_E] = []
    for entity in local:
        other = remote_by_id.pop(entity.id, None)
        if other is not None and other.updated_at > entity.updated_at:
            merged.append(other.model_copy(deep=True))
        else:
            merged.append(entity.model_copy(deep=True))
    merged.extend(entity.model_copy(deep=True) for entity in remote_by_id.values())
    return merged


def merge_tombstones(
    local: dict[str, datetime],
    remote: dict[str, datetime],
    reference: datetime | None = None,
) -> dict[str, datetime]:
    """Union of deletions, keeping the later time per id.

    With a reference time, deletions older than ``TOMBSTONE_RETENTION`` before
    it are dropped.
    """
    merged = dict(local)
    for entity_id, deleted_at in remote.items():
        merged[entity_id] = _max_date(merged.get(entity_id), deleted_at)  # type: ignore[assignment]
    merged.pop(DEFAULT_LIST_ID, None)
    if reference is not None:
        horizon = reference - TOMBSTONE_RETENTION
        merged = {entity_id: deleted_at for entity_id, deleted_at in merged.items() if deleted_at >= horizon}
    return merged


def latest_change(*snapshots: Snapshot) -> datetime | None:
    """Newest update or deletion time recorded in the snapshots."""
    stamps = [
        stamp
        for snapshot in snapshots
        for stamp in (
            *(item.updated_at for item in snapshot.tasks),
            *(entity.updated_at for entity in snapshot.lists),
            *(entity.updated_at for entity in snapshot.groups),
            *snapshot.tombstones.values(),
        )
    ]
    return max(stamps, default=None)


def _alive(entities: Iterable[_E | TodoItem], tombstones: dict[str, datetime]) -> list:
    # A record edited after its deletion was recorded survives
    return [
        entity
        for entity in entities
        if entity.id not in tombstones or entity.updated_at > tombstones[entity.id]
    ]


def ensure_default_list(lists: list[TodoList]) -> list[TodoList]:
    if any(todo_list.id == DEFAULT_LIST_ID for todo_list in lists):
        return lists
    return [TodoList.default_tasks(), *lists]


def reassign_orphans(tasks: list[TodoItem], lists: Sequence[TodoList]) -> list[TodoItem]:
    """Point tasks whose list no longer exists at the default list."""
    valid_ids = {todo_list.id for todo_list in lists}
    for task in tasks:
        if task.list_id not in valid_ids:
            task.list_id = DEFAULT_LIST_ID
    return tasks


def renumber_duplicate_orders(tasks: list[TodoItem]) -> list[TodoItem]:
    """Renumber 1..n every list in which two tasks share a manual order.

    An order of 0 is unset and never counts as a duplicate. The numbering
    depends only on the tasks, so replicas repairing the same data agree.
    """
    by_list: dict[str, list[TodoItem]] = {}
    for task in tasks:
        by_list.setdefault(task.list_id, []).append(task)
    for siblings in by_list.values():
        orders = [task.manual_order for task in siblings if task.manual_order]
        if len(orders) == len(set(orders)):
            continue
        siblings.sort(key=lambda task: (task.manual_order, task.created_at, task.id))
        for index, task in enumerate(siblings, start=1):
            task.manual_order = float(index)
    return tasks


def merge_snapshots(local: Snapshot, remote: Snapshot) -> Snapshot:
    """Merge two snapshots into a new one.

    Tasks, lists and groups merge independently; profile and preferences go
    to whichever side changed them last. Deleted records stay deleted, the
    default list always exists, every task points at an existing list and
    manual orders are unique within each list.
    """
    tombstones = merge_tombstones(local.tombstones, remote.tombstones, latest_change(local, remote))

    lists = ensure_default_list(_alive(merge_entities(local.lists, remote.lists), tombstones))
    groups = _alive(merge_entities(local.groups, remote.groups), tombstones)
    tasks = reassign_orphans(_alive(merge_tasks(local.tasks, remote.tasks), tombstones), lists)
    renumber_duplicate_orders(tasks)

    profile = local.profile if local.profile.updated_at >= remote.profile.updated_at else remote.profile
    app_prefs = (
        local.app_prefs if local.app_prefs.updated_at >= remote.app_prefs.updated_at else remote.app_prefs
    )

    return Snapshot(
        schema_version=max(local.schema_version, remote.schema_version),
        tasks=tasks,
        lists=lists,
        groups=groups,
        profile=profile.model_copy(),
        app_prefs=app_prefs.model_copy(),
        tombstones=tombstones,
    )
