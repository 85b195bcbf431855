"""Local JSON file storage."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from todolist.models import (
    CURRENT_SCHEMA_VERSION,
    AppPreferences,
    ListGroup,
    ProfileSettings,
    Snapshot,
    TodoItem,
    TodoList,
)
from todolist.storage.base import TodoStorage
from todolist.storage.merge import ensure_default_list, reassign_orphans, renumber_duplicate_orders

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)


def _decode_records(model: type[_M], records: Any, kind: str) -> list[_M]:
    """Decode a list of records, skipping the ones that do not validate."""
    if not isinstance(records, list):
        return []
    decoded: list[_M] = []
    for record in records:
        try:
            decoded.append(model.model_validate(record))
        except ValidationError as e:
            logger.warning(f"[LocalJsonStorage] Skipping invalid {kind} record: {e.error_count()} errors")
    return decoded


def _decode_singleton(model: type[_M], record: Any) -> _M:
    try:
        return model.model_validate(record or {})
    except ValidationError:
        logger.warning(f"[LocalJsonStorage] Invalid {model.__name__}, using defaults")
        return model()


def decode_payload(payload: Any) -> Snapshot | None:
    """Decode any known on-disk shape into a snapshot.

    v3 is the full snapshot, v2 is ``{schemaVersion, items}`` and v1 is a bare
    array of tasks. Returns None for anything else.
    """
    if isinstance(payload, list):
        return Snapshot(tasks=_decode_records(TodoItem, payload, "task"))
    if not isinstance(payload, dict):
        return None

    if "tasks" in payload:
        return Snapshot(
            schema_version=payload.get("schemaVersion", CURRENT_SCHEMA_VERSION),
            tasks=_decode_records(TodoItem, payload.get("tasks"), "task"),
            lists=_decode_records(TodoList, payload.get("lists"), "list"),
            groups=_decode_records(ListGroup, payload.get("groups"), "group"),
            profile=_decode_singleton(ProfileSettings, payload.get("profile")),
            app_prefs=_decode_singleton(AppPreferences, payload.get("appPrefs")),
            tombstones=_decode_tombstones(payload.get("tombstones")),
        )
    if "items" in payload:
        return Snapshot(tasks=_decode_records(TodoItem, payload.get("items"), "task"))
    return None


def _decode_tombstones(value: Any) -> dict:
    if not isinstance(value, dict):
        return {}
    try:
        return Snapshot.model_validate({"tombstones": value}).tombstones
    except ValidationError:
        logger.warning("[LocalJsonStorage] Invalid tombstones, ignoring them")
        return {}


def normalize_snapshot(snapshot: Snapshot) -> Snapshot:
    """Bring a decoded snapshot into its canonical form.

    The default list exists, every task points at an existing list, tasks
    without a manual order are appended after their list's highest order,
    repeated orders within a list are renumbered, and lists and groups are
    ordered by (manualOrder, createdAt).
    """
    snapshot.lists = ensure_default_list(list(snapshot.lists))
    reassign_orphans(snapshot.tasks, snapshot.lists)

    highest: dict[str, float] = {}
    for task in snapshot.tasks:
        highest[task.list_id] = max(highest.get(task.list_id, 0), task.manual_order)
    for task in snapshot.tasks:
        if task.manual_order == 0:
            highest[task.list_id] = highest.get(task.list_id, 0) + 1
            task.manual_order = highest[task.list_id]
    renumber_duplicate_orders(snapshot.tasks)

    snapshot.lists.sort(key=lambda todo_list: (todo_list.manual_order, todo_list.created_at))
    snapshot.groups.sort(key=lambda group: (group.manual_order, group.created_at))
    snapshot.schema_version = CURRENT_SCHEMA_VERSION
    return snapshot


class LocalJsonStorage(TodoStorage):
    """Snapshot storage in a single JSON file.

    Older file shapes are upgraded on read and rewritten in the current shape
    by the next write. Unreadable files yield an empty snapshot; write errors
    are logged, not raised.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load_items(self) -> list[TodoItem]:
        return (await self.load_snapshot()).tasks

    async def persist_items(self, items: list[TodoItem]) -> None:
        snapshot = await self.load_snapshot()
        snapshot.tasks = items
        await self.persist_snapshot(snapshot)

    async def load_snapshot(self) -> Snapshot:
        return await asyncio.to_thread(self._read)

    async def persist_snapshot(self, snapshot: Snapshot) -> None:
        normalized = normalize_snapshot(snapshot.copy_deep())
        try:
            await asyncio.to_thread(self._write, normalized)
        except OSError as e:
            logger.error(f"[LocalJsonStorage] Failed to persist {self._path}: {e}")

    def _read(self) -> Snapshot:
        if not self._path.exists():
            return normalize_snapshot(Snapshot())

        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"[LocalJsonStorage] Failed to read {self._path}: {e}")
            return normalize_snapshot(Snapshot())

        try:
            snapshot = decode_payload(payload)
        except ValidationError as e:
            logger.warning(f"[LocalJsonStorage] Invalid snapshot in {self._path}: {e.error_count()} errors")
            snapshot = None
        if snapshot is None:
            logger.warning(f"[LocalJsonStorage] Unknown format in {self._path}, starting empty")
            return normalize_snapshot(Snapshot())
        return normalize_snapshot(snapshot)

    def _write(self, snapshot: Snapshot) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(snapshot.to_wire(), ensure_ascii=False, indent=2)

        # Atomic replace so a crash never leaves a half-written file
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".todos-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
            os.replace(tmp_name, self._path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"[LocalJsonStorage] Wrote {len(snapshot.tasks)} tasks to {self._path}")
