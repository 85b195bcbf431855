"""Snapshot replica stored as plain files in a synced folder."""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from todolist.models import (
    AppPreferences,
    ListGroup,
    ProfileSettings,
    Snapshot,
    TodoItem,
    TodoList,
)
from todolist.storage.base import TodoStorage

logger = logging.getLogger(__name__)

TASKS_FOLDER = "tasks"
LISTS_FILE = "lists.yaml"
GROUPS_FILE = "groups.yaml"
PROFILE_FILE = "profile.yaml"
PREFS_FILE = "prefs.yaml"
META_FILE = "meta.yaml"

_FRONTMATTER = re.compile(r"^---\s*\n(.*?)\n---\n?", re.DOTALL)


def _read_text(file_path: Path) -> str:
    # Try UTF-8 first, fallback to latin-1 for non-UTF-8 files
    try:
        return file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return file_path.read_text(encoding="latin-1")


def _dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def render_task(item: TodoItem) -> str:
    """Render a task as Markdown: YAML front matter plus the description as body."""
    data = item.to_wire()
    description = data.pop("descriptionMarkdown", "")
    return f"---\n{_dump_yaml(data)}---\n{description}"


def parse_task(content: str) -> TodoItem:
    """Parse a task file written by render_task."""
    match = _FRONTMATTER.match(content)
    if not match:
        raise ValueError("task file has no frontmatter")

    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ValueError("invalid YAML in frontmatter") from e
    if not isinstance(data, dict):
        raise ValueError("frontmatter is not a mapping")

    data["descriptionMarkdown"] = content[match.end() :]
    return TodoItem.model_validate(data)


class FolderSnapshotStorage(TodoStorage):
    """Cloud replica kept as files in a folder synced by an external client.

    One Markdown file per task under ``tasks/``, YAML files for lists, groups,
    profile, preferences and metadata. Files are only rewritten when their
    content changes, so the sync client does not see spurious edits.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._tasks_dir = self._root / TASKS_FOLDER

    @property
    def root(self) -> Path:
        return self._root

    async def load_items(self) -> list[TodoItem]:
        return await asyncio.to_thread(self._read_tasks)

    async def persist_items(self, items: list[TodoItem]) -> None:
        try:
            await asyncio.to_thread(self._write_tasks, items)
        except OSError as e:
            logger.error(f"[FolderSnapshotStorage] Failed to persist tasks to {self._tasks_dir}: {e}")

    async def load_snapshot(self) -> Snapshot:
        return await asyncio.to_thread(self._read_snapshot)

    async def persist_snapshot(self, snapshot: Snapshot) -> None:
        try:
            await asyncio.to_thread(self._write_snapshot, snapshot)
        except OSError as e:
            logger.error(f"[FolderSnapshotStorage] Failed to persist snapshot to {self._root}: {e}")

    def _read_tasks(self) -> list[TodoItem]:
        tasks: list[TodoItem] = []
        if not self._tasks_dir.exists():
            return tasks
        for file_path in sorted(self._tasks_dir.glob("*.md")):
            try:
                tasks.append(parse_task(_read_text(file_path)))
            except (OSError, ValueError) as e:
                # ValidationError is a ValueError
                logger.warning(f"[FolderSnapshotStorage] Failed to parse {file_path.name}: {e}")
                continue
        return tasks

    def _read_yaml(self, name: str) -> Any:
        file_path = self._root / name
        if not file_path.exists():
            return None
        try:
            return yaml.safe_load(_read_text(file_path))
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"[FolderSnapshotStorage] Failed to read {name}: {e}")
            return None

    def _read_entities(self, name: str, model: type[TodoList] | type[ListGroup]) -> list:
        records = self._read_yaml(name)
        if not isinstance(records, list):
            return []
        entities = []
        for record in records:
            try:
                entities.append(model.model_validate(record))
            except ValidationError as e:
                logger.warning(f"[FolderSnapshotStorage] Skipping invalid entry in {name}: {e.error_count()} errors")
        return entities

    def _read_snapshot(self) -> Snapshot:
        meta = self._read_yaml(META_FILE)
        meta = meta if isinstance(meta, dict) else {}
        profile = self._read_yaml(PROFILE_FILE)
        prefs = self._read_yaml(PREFS_FILE)

        snapshot = Snapshot(
            tasks=self._read_tasks(),
            lists=self._read_entities(LISTS_FILE, TodoList),
            groups=self._read_entities(GROUPS_FILE, ListGroup),
        )
        try:
            snapshot.profile = ProfileSettings.model_validate(profile or {})
            snapshot.app_prefs = AppPreferences.model_validate(prefs or {})
        except ValidationError as e:
            logger.warning(f"[FolderSnapshotStorage] Invalid settings, using defaults: {e.error_count()} errors")
        try:
            validated = Snapshot.model_validate(
                {
                    "schemaVersion": meta.get("schemaVersion", snapshot.schema_version),
                    "tombstones": meta.get("tombstones") or {},
                }
            )
            snapshot.schema_version = validated.schema_version
            snapshot.tombstones = validated.tombstones
        except ValidationError as e:
            logger.warning(f"[FolderSnapshotStorage] Invalid {META_FILE}: {e.error_count()} errors")
        return snapshot

    def _write_if_changed(self, file_path: Path, content: str) -> bool:
        if file_path.exists() and _read_text(file_path) == content:
            return False
        file_path.write_text(content, encoding="utf-8")
        return True

    def _write_tasks(self, items: list[TodoItem]) -> None:
        self._tasks_dir.mkdir(parents=True, exist_ok=True)
        written = 0
        keep: set[str] = set()
        for item in items:
            file_name = f"{item.id}.md"
            keep.add(file_name)
            if self._write_if_changed(self._tasks_dir / file_name, render_task(item)):
                written += 1

        removed = 0
        for file_path in self._tasks_dir.glob("*.md"):
            if file_path.name not in keep:
                file_path.unlink(missing_ok=True)
                removed += 1

        if written or removed:
            logger.info(f"[FolderSnapshotStorage] Wrote {written} task files, removed {removed}")

    def _write_snapshot(self, snapshot: Snapshot) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        self._write_tasks(snapshot.tasks)
        self._write_if_changed(self._root / LISTS_FILE, _dump_yaml([entry.to_wire() for entry in snapshot.lists]))
        self._write_if_changed(self._root / GROUPS_FILE, _dump_yaml([entry.to_wire() for entry in snapshot.groups]))
        self._write_if_changed(self._root / PROFILE_FILE, _dump_yaml(snapshot.profile.to_wire()))
        self._write_if_changed(self._root / PREFS_FILE, _dump_yaml(snapshot.app_prefs.to_wire()))
        meta = snapshot.model_dump(mode="json", by_alias=True, include={"schema_version", "tombstones"})
        self._write_if_changed(self._root / META_FILE, _dump_yaml(meta))
