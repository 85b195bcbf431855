"""Tests for FolderSnapshotStorage and the replica watcher."""

import os
from pathlib import Path

import pytest
from conftest import NOW, make_task
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent

from todolist.models import ListGroup, ProfileSettings, Snapshot, Subtask, TodoList
from todolist.storage.folder import FolderSnapshotStorage, parse_task, render_task
from todolist.storage.watcher import ReplicaWatcher, _ReplicaEventHandler


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path / "replica"


@pytest.fixture
def storage(root: Path) -> FolderSnapshotStorage:
    return FolderSnapshotStorage(root)


def test_render_and_parse_task() -> None:
    """Test the description becomes the Markdown body."""
    item = make_task(
        "Write report",
        id="t1",
        description_markdown="# Notes\n\n- first\n",
        tags=["work"],
        subtasks=[Subtask(id="s1", title="outline")],
        due_date=NOW,
    )

    content = render_task(item)

    assert content.startswith("---\n")
    assert content.endswith("---\n# Notes\n\n- first\n")
    assert "descriptionMarkdown" not in content
    assert parse_task(content) == item


def test_parse_hand_written_task() -> None:
    """Test a file edited by hand with only a few fields."""
    content = """---
id: manual
title: From the phone
priority: high
tags:
- errands
---
Pick up parcel
"""

    item = parse_task(content)

    assert item.id == "manual"
    assert item.title == "From the phone"
    assert item.priority.value == "high"
    assert item.tags[0].name == "errands"
    assert item.description_markdown == "Pick up parcel\n"


@pytest.mark.parametrize(
    "content",
    [
        "no front matter",
        "---\n[unclosed\n---\n",
        "---\n- a list\n---\n",
        "---\nid: t1\n---\n",
    ],
)
def test_parse_invalid_task(content: str) -> None:
    with pytest.raises(ValueError):
        parse_task(content)


@pytest.mark.asyncio
async def test_empty_folder(storage: FolderSnapshotStorage) -> None:
    snapshot = await storage.load_snapshot()

    assert snapshot == Snapshot()


@pytest.mark.asyncio
async def test_snapshot_round_trip(root: Path, storage: FolderSnapshotStorage) -> None:
    """Test every part of the snapshot survives the folder layout."""
    snapshot = Snapshot(
        tasks=[make_task("a", id="t1", tags=["x"]), make_task("b", id="t2", description_markdown="body")],
        lists=[TodoList.default_tasks(), TodoList(id="L1", title="Work", created_at=NOW, updated_at=NOW)],
        groups=[ListGroup(id="G1", title="Folder", created_at=NOW, updated_at=NOW)],
        profile=ProfileSettings(display_name="Me", updated_at=NOW),
        tombstones={"gone": NOW},
    )

    await storage.persist_snapshot(snapshot)
    loaded = await storage.load_snapshot()

    assert sorted(path.name for path in (root / "tasks").iterdir()) == ["t1.md", "t2.md"]
    assert {path.name for path in root.glob("*.yaml")} == {
        "lists.yaml",
        "groups.yaml",
        "profile.yaml",
        "prefs.yaml",
        "meta.yaml",
    }
    assert loaded == snapshot


@pytest.mark.asyncio
async def test_unchanged_files_are_not_rewritten(root: Path, storage: FolderSnapshotStorage) -> None:
    """Test a second identical write leaves modification times alone."""
    snapshot = Snapshot(tasks=[make_task("a", id="t1"), make_task("b", id="t2")])
    await storage.persist_snapshot(snapshot)
    task_file = root / "tasks" / "t1.md"
    os.utime(task_file, (1_000_000, 1_000_000))

    snapshot.tasks[1].title = "b changed"
    await storage.persist_snapshot(snapshot)

    assert task_file.stat().st_mtime == 1_000_000
    assert "b changed" in (root / "tasks" / "t2.md").read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_stale_task_files_are_removed(root: Path, storage: FolderSnapshotStorage) -> None:
    await storage.persist_items([make_task("a", id="t1"), make_task("b", id="t2")])

    await storage.persist_items([make_task("b", id="t2")])

    assert [path.name for path in (root / "tasks").iterdir()] == ["t2.md"]


@pytest.mark.asyncio
async def test_invalid_files_are_skipped(root: Path, storage: FolderSnapshotStorage) -> None:
    """Test broken task files and YAML never fail the load."""
    await storage.persist_snapshot(Snapshot(tasks=[make_task("ok", id="ok")]))
    (root / "tasks" / "broken.md").write_text("not a task", encoding="utf-8")
    (root / "tasks" / "latin.md").write_bytes(b"---\nid: latin\ntitle: caf\xe9\n---\n")
    (root / "lists.yaml").write_text("[unclosed", encoding="utf-8")

    snapshot = await storage.load_snapshot()

    assert sorted(item.id for item in snapshot.tasks) == ["latin", "ok"]
    assert next(item for item in snapshot.tasks if item.id == "latin").title == "café"
    assert snapshot.lists == []


class TestReplicaWatcher:
    """Event filtering of the replica watcher."""

    def test_reports_replica_files(self) -> None:
        events: list[tuple[str, str]] = []
        handler = _ReplicaEventHandler(lambda event_type, name: events.append((event_type, name)))

        handler.on_modified(FileModifiedEvent("/replica/tasks/t1.md"))
        handler.on_created(FileCreatedEvent("/replica/lists.yaml"))

        assert events == [("modified", "t1.md"), ("created", "lists.yaml")]

    def test_ignores_noise(self) -> None:
        """Test directories, dotfiles and other suffixes are ignored."""
        events: list[tuple[str, str]] = []
        handler = _ReplicaEventHandler(lambda event_type, name: events.append((event_type, name)))

        handler.on_modified(DirModifiedEvent("/replica/tasks"))
        handler.on_created(FileCreatedEvent("/replica/.t1.md.swp"))
        handler.on_created(FileCreatedEvent("/replica/tasks/.hidden.md"))
        handler.on_modified(FileModifiedEvent("/replica/notes.txt"))

        assert events == []

    def test_callback_errors_are_contained(self) -> None:
        def callback(event_type: str, name: str) -> None:
            raise RuntimeError("boom")

        handler = _ReplicaEventHandler(callback)

        handler.on_modified(FileModifiedEvent("/replica/tasks/t1.md"))

    def test_start_and_stop(self, root: Path) -> None:
        """Test the watcher creates its folder and stops cleanly."""
        watcher = ReplicaWatcher(root)
        watcher.set_callback(lambda event_type, name: None)

        watcher.start()
        try:
            assert root.exists()
            assert watcher.is_running
        finally:
            watcher.stop()

        assert not watcher.is_running
