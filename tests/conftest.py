"""Test fixtures for the todolist core."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from todolist.models import Tag, TodoItem
from todolist.parsing.calendar import LocalCalendar
from todolist.parsing.quick_add import QuickAddParser

# Monday
NOW = datetime(2026, 2, 9, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def calendar() -> LocalCalendar:
    """UTC calendar."""
    return LocalCalendar("UTC")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def parser(calendar: LocalCalendar) -> QuickAddParser:
    """Parser pinned to the reference now."""
    return QuickAddParser(calendar, now_provider=lambda: NOW)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data directory with an empty replica folder next to it."""
    data = tmp_path / "data"
    data.mkdir()
    (tmp_path / "cloud").mkdir()
    return data


def make_task(title: str = "Task", updated_at: datetime = NOW, **fields: object) -> TodoItem:
    """Build a task with sensible timestamps for tests."""
    fields.setdefault("created_at", updated_at)
    tags = fields.pop("tags", [])
    return TodoItem(
        title=title,
        updated_at=updated_at,
        tags=[Tag(name=tag) if isinstance(tag, str) else tag for tag in tags],  # type: ignore[attr-defined]
        **fields,
    )
