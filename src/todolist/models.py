"""Domain entities for the todo list: tasks, tags, lists, groups and snapshots."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

CURRENT_SCHEMA_VERSION = 3

# Fixed so that replicas reinserting the default list independently agree on it
DEFAULT_LIST_ID = "00000000-0000-0000-0000-000000000000"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Namespace for ids derived from legacy bare-string tags
_LEGACY_TAG_NAMESPACE = uuid.UUID("6f2c1e0a-3b4d-4c5e-8f90-a1b2c3d4e5f6")


def new_id() -> str:
    """Return a fresh entity identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalized_tag_name(name: str) -> str:
    """Normalize a tag name for identity comparisons (trimmed, lowercased)."""
    return name.strip().lower()


def _ensure_aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Sort rank: high=3, medium=2, low=1."""
        return {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}[self]


class RepeatRule(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TagColor(str, Enum):
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    TEAL = "teal"
    BLUE = "blue"
    PURPLE = "purple"
    PINK = "pink"
    GRAY = "gray"


class _Entity(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=False,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict using wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)


class Tag(_Entity):
    """Tag attached to a task. Identity by id, meaning by normalized name."""

    id: str = Field(default_factory=new_id)
    name: str
    color: TagColor = TagColor.BLUE

    @field_validator("color", mode="before")
    @classmethod
    def _coerce_color(cls, value: Any) -> Any:
        if isinstance(value, TagColor):
            return value
        if isinstance(value, str) and value.lower() in {c.value for c in TagColor}:
            return value.lower()
        return TagColor.BLUE

    @classmethod
    def from_legacy(cls, name: str) -> "Tag":
        """Build a tag from a legacy bare-string tag.

        The id is derived from the normalized name, so every replica upgrading
        the same legacy data produces the same tag id.
        """
        tag_id = uuid.uuid5(_LEGACY_TAG_NAMESPACE, normalized_tag_name(name))
        return cls(id=str(tag_id), name=name.strip())


class Subtask(_Entity):
    id: str = Field(default_factory=new_id)
    title: str = ""
    is_completed: bool = False


class TodoItem(_Entity):
    """A task. The central mutable record of the store."""

    id: str = Field(default_factory=new_id)
    title: str
    description_markdown: str = ""
    is_completed: bool = False
    list_id: str = Field(default=DEFAULT_LIST_ID, alias="listID")
    manual_order: float = 0
    priority: Priority = Priority.MEDIUM
    due_date: datetime | None = None
    is_important: bool = False
    my_day_date: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime = EPOCH
    created_at: datetime = EPOCH
    subtasks: list[Subtask] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    repeat_rule: RepeatRule = RepeatRule.NONE

    @model_validator(mode="before")
    @classmethod
    def _fill_legacy_fields(cls, data: Any) -> Any:
        """Default timestamps that older payloads did not carry."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        created = data.get("createdAt", data.get("created_at"))
        if created is None:
            created = utc_now()
            data["createdAt"] = created
            data.pop("created_at", None)
        if data.get("updatedAt", data.get("updated_at")) is None:
            data["updatedAt"] = created
            data.pop("updated_at", None)
        return data

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> Any:
        if isinstance(value, Priority):
            return value
        if isinstance(value, str) and value.lower() in {p.value for p in Priority}:
            return value.lower()
        return Priority.MEDIUM

    @field_validator("repeat_rule", mode="before")
    @classmethod
    def _coerce_repeat_rule(cls, value: Any) -> Any:
        if isinstance(value, RepeatRule):
            return value
        if isinstance(value, str) and value.lower() in {r.value for r in RepeatRule}:
            return value.lower()
        return RepeatRule.NONE

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        # Tags used to be stored as bare strings
        if value is None:
            return []
        if isinstance(value, list):
            return [Tag.from_legacy(tag) if isinstance(tag, str) else tag for tag in value]
        return value

    @field_validator("subtasks", mode="before")
    @classmethod
    def _coerce_subtasks(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [Subtask(title=sub) if isinstance(sub, str) else sub for sub in value]
        return value

    @field_validator("description_markdown", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("manual_order", mode="before")
    @classmethod
    def _coerce_manual_order(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("due_date", "my_day_date", "completed_at", "updated_at", "created_at")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return _ensure_aware(value)

    @model_validator(mode="after")
    def _completion_invariant(self) -> "TodoItem":
        # completedAt is set exactly when the task is completed
        if self.is_completed and self.completed_at is None:
            self.completed_at = self.updated_at
        elif not self.is_completed and self.completed_at is not None:
            self.completed_at = None
        return self

    def tag_names(self) -> set[str]:
        """Normalized names of this task's tags."""
        return {normalized_tag_name(tag.name) for tag in self.tags}


class TodoList(_Entity):
    """User-defined list (container of tasks)."""

    id: str = Field(default_factory=new_id)
    title: str
    icon: str = "list.bullet"
    color: TagColor = TagColor.BLUE
    group_id: str | None = Field(default=None, alias="groupID")
    manual_order: float = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return _ensure_aware(value)  # type: ignore[return-value]

    @classmethod
    def default_tasks(cls) -> "TodoList":
        """The distinguished default list, fallback owner of orphaned tasks."""
        return cls(
            id=DEFAULT_LIST_ID,
            title="Tasks",
            icon="house",
            manual_order=0,
            created_at=EPOCH,
            updated_at=EPOCH,
        )


class ListGroup(_Entity):
    """Folder of lists in the sidebar."""

    id: str = Field(default_factory=new_id)
    title: str
    manual_order: float = 0
    is_collapsed: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return _ensure_aware(value)  # type: ignore[return-value]


class ProfileSettings(_Entity):
    display_name: str = ""
    updated_at: datetime = EPOCH

    @field_validator("updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return _ensure_aware(value)  # type: ignore[return-value]


class AppPreferences(_Entity):
    default_sort: str = "manual"
    show_completed: bool = True
    use_global_search: bool = False
    week_starts_on: int = 1  # 1 = Sunday
    updated_at: datetime = EPOCH

    @field_validator("updated_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return _ensure_aware(value)  # type: ignore[return-value]


class Snapshot(_Entity):
    """The unit of persistence: every task, list, group and setting at one point in time."""

    schema_version: int = CURRENT_SCHEMA_VERSION
    tasks: list[TodoItem] = Field(default_factory=list)
    lists: list[TodoList] = Field(default_factory=list)
    groups: list[ListGroup] = Field(default_factory=list)
    profile: ProfileSettings = Field(default_factory=ProfileSettings)
    app_prefs: AppPreferences = Field(default_factory=AppPreferences)
    # id -> deletion time, for tasks, lists and groups
    tombstones: dict[str, datetime] = Field(default_factory=dict)

    @field_validator("tombstones", mode="before")
    @classmethod
    def _coerce_tombstones(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("tombstones")
    @classmethod
    def _aware_tombstones(cls, value: dict[str, datetime]) -> dict[str, datetime]:
        return {key: _ensure_aware(stamp) for key, stamp in value.items()}  # type: ignore[misc]

    def copy_deep(self) -> "Snapshot":
        """Return an independent deep copy."""
        return self.model_copy(deep=True)
