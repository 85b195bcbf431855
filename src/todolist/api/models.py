"""API request and response models."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from todolist.models import DEFAULT_LIST_ID, Priority, RepeatRule, TagColor, TodoItem
from todolist.query.engine import TaskSortOption


class ApiModel(BaseModel):
    """camelCase on the wire, like the stored entities."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("*")
    @classmethod
    def _aware(cls, value: Any) -> Any:
        # Naive datetimes are taken as UTC
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TagInput(ApiModel):
    name: str
    color: TagColor = TagColor.BLUE


class SubtaskInput(ApiModel):
    id: str | None = None
    title: str
    is_completed: bool = False


class CreateTaskRequest(ApiModel):
    """Request model for creating a task from the full editor."""

    title: str
    description_markdown: str = ""
    priority: Priority = Priority.MEDIUM
    due_date: datetime | None = None
    is_important: bool = False
    my_day_date: datetime | None = None
    tags: list[TagInput] = Field(default_factory=list)
    subtasks: list[SubtaskInput] = Field(default_factory=list)
    repeat_rule: RepeatRule = RepeatRule.NONE
    list_id: str = Field(default=DEFAULT_LIST_ID, alias="listID")


class UpdateTaskRequest(ApiModel):
    """Partial update; only fields present in the request are applied."""

    title: str | None = None
    description_markdown: str | None = None
    is_completed: bool | None = None
    priority: Priority | None = None
    due_date: datetime | None = None
    is_important: bool | None = None
    my_day_date: datetime | None = None
    tags: list[TagInput] | None = None
    subtasks: list[SubtaskInput] | None = None
    repeat_rule: RepeatRule | None = None
    list_id: str | None = Field(default=None, alias="listID")


class QuickAddRequest(ApiModel):
    text: str
    add_to_my_day: bool = False
    list_id: str | None = Field(default=None, alias="listID")


class TemplateItemsRequest(ApiModel):
    """Titles of a template, added as one task each."""

    titles: list[str]
    add_to_my_day: bool = False
    list_id: str = Field(default=DEFAULT_LIST_ID, alias="listID")


class QuickAddResponse(ApiModel):
    created: bool
    recognized_tokens: list[str]
    created_task_id: str | None = None
    task: TodoItem | None = None


class ReorderRequest(ApiModel):
    position: int = Field(ge=0)


class MyDayRequest(ApiModel):
    date: datetime | None = None


class DeleteTasksResponse(ApiModel):
    deleted: int


class PlannedGroupResponse(ApiModel):
    date: datetime | None
    tasks: list[TodoItem]


class CreateListRequest(ApiModel):
    title: str
    icon: str = "list.bullet"
    color: TagColor = TagColor.BLUE
    group_id: str | None = Field(default=None, alias="groupID")


class UpdateListRequest(ApiModel):
    title: str | None = None
    icon: str | None = None
    color: TagColor | None = None
    group_id: str | None = Field(default=None, alias="groupID")


class CreateGroupRequest(ApiModel):
    title: str


class SuggestionResponse(ApiModel):
    task: TodoItem
    reason: str


class InsightsResponse(ApiModel):
    """Productivity counters for the reference day."""

    total_count: int
    open_count: int
    overdue_count: int
    completed_today_count: int
    completion_streak: int
    my_day_completed: int
    my_day_total: int
    my_day_completion_rate: float
    suggestions: list[SuggestionResponse]
    week_start: datetime
    week_end: datetime
    week_created_count: int
    week_completed_count: int
    week_carried_over_completed_count: int
    week_important_completed_count: int
    week_overdue_resolved_count: int


class UpdateSettingsRequest(ApiModel):
    display_name: str | None = None
    default_sort: TaskSortOption | None = None
    show_completed: bool | None = None
    use_global_search: bool | None = None
    week_starts_on: int | None = Field(default=None, ge=1, le=7)
