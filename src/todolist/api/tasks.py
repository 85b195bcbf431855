"""Task API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query

from todolist.api.models import (
    CreateTaskRequest,
    DeleteTasksResponse,
    InsightsResponse,
    MyDayRequest,
    PlannedGroupResponse,
    QuickAddRequest,
    QuickAddResponse,
    ReorderRequest,
    SubtaskInput,
    SuggestionResponse,
    TagInput,
    TemplateItemsRequest,
    UpdateTaskRequest,
)
from todolist.factory import get_query_engine, get_store
from todolist.models import Subtask, Tag, TodoItem, normalized_tag_name, utc_now
from todolist.query.engine import PlannedFilter, SmartList, TaskQuery, TaskSortOption
from todolist.store import insights
from todolist.store.task_store import TaskDraft

logger = logging.getLogger(__name__)

router = APIRouter()


def _selector(value: str) -> SmartList | str:
    """Parse a list selector: a smart list name or a custom list id."""
    try:
        return SmartList(value)
    except ValueError:
        pass
    if get_store().todo_list(value) is None:
        raise HTTPException(status_code=404, detail=f"List not found: {value}")
    return value


def _require_task(task: TodoItem | None, task_id: str) -> TodoItem:
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return task


def _tags(inputs: list[TagInput]) -> list[Tag]:
    """Build tags, reusing the catalog id of an existing tag with the same name."""
    catalog = {normalized_tag_name(tag.name): tag for tag in get_store().tags}
    tags: list[Tag] = []
    seen: set[str] = set()
    for tag_input in inputs:
        key = normalized_tag_name(tag_input.name)
        if not key or key in seen:
            continue
        seen.add(key)
        existing = catalog.get(key)
        tag = Tag(name=tag_input.name.strip(), color=tag_input.color)
        if existing is not None:
            tag.id = existing.id
        tags.append(tag)
    return tags


def _subtasks(inputs: list[SubtaskInput]) -> list[Subtask]:
    subtasks = []
    for subtask_input in inputs:
        subtask = Subtask(title=subtask_input.title.strip(), is_completed=subtask_input.is_completed)
        if subtask_input.id:
            subtask.id = subtask_input.id
        subtasks.append(subtask)
    return subtasks


@router.get("/tasks", response_model=list[TodoItem])
async def list_tasks(
    list_selector: Annotated[str, Query(alias="list")] = SmartList.ALL.value,
    search: str = "",
    sort: TaskSortOption = TaskSortOption.MANUAL,
    tag: str | None = None,
    tags: str | None = None,
    show_completed: bool = True,
    global_search: bool | None = None,
    planned_filter: PlannedFilter = PlannedFilter.ALL,
) -> list[TodoItem]:
    """List tasks of a smart list or custom list.

    Args:
        list_selector: Smart list name (inbox, myDay, ...) or a list id
        search: Case-insensitive text searched in title, description and tags
        sort: Sort order
        tag: Single selected tag
        tags: Comma-separated tag filter (any match)
        show_completed: Include completed tasks
        global_search: Search across all lists (defaults to the stored preference)
        planned_filter: Due-date window for Planned and custom lists

    Returns:
        Matching tasks in sort order
    """
    store = get_store()
    selector = _selector(list_selector)
    tag_filter = {name.strip() for name in tags.split(",") if name.strip()} if tags else set()
    use_global = store.app_prefs.use_global_search if global_search is None else global_search

    return get_query_engine().tasks(
        store.items,
        selector,
        TaskQuery(search_text=search, sort=sort, tag_filter=tag_filter, show_completed=show_completed),
        selected_tag=tag,
        use_global_search=use_global,
        planned_filter=planned_filter,
        reference_date=utc_now(),
    )


@router.get("/tasks/planned", response_model=list[PlannedGroupResponse])
async def planned_tasks(
    planned_filter: PlannedFilter = PlannedFilter.ALL,
) -> list[PlannedGroupResponse]:
    """Planned tasks grouped by due day."""
    store = get_store()
    engine = get_query_engine()
    tasks = engine.tasks(
        store.items,
        SmartList.PLANNED,
        TaskQuery(sort=TaskSortOption.DUE_DATE),
        planned_filter=planned_filter,
        reference_date=utc_now(),
    )
    return [PlannedGroupResponse(date=group.date, tasks=group.tasks) for group in engine.grouped_planned_tasks(tasks)]


@router.get("/tasks/{task_id}", response_model=TodoItem)
async def get_task(task_id: str) -> TodoItem:
    return _require_task(get_store().task(task_id), task_id)


@router.post("/tasks", response_model=TodoItem, status_code=201)
async def create_task(request: CreateTaskRequest) -> TodoItem:
    """Create a task from the full editor."""
    task = get_store().create_task(
        TaskDraft(
            title=request.title,
            description_markdown=request.description_markdown,
            priority=request.priority,
            due_date=request.due_date,
            is_important=request.is_important,
            my_day_date=request.my_day_date,
            tags=_tags(request.tags),
            subtasks=_subtasks(request.subtasks),
            repeat_rule=request.repeat_rule,
            list_id=request.list_id,
        )
    )
    if task is None:
        raise HTTPException(status_code=422, detail="Task title must not be empty")
    return task


@router.post("/tasks/quick-add", response_model=QuickAddResponse)
async def quick_add(request: QuickAddRequest) -> QuickAddResponse:
    """Create a task from one line of natural-language text."""
    store = get_store()
    result = store.create_quick_task(
        request.text,
        preferred_my_day_date=utc_now() if request.add_to_my_day else None,
        list_id=request.list_id,
    )
    logger.info(f"[API] Quick add recognized {result.recognized_tokens} (created: {result.created})")
    return QuickAddResponse(
        created=result.created,
        recognized_tokens=result.recognized_tokens,
        created_task_id=result.created_task_id,
        task=store.task(result.created_task_id),
    )


@router.post("/tasks/templates", response_model=list[TodoItem], status_code=201)
async def add_template_items(request: TemplateItemsRequest) -> list[TodoItem]:
    """Create one task per template title; blank titles are skipped."""
    store = get_store()
    if store.todo_list(request.list_id) is None:
        raise HTTPException(status_code=404, detail=f"List not found: {request.list_id}")
    return store.add_template_items(
        request.titles,
        preferred_my_day_date=utc_now() if request.add_to_my_day else None,
        list_id=request.list_id,
    )


@router.patch("/tasks/{task_id}", response_model=TodoItem)
async def update_task(task_id: str, request: UpdateTaskRequest) -> TodoItem:
    """Update the fields present in the request."""
    fields = request.model_fields_set
    if "title" in fields and not (request.title or "").strip():
        raise HTTPException(status_code=422, detail="Task title must not be empty")

    def mutate(task: TodoItem) -> None:
        if "title" in fields and request.title:
            task.title = request.title.strip()
        if "description_markdown" in fields:
            task.description_markdown = request.description_markdown or ""
        # An explicit null clears the date
        if "due_date" in fields:
            task.due_date = request.due_date
        if "my_day_date" in fields:
            task.my_day_date = request.my_day_date
        for name in ("is_completed", "priority", "is_important", "repeat_rule", "list_id"):
            value = getattr(request, name)
            if name in fields and value is not None:
                setattr(task, name, value)
        if "tags" in fields:
            task.tags = _tags(request.tags or [])
        if "subtasks" in fields:
            task.subtasks = _subtasks(request.subtasks or [])

    return _require_task(get_store().update_task(task_id, mutate), task_id)


@router.post("/tasks/{task_id}/toggle-completion", response_model=TodoItem)
async def toggle_completion(task_id: str) -> TodoItem:
    return _require_task(get_store().toggle_completion(task_id), task_id)


@router.post("/tasks/{task_id}/toggle-important", response_model=TodoItem)
async def toggle_important(task_id: str) -> TodoItem:
    return _require_task(get_store().toggle_important(task_id), task_id)


@router.post("/tasks/{task_id}/my-day", response_model=TodoItem)
async def add_to_my_day(task_id: str, request: MyDayRequest | None = None) -> TodoItem:
    date = request.date if request else None
    return _require_task(get_store().add_to_my_day(task_id, date), task_id)


@router.delete("/tasks/{task_id}/my-day", response_model=TodoItem)
async def remove_from_my_day(task_id: str) -> TodoItem:
    return _require_task(get_store().remove_from_my_day(task_id), task_id)


@router.post("/tasks/{task_id}/reorder", response_model=TodoItem)
async def reorder_task(task_id: str, request: ReorderRequest) -> TodoItem:
    """Move a task to a position within its list."""
    return _require_task(get_store().reorder_task(task_id, request.position), task_id)


@router.delete("/tasks/{task_id}", response_model=DeleteTasksResponse)
async def delete_task(task_id: str) -> DeleteTasksResponse:
    deleted = get_store().delete_tasks([task_id])
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return DeleteTasksResponse(deleted=deleted)


@router.get("/tags", response_model=list[Tag])
async def list_tags() -> list[Tag]:
    """Tag catalog, deduplicated by name."""
    return get_store().tags


@router.get("/insights", response_model=InsightsResponse)
async def get_insights() -> InsightsResponse:
    """Streak, My Day progress, suggestions and the weekly review."""
    store = get_store()
    items = store.items
    calendar = store.calendar
    now = utc_now()

    progress = insights.my_day_progress(items, now, calendar)
    review = insights.weekly_review(items, now, calendar)
    suggestions = insights.my_day_suggestions(items, now, calendar)
    return InsightsResponse(
        total_count=len(items),
        open_count=sum(1 for item in items if not item.is_completed),
        overdue_count=insights.overdue_count(items, now, calendar),
        completed_today_count=insights.completed_today_count(items, now, calendar),
        completion_streak=insights.completion_streak(items, now, calendar),
        my_day_completed=progress.completed_count,
        my_day_total=progress.total_count,
        my_day_completion_rate=progress.completion_rate,
        suggestions=[SuggestionResponse(task=s.item, reason=s.reason.value) for s in suggestions],
        week_start=review.start_date,
        week_end=review.end_date,
        week_created_count=review.created_count,
        week_completed_count=review.completed_count,
        week_carried_over_completed_count=review.carried_over_completed_count,
        week_important_completed_count=review.important_completed_count,
        week_overdue_resolved_count=review.overdue_resolved_count,
    )


@router.post("/sync/reload", status_code=202)
async def reload_from_storage() -> dict[str, int]:
    """Merge the stored replicas into the live state now."""
    store = get_store()
    await store.reload()
    return {"tasks": len(store.items), "lists": len(store.lists)}
