"""Smart-list membership, filtering, sorting and Planned grouping."""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from todolist.models import TodoItem, normalized_tag_name, utc_now
from todolist.parsing.calendar import LocalCalendar

logger = logging.getLogger(__name__)

MAX_SORT_CACHE_ENTRIES = 20


class SmartList(str, Enum):
    INBOX = "inbox"
    MY_DAY = "myDay"
    IMPORTANT = "important"
    PLANNED = "planned"
    COMPLETED = "completed"
    ALL = "all"


class PlannedFilter(str, Enum):
    ALL = "all"
    OVERDUE = "overdue"
    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "thisWeek"
    LATER = "later"


class TaskSortOption(str, Enum):
    MANUAL = "manual"
    DUE_DATE = "dueDate"
    PRIORITY = "priority"
    CREATED_AT = "createdAt"
    COMPLETED_AT = "completedAt"


@dataclass
class TaskQuery:
    search_text: str = ""
    sort: TaskSortOption = TaskSortOption.MANUAL
    tag_filter: set[str] = field(default_factory=set)
    show_completed: bool = True


@dataclass
class PlannedGroup:
    """Tasks due on one day; ``date`` is None for tasks without a due date."""

    date: datetime | None
    tasks: list[TodoItem]


def _due_sort_key(item: TodoItem) -> tuple:
    # Tasks without a due date sort last
    return (
        item.due_date is None,
        item.due_date.timestamp() if item.due_date else 0.0,
        not item.is_important,
        -item.priority.rank,
        -item.created_at.timestamp(),
    )


def _priority_sort_key(item: TodoItem) -> tuple:
    return (
        -item.priority.rank,
        item.due_date is None,
        item.due_date.timestamp() if item.due_date else 0.0,
        -item.created_at.timestamp(),
    )


def _completed_sort_key(item: TodoItem) -> tuple:
    return (item.completed_at is None, -(item.completed_at.timestamp() if item.completed_at else 0.0))


def _sort_signature(items: list[TodoItem]) -> str:
    return "|".join(
        f"{item.id}-{item.updated_at.timestamp()}-{int(item.is_completed)}-{int(item.is_important)}"
        f"-{item.priority.rank}-{item.due_date.timestamp() if item.due_date else ''}"
        for item in items
    )


def _matches_search(item: TodoItem, needle: str) -> bool:
    if needle in item.title.casefold() or needle in item.description_markdown.casefold():
        return True
    return any(needle in tag.name.casefold() for tag in item.tags)


class ListQueryEngine:
    """Derives filtered, sorted task views from the full task list.

    Sort results are memoized per (sort option, task signature). The cache
    stores index permutations, so a hit always returns the caller's own task
    objects.
    """

    def __init__(self, calendar: LocalCalendar | None = None) -> None:
        self.calendar = calendar or LocalCalendar()
        self._sort_cache: OrderedDict[tuple[TaskSortOption, str], list[int]] = OrderedDict()

    def tasks(
        self,
        items: list[TodoItem],
        selector: SmartList | str,
        query: TaskQuery | None = None,
        selected_tag: str | None = None,
        use_global_search: bool = False,
        planned_filter: PlannedFilter = PlannedFilter.ALL,
        reference_date: datetime | None = None,
    ) -> list[TodoItem]:
        """Tasks for a smart list or a custom list id, filtered and sorted.

        A non-empty search with ``use_global_search`` ignores list scoping;
        the secondary filters still apply.
        """
        query = query or TaskQuery()
        reference_date = reference_date or utc_now()
        needle = query.search_text.strip().casefold()
        global_search = use_global_search and bool(needle)

        if global_search:
            filtered = list(items)
        else:
            filtered = [item for item in items if self._in_selection(item, selector, reference_date)]

        tag_filter = {normalized_tag_name(tag) for tag in query.tag_filter}
        selected = normalized_tag_name(selected_tag) if selected_tag else ""

        def keep(item: TodoItem) -> bool:
            if not query.show_completed and item.is_completed:
                return False
            if selected or tag_filter:
                names = item.tag_names()
                if selected and selected not in names:
                    return False
                if tag_filter and names.isdisjoint(tag_filter):
                    return False
            return not needle or _matches_search(item, needle)

        filtered = [item for item in filtered if keep(item)]

        is_custom = not isinstance(selector, SmartList)
        if planned_filter != PlannedFilter.ALL and (selector == SmartList.PLANNED or is_custom):
            filtered = [
                item
                for item in filtered
                if self._matches_planned_filter(item, planned_filter, reference_date)
            ]

        return self.sort(filtered, query.sort)

    def grouped_planned_tasks(self, items: list[TodoItem]) -> list[PlannedGroup]:
        """Bucket tasks by due day, ascending, with the no-due-date bucket last."""
        buckets: dict[datetime | None, list[TodoItem]] = {}
        for item in items:
            key = self.calendar.start_of_day(item.due_date) if item.due_date else None
            buckets.setdefault(key, []).append(item)

        keys = sorted(buckets, key=lambda day: (day is None, day.timestamp() if day else 0.0))
        return [PlannedGroup(date=key, tasks=self.sort(buckets[key], TaskSortOption.DUE_DATE)) for key in keys]

    def is_in_my_day(self, item: TodoItem, reference_date: datetime) -> bool:
        if item.my_day_date is None:
            return False
        return self.calendar.is_same_day(item.my_day_date, reference_date)

    def matches_smart_list(self, item: TodoItem, smart_list: SmartList, reference_date: datetime) -> bool:
        if smart_list == SmartList.INBOX:
            return (
                not item.is_completed
                and item.due_date is None
                and not self.is_in_my_day(item, reference_date)
            )
        if smart_list == SmartList.MY_DAY:
            return not item.is_completed and self.is_in_my_day(item, reference_date)
        if smart_list == SmartList.IMPORTANT:
            return not item.is_completed and item.is_important
        if smart_list == SmartList.PLANNED:
            return not item.is_completed and item.due_date is not None
        if smart_list == SmartList.COMPLETED:
            return item.is_completed
        return True

    def sort(self, items: list[TodoItem], option: TaskSortOption) -> list[TodoItem]:
        """Sort items by option, reusing a cached order when nothing relevant changed."""
        key = (option, _sort_signature(items))
        order = self._sort_cache.get(key)
        if order is None:
            logger.debug(f"[ListQueryEngine] Sort cache miss for {option.value} ({len(items)} tasks)")
            order = self._compute_order(items, option)
            self._sort_cache[key] = order
            while len(self._sort_cache) > MAX_SORT_CACHE_ENTRIES:
                self._sort_cache.popitem(last=False)
        return [items[index] for index in order]

    def _compute_order(self, items: list[TodoItem], option: TaskSortOption) -> list[int]:
        indices = list(range(len(items)))
        if option == TaskSortOption.MANUAL:
            return indices
        if option == TaskSortOption.DUE_DATE:
            return sorted(indices, key=lambda i: _due_sort_key(items[i]))
        if option == TaskSortOption.PRIORITY:
            return sorted(indices, key=lambda i: _priority_sort_key(items[i]))
        if option == TaskSortOption.CREATED_AT:
            return sorted(indices, key=lambda i: -items[i].created_at.timestamp())
        return sorted(indices, key=lambda i: _completed_sort_key(items[i]))

    def _in_selection(self, item: TodoItem, selector: SmartList | str, reference_date: datetime) -> bool:
        if isinstance(selector, SmartList):
            return self.matches_smart_list(item, selector, reference_date)
        return item.list_id == selector

    def _matches_planned_filter(
        self, item: TodoItem, planned_filter: PlannedFilter, reference_date: datetime
    ) -> bool:
        if item.due_date is None:
            return False

        today = self.calendar.start_of_day(reference_date)
        tomorrow = self.calendar.add_days(today, 1)
        day_after_tomorrow = self.calendar.add_days(today, 2)
        next_week = self.calendar.add_days(today, 7)
        due = item.due_date

        if planned_filter == PlannedFilter.OVERDUE:
            return due < today
        if planned_filter == PlannedFilter.TODAY:
            return today <= due < tomorrow
        if planned_filter == PlannedFilter.TOMORROW:
            return tomorrow <= due < day_after_tomorrow
        if planned_filter == PlannedFilter.THIS_WEEK:
            return today <= due < next_week
        if planned_filter == PlannedFilter.LATER:
            return due >= next_week
        return True
