"""Productivity insights computed over the task list."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from todolist.models import TodoItem
from todolist.parsing.calendar import LocalCalendar


class SuggestionReason(str, Enum):
    OVERDUE = "overdue"
    DUE_TODAY = "dueToday"
    IMPORTANT = "important"

    @property
    def rank(self) -> int:
        return {
            SuggestionReason.OVERDUE: 0,
            SuggestionReason.DUE_TODAY: 1,
            SuggestionReason.IMPORTANT: 2,
        }[self]


@dataclass
class MyDaySuggestion:
    item: TodoItem
    reason: SuggestionReason


@dataclass
class MyDayProgress:
    completed_count: int
    total_count: int

    @property
    def completion_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.completed_count / self.total_count

    @property
    def is_all_done(self) -> bool:
        return self.total_count > 0 and self.completed_count == self.total_count


@dataclass
class WeeklyReview:
    """Counts for the seven days ending at the end of the reference day."""

    start_date: datetime
    end_date: datetime
    created_count: int
    completed_count: int
    carried_over_completed_count: int
    important_completed_count: int
    overdue_resolved_count: int


def my_day_suggestions(
    items: Sequence[TodoItem],
    reference_date: datetime,
    calendar: LocalCalendar,
    limit: int = 5,
) -> list[MyDaySuggestion]:
    """Open tasks worth pulling into My Day: overdue, then due today, then important.

    Tasks already in today's My Day are skipped.
    """
    today = calendar.start_of_day(reference_date)
    tomorrow = calendar.add_days(today, 1)

    candidates: list[MyDaySuggestion] = []
    for item in items:
        if item.is_completed:
            continue
        if item.my_day_date is not None and calendar.is_same_day(item.my_day_date, reference_date):
            continue

        if item.due_date is not None and item.due_date < today:
            candidates.append(MyDaySuggestion(item, SuggestionReason.OVERDUE))
        elif item.due_date is not None and today <= item.due_date < tomorrow:
            candidates.append(MyDaySuggestion(item, SuggestionReason.DUE_TODAY))
        elif item.is_important:
            candidates.append(MyDaySuggestion(item, SuggestionReason.IMPORTANT))

    candidates.sort(
        key=lambda suggestion: (
            suggestion.reason.rank,
            suggestion.item.due_date is None,
            suggestion.item.due_date.timestamp() if suggestion.item.due_date else 0.0,
            -suggestion.item.updated_at.timestamp(),
        )
    )
    return candidates[:limit]


def my_day_progress(items: Sequence[TodoItem], reference_date: datetime, calendar: LocalCalendar) -> MyDayProgress:
    todays = [
        item
        for item in items
        if item.my_day_date is not None and calendar.is_same_day(item.my_day_date, reference_date)
    ]
    return MyDayProgress(
        completed_count=sum(1 for item in todays if item.is_completed),
        total_count=len(todays),
    )


def completion_streak(items: Sequence[TodoItem], reference_date: datetime, calendar: LocalCalendar) -> int:
    """Consecutive days with at least one completion, ending today or yesterday."""
    days = {calendar.start_of_day(item.completed_at) for item in items if item.completed_at is not None}
    if not days:
        return 0

    today = calendar.start_of_day(reference_date)
    yesterday = calendar.add_days(today, -1)
    if today in days:
        cursor = today
    elif yesterday in days:
        cursor = yesterday
    else:
        return 0

    streak = 0
    while cursor in days:
        streak += 1
        cursor = calendar.add_days(cursor, -1)
    return streak


def weekly_review(items: Sequence[TodoItem], reference_date: datetime, calendar: LocalCalendar) -> WeeklyReview:
    end = calendar.add_days(calendar.start_of_day(reference_date), 1)
    start = calendar.add_days(end, -7)

    completed = [
        item for item in items if item.completed_at is not None and start <= item.completed_at < end
    ]
    return WeeklyReview(
        start_date=start,
        end_date=end,
        created_count=sum(1 for item in items if start <= item.created_at < end),
        completed_count=len(completed),
        carried_over_completed_count=sum(1 for item in completed if item.created_at < start),
        important_completed_count=sum(1 for item in completed if item.is_important),
        overdue_resolved_count=sum(
            1
            for item in completed
            if item.due_date is not None and item.completed_at is not None and item.due_date < item.completed_at
        ),
    )


def overdue_count(items: Sequence[TodoItem], reference_date: datetime, calendar: LocalCalendar) -> int:
    today = calendar.start_of_day(reference_date)
    return sum(1 for item in items if not item.is_completed and item.due_date is not None and item.due_date < today)


def completed_today_count(items: Sequence[TodoItem], reference_date: datetime, calendar: LocalCalendar) -> int:
    return sum(
        1
        for item in items
        if item.is_completed and item.completed_at is not None and calendar.is_same_day(item.completed_at, reference_date)
    )
