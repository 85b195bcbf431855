"""Quick-add parser: turns one line of free text into task fields."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from todolist.models import Priority, RepeatRule, utc_now
from todolist.parsing.calendar import LocalCalendar
from todolist.parsing.date_resolver import (
    DateResolver,
    has_day_period,
    is_time_token,
    time_of_day,
    tokenize,
)

_PRIORITY_TOKENS = {"p1": Priority.HIGH, "p2": Priority.MEDIUM, "p3": Priority.LOW}

_REPEAT_TOKENS = {
    "每天": RepeatRule.DAILY,
    "daily": RepeatRule.DAILY,
    "everyday": RepeatRule.DAILY,
    "every_day": RepeatRule.DAILY,
    "每周": RepeatRule.WEEKLY,
    "每星期": RepeatRule.WEEKLY,
    "weekly": RepeatRule.WEEKLY,
    "everyweek": RepeatRule.WEEKLY,
    "every_week": RepeatRule.WEEKLY,
    "每月": RepeatRule.MONTHLY,
    "monthly": RepeatRule.MONTHLY,
    "everymonth": RepeatRule.MONTHLY,
    "every_month": RepeatRule.MONTHLY,
}

# Date words that carry a time of day with them
_IMPLIED_TIME_TOKENS = {
    "今晚": "evening",
    "tonight": "evening",
    "this_evening": "evening",
    "今早": "morning",
    "this_morning": "morning",
}


@dataclass
class QuickAddParseResult:
    title: str
    priority: Priority = Priority.MEDIUM
    due_date: datetime | None = None
    repeat_rule: RepeatRule = RepeatRule.NONE
    recognized_tokens: list[str] = field(default_factory=list)


def _repeat_key(token: str) -> str:
    return token.lower().replace("-", "_")


class QuickAddParser:
    """Extracts priority, repeat rule and due date from quick-add text.

    Extraction runs in a fixed order (priority, repeat, date/time); the first
    matching token of each kind is consumed and whatever remains becomes the
    title. Parsing never raises: unrecognized text simply stays in the title.

    With ``implied_times`` enabled, 今晚/tonight/this evening resolve to 20:00
    and 今早/this morning to 09:00 on top of the resolved date.
    """

    def __init__(
        self,
        calendar: LocalCalendar | None = None,
        now_provider: Callable[[], datetime] = utc_now,
        locale: str = "",
        implied_times: bool = True,
    ) -> None:
        self.calendar = calendar or LocalCalendar()
        self.now_provider = now_provider
        self.locale = locale
        self.implied_times = implied_times
        self._resolver = DateResolver(self.calendar, locale)

    def parse(self, raw_text: str) -> QuickAddParseResult:
        normalized = raw_text.replace("，", " ").replace("。", " ").strip()
        if not normalized:
            return QuickAddParseResult(title="")

        tokens = tokenize(normalized, self.locale)
        recognized: list[str] = []

        priority = self._take_priority(tokens, recognized) or Priority.MEDIUM
        repeat_rule = self._take_repeat_rule(tokens, recognized) or RepeatRule.NONE
        due_date = self._take_due_date(tokens, recognized)

        return QuickAddParseResult(
            title=" ".join(tokens).strip(),
            priority=priority,
            due_date=due_date,
            repeat_rule=repeat_rule,
            recognized_tokens=recognized,
        )

    def _take_priority(self, tokens: list[str], recognized: list[str]) -> Priority | None:
        for index, token in enumerate(tokens):
            priority = _PRIORITY_TOKENS.get(token.lower())
            if priority is not None:
                recognized.append(tokens.pop(index))
                return priority
        return None

    def _take_repeat_rule(self, tokens: list[str], recognized: list[str]) -> RepeatRule | None:
        for index, token in enumerate(tokens):
            rule = _REPEAT_TOKENS.get(_repeat_key(token))
            if rule is not None:
                recognized.append(tokens.pop(index))
                return rule
        return None

    def _take_due_date(self, tokens: list[str], recognized: list[str]) -> datetime | None:
        date_index = next(
            (i for i, token in enumerate(tokens) if self._resolver.is_date_keyword(token)), None
        )
        time_index = next((i for i, token in enumerate(tokens) if is_time_token(token)), None)

        if date_index is None:
            if time_index is None:
                return None
            # Time-only input lands on today
            time_token = tokens.pop(time_index)
            recognized.append(time_token)
            today = self.calendar.start_of_day(self.now_provider())
            return self._resolver.apply_time(time_token, today)

        date_token = tokens.pop(date_index)
        recognized.append(date_token)
        date = self._resolver.resolve_date(date_token, self.now_provider())
        if date is None:
            return None

        implied = _IMPLIED_TIME_TOKENS.get(date_token.lower()) if self.implied_times else None

        time_index = next((i for i, token in enumerate(tokens) if is_time_token(token)), None)
        if time_index is not None:
            time_token = tokens.pop(time_index)
            recognized.append(time_token)
            parsed = time_of_day(time_token)
            if parsed is None:
                return date
            hour, minute = parsed
            # 今晚8点 means 20:00, "tonight 9am" stays 09:00
            if implied == "evening" and hour < 12 and not has_day_period(time_token):
                hour += 12
            return self.calendar.set_time(date, hour, minute)

        if implied is not None:
            recognized.append(implied)
            return self._resolver.apply_time(implied, date) or date
        return date
