"""Tokenizer and date/time resolution for quick-add text (Chinese and English)."""

import re
from datetime import datetime

from todolist.parsing.calendar import LocalCalendar

_LATIN_LETTER = re.compile(r"[A-Za-z]")

_WEEKDAY_WORDS = (
    r"mon(day)?|tue(s(day)?)?|wed(nesday)?|thu(r(s(day)?)?)?|fri(day)?|sat(urday)?|sun(day)?"
)

# Multi-word English phrases collapsed to one underscored token
_ENGLISH_PHRASES = [
    (re.compile(r"(?i)\bday\s+after\s+tomorrow\b"), " day_after_tomorrow "),
    (re.compile(r"(?i)\bnext\s+week\b"), " next_week "),
    (re.compile(r"(?i)\bthis\s+morning\b"), " this_morning "),
    (re.compile(r"(?i)\bthis\s+evening\b"), " this_evening "),
    (re.compile(r"(?i)\bevery\s+day\b"), " every_day "),
    (re.compile(r"(?i)\bevery\s+week\b"), " every_week "),
    (re.compile(r"(?i)\bevery\s+month\b"), " every_month "),
    (re.compile(rf"(?i)\bnext\s+({_WEEKDAY_WORDS})\b"), r" next_\1 "),
]

# Each match is surrounded with spaces so it becomes its own token
_SPACING_PATTERNS = [
    re.compile(r"(今天|明天|后天|今晚|今早|下周[一二三四五六日天]?|周[一二三四五六日天]|星期[一二三四五六日天])"),
    re.compile(r"([01]?\d|2[0-3])[:：][0-5]\d(?!\d|[aApP][mM])"),
    re.compile(r"([1-9]|1[0-2])(:[0-5]\d)?(am|pm|AM|PM)"),
    re.compile(r"(上午|下午|晚上|中午|早上|今早|今晚|傍晚)?([01]?\d|2[0-3])点(半|([0-5]?\d)分?)?"),
    re.compile(r"(每天|每周|每星期|每月)"),
]

_ENGLISH_SPACING_PATTERN = re.compile(
    r"(?i)\b(today|tomorrow|next_week|day_after_tomorrow|tonight|this_morning|this_evening"
    r"|morning|afternoon|evening|noon|daily|weekly|monthly|every_day|every_week|every_month"
    rf"|everyday|everyweek|everymonth|{_WEEKDAY_WORDS}|next_({_WEEKDAY_WORDS}))\b"
)

_COLON_TIME = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_AMPM_TIME = re.compile(r"^([1-9]|1[0-2])(?::([0-5]\d))?(am|pm)$")
_CHINESE_TIME = re.compile(r"^(上午|下午|晚上|中午|早上|今早|今晚|傍晚)?([01]?\d|2[0-3])点(半|([0-5]?\d)分?)?$")

_CHINESE_DATE_WORDS = {"今天", "明天", "后天", "下周", "今晚", "今早"}
_ENGLISH_DATE_WORDS = {
    "today",
    "tomorrow",
    "next_week",
    "day_after_tomorrow",
    "tonight",
    "this_morning",
    "this_evening",
}

# Days from today for the fixed relative date words
_DAY_OFFSETS = {
    "今天": 0,
    "今晚": 0,
    "今早": 0,
    "明天": 1,
    "后天": 2,
    "下周": 7,
    "today": 0,
    "tonight": 0,
    "this_morning": 0,
    "this_evening": 0,
    "tomorrow": 1,
    "day_after_tomorrow": 2,
    "next_week": 7,
}

_CHINESE_PERIOD_WORDS = {"上午", "下午", "晚上", "中午", "早上", "今早", "今晚", "傍晚"}

# Colloquial day parts read like their standard counterpart
_CHINESE_PERIOD_ALIASES = {"早上": "上午", "今早": "上午", "今晚": "晚上", "傍晚": "晚上"}

_ENGLISH_PERIOD_WORDS = {"morning", "afternoon", "evening", "tonight", "noon"}

_PERIOD_HOURS = {
    "上午": 9,
    "早上": 9,
    "今早": 9,
    "morning": 9,
    "this_morning": 9,
    "中午": 12,
    "noon": 12,
    "下午": 15,
    "afternoon": 15,
    "晚上": 20,
    "今晚": 20,
    "傍晚": 20,
    "evening": 20,
    "tonight": 20,
    "this_evening": 20,
}

_CHINESE_WEEKDAYS = {"一": 2, "二": 3, "三": 4, "四": 5, "五": 6, "六": 7, "日": 1, "天": 1}

_ENGLISH_WEEKDAYS = {
    "mon": 2,
    "monday": 2,
    "tue": 3,
    "tues": 3,
    "tuesday": 3,
    "wed": 4,
    "weds": 4,
    "wednesday": 4,
    "thu": 5,
    "thur": 5,
    "thurs": 5,
    "thursday": 5,
    "fri": 6,
    "friday": 6,
    "sat": 7,
    "saturday": 7,
    "sun": 1,
    "sunday": 1,
}


def should_use_english_rules(text: str, locale: str = "") -> bool:
    """English rules apply for an English locale or when the text has any Latin letter."""
    return locale.lower().startswith("en") or _LATIN_LETTER.search(text) is not None


def tokenize(text: str, locale: str = "") -> list[str]:
    """Split text into tokens, isolating date, time and repeat words first."""
    use_english = should_use_english_rules(text, locale)
    spaced = text
    if use_english:
        for pattern, replacement in _ENGLISH_PHRASES:
            spaced = pattern.sub(replacement, spaced)

    patterns = list(_SPACING_PATTERNS)
    if use_english:
        patterns.append(_ENGLISH_SPACING_PATTERN)
    for pattern in patterns:
        spaced = pattern.sub(r" \g<0> ", spaced)

    return spaced.split()


def _normalize_colon(token: str) -> str:
    return token.replace("：", ":")


def english_weekday_number(token: str) -> int | None:
    return _ENGLISH_WEEKDAYS.get(token.lower())


def weekday_number(token: str, locale: str = "") -> int | None:
    """Weekday number (1 = Sunday) named by a weekday token, or None."""
    if should_use_english_rules(token, locale):
        english = english_weekday_number(token.lower().replace("next_", ""))
        if english is not None:
            return english

    trimmed = token.replace("星期", "周").replace("下周", "周")
    if len(trimmed) != 2 or not trimmed.startswith("周"):
        return None
    return _CHINESE_WEEKDAYS.get(trimmed[1])


def weekday_match(token: str, locale: str = "") -> tuple[int, bool] | None:
    """Return (weekday, force_next_week) for a weekday token, or None."""
    lower = token.lower()
    force_next_week = token.startswith("下周") or lower.startswith("next_")
    weekday_token = lower[len("next_") :] if lower.startswith("next_") else token
    weekday = weekday_number(weekday_token, locale)
    if weekday is None:
        return None
    return weekday, force_next_week


def is_time_token(token: str) -> bool:
    normalized = _normalize_colon(token)
    if _COLON_TIME.match(normalized) or _CHINESE_TIME.match(normalized):
        return True
    if normalized in _CHINESE_PERIOD_WORDS:
        return True
    lower = normalized.lower()
    return _AMPM_TIME.match(lower) is not None or lower in _ENGLISH_PERIOD_WORDS


def has_day_period(token: str) -> bool:
    """True when a time token fixes its own half of the day (8pm, 下午3点, noon)."""
    normalized = _normalize_colon(token)
    lower = normalized.lower()
    if _AMPM_TIME.match(lower) or normalized in _CHINESE_PERIOD_WORDS or lower in _ENGLISH_PERIOD_WORDS:
        return True
    match = _CHINESE_TIME.match(normalized)
    return match is not None and match.group(1) is not None


def period_hour(token: str) -> int | None:
    """Hour implied by a bare day-part word (上午, evening, ...)."""
    return _PERIOD_HOURS.get(token.lower())


def parse_ampm(token: str) -> tuple[int, int] | None:
    match = _AMPM_TIME.match(token.lower())
    if not match:
        return None
    hour = int(match.group(1)) % 12
    minute = int(match.group(2)) if match.group(2) else 0
    if match.group(3) == "pm":
        hour += 12
    return hour, minute


def parse_chinese_time(token: str) -> tuple[int, int] | None:
    """Parse 下午3点半 style phrases into (hour, minute)."""
    match = _CHINESE_TIME.match(token)
    if not match:
        return None

    period, hour_text, suffix, minute_text = match.groups()
    period = _CHINESE_PERIOD_ALIASES.get(period, period)
    hour = int(hour_text)
    minute = 0
    if suffix and "半" in suffix:
        minute = 30
    elif minute_text:
        minute = int(minute_text)

    if period in ("下午", "晚上") and hour < 12:
        hour += 12
    elif period == "中午" and hour < 11:
        hour += 12
    elif period == "上午" and hour == 12:
        hour = 0
    return hour, minute


def time_of_day(token: str) -> tuple[int, int] | None:
    """Resolve a time token to (hour, minute), or None if it is not one."""
    normalized = _normalize_colon(token)
    lower = normalized.lower()
    if ":" in normalized and not lower.endswith(("am", "pm")):
        match = _COLON_TIME.match(normalized)
        if not match:
            return None
        return int(match.group(1)), int(match.group(2))

    ampm = parse_ampm(normalized)
    if ampm is not None:
        return ampm

    hour = period_hour(normalized)
    if hour is not None:
        return hour, 0

    return parse_chinese_time(normalized)


class DateResolver:
    """Resolves date and time tokens against a reference instant."""

    def __init__(self, calendar: LocalCalendar, locale: str = "") -> None:
        self.calendar = calendar
        self.locale = locale

    def is_date_keyword(self, token: str) -> bool:
        if token in _CHINESE_DATE_WORDS:
            return True
        if token.startswith(("周", "星期", "下周")):
            return weekday_number(token, self.locale) is not None
        if should_use_english_rules(token, self.locale):
            lower = token.lower()
            if lower in _ENGLISH_DATE_WORDS:
                return True
            return weekday_match(lower, self.locale) is not None
        return False

    def resolve_date(self, token: str, now: datetime) -> datetime | None:
        """Start of the day named by a date token, relative to now."""
        today = self.calendar.start_of_day(now)

        if token in _CHINESE_DATE_WORDS:
            return self.calendar.add_days(today, _DAY_OFFSETS[token])

        if should_use_english_rules(token, self.locale):
            offset = _DAY_OFFSETS.get(token.lower())
            if offset is not None:
                return self.calendar.add_days(today, offset)

        match = weekday_match(token, self.locale)
        if match is None:
            return None
        target, force_next_week = match
        delta = (target - self.calendar.weekday(today) + 7) % 7
        if force_next_week and delta == 0:
            delta = 7
        return self.calendar.add_days(today, delta)

    def apply_time(self, token: str, date: datetime) -> datetime | None:
        """Place a time token on date's calendar day; None if unparseable."""
        parsed = time_of_day(token)
        if parsed is None:
            return None
        hour, minute = parsed
        return self.calendar.set_time(date, hour, minute)
