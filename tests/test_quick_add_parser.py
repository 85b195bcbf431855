"""Tests for QuickAddParser."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from todolist.models import Priority, RepeatRule
from todolist.parsing.calendar import LocalCalendar
from todolist.parsing.quick_add import QuickAddParser


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_chinese_quick_add(parser: QuickAddParser) -> None:
    """Test date, afternoon time, priority and repeat in one Chinese line."""
    result = parser.parse("明天下午3点开会 p1 每周")

    assert result.priority == Priority.HIGH
    assert result.repeat_rule == RepeatRule.WEEKLY
    assert result.due_date == utc(2026, 2, 10, 15, 0)
    assert "开会" in result.title
    assert result.recognized_tokens == ["p1", "每周", "明天", "下午3点"]


def test_english_quick_add(parser: QuickAddParser) -> None:
    """Test English phrases: tomorrow, 9am, every day, p2."""
    result = parser.parse("review docs tomorrow 9am every day p2")

    assert result.priority == Priority.MEDIUM
    assert result.repeat_rule == RepeatRule.DAILY
    assert result.due_date == utc(2026, 2, 10, 9, 0)
    assert result.title == "review docs"
    assert result.recognized_tokens == ["p2", "every_day", "tomorrow", "9am"]


@pytest.mark.parametrize("text", ["", "   ", "，。", " ， "])
def test_empty_input(parser: QuickAddParser, text: str) -> None:
    """Test empty input yields an empty result instead of an error."""
    result = parser.parse(text)

    assert result.title == ""
    assert result.priority == Priority.MEDIUM
    assert result.due_date is None
    assert result.repeat_rule == RepeatRule.NONE
    assert result.recognized_tokens == []


def test_unrecognized_text_becomes_title(parser: QuickAddParser) -> None:
    """Test text without any keyword is kept whole."""
    result = parser.parse("随便写点什么")

    assert result.title == "随便写点什么"
    assert result.due_date is None
    assert result.recognized_tokens == []


def test_full_width_punctuation_is_normalized(parser: QuickAddParser) -> None:
    """Test full-width comma and period split tokens like spaces."""
    result = parser.parse("买菜，明天。")

    assert result.title == "买菜"
    assert result.due_date == utc(2026, 2, 10, 0, 0)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("周一 开会", utc(2026, 2, 9)),  # today is Monday
        ("周五 聚餐", utc(2026, 2, 13)),
        ("星期日 休息", utc(2026, 2, 15)),
        ("星期天 休息", utc(2026, 2, 15)),
        ("下周一 交报告", utc(2026, 2, 16)),  # same weekday next week skips a week
        ("下周三 交报告", utc(2026, 2, 11)),
        ("下周 复盘", utc(2026, 2, 16)),
        ("后天 体检", utc(2026, 2, 11)),
        ("今天 打扫", utc(2026, 2, 9)),
    ],
)
def test_chinese_dates(parser: QuickAddParser, text: str, expected: datetime) -> None:
    """Test Chinese date keywords resolve to the start of the day."""
    assert parser.parse(text).due_date == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("call mom next friday", utc(2026, 2, 13)),
        ("standup next monday", utc(2026, 2, 16)),
        ("standup monday", utc(2026, 2, 9)),
        ("pay rent Fri", utc(2026, 2, 13)),
        ("plan trip next week", utc(2026, 2, 16)),
        ("ship release day after tomorrow", utc(2026, 2, 11)),
        ("water plants today", utc(2026, 2, 9)),
    ],
)
def test_english_dates(parser: QuickAddParser, text: str, expected: datetime) -> None:
    """Test English date words, weekday names and collapsed phrases."""
    assert parser.parse(text).due_date == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("明天下午3点半 开会", utc(2026, 2, 10, 15, 30)),
        ("明天晚上8点15分 看电影", utc(2026, 2, 10, 20, 15)),
        ("明天上午12点 吃药", utc(2026, 2, 10, 0, 0)),
        ("明天中午12点 午饭", utc(2026, 2, 10, 12, 0)),
        ("明天中午1点 午饭", utc(2026, 2, 10, 13, 0)),
        ("明天 9：15 开会", utc(2026, 2, 10, 9, 15)),
        ("明天 21:05 复盘", utc(2026, 2, 10, 21, 5)),
        ("tomorrow 12am backup", utc(2026, 2, 10, 0, 0)),
        ("tomorrow 12pm lunch", utc(2026, 2, 10, 12, 0)),
        ("tomorrow 7:45pm dinner", utc(2026, 2, 10, 19, 45)),
        ("tomorrow afternoon dentist", utc(2026, 2, 10, 15, 0)),
    ],
)
def test_times(parser: QuickAddParser, text: str, expected: datetime) -> None:
    """Test time tokens applied on top of the resolved date."""
    assert parser.parse(text).due_date == expected


def test_time_only_defaults_to_today(parser: QuickAddParser) -> None:
    """Test a time without a date lands on today."""
    result = parser.parse("10:30 sync")

    assert result.due_date == utc(2026, 2, 9, 10, 30)
    assert result.title == "sync"


def test_tonight_implies_evening(parser: QuickAddParser) -> None:
    """Test 今晚 carries an implied 20:00."""
    result = parser.parse("今晚整理复盘")

    assert result.due_date == utc(2026, 2, 9, 20, 0)
    assert result.title == "整理复盘"
    assert result.recognized_tokens == ["今晚", "evening"]


def test_this_morning_implies_morning(parser: QuickAddParser) -> None:
    """Test "this morning" carries an implied 09:00."""
    result = parser.parse("stretch this morning")

    assert result.due_date == utc(2026, 2, 9, 9, 0)
    assert result.title == "stretch"


def test_tonight_with_explicit_hour(parser: QuickAddParser) -> None:
    """Test an explicit hour after 今晚 is read as an evening hour."""
    result = parser.parse("今晚8点 看电影")

    assert result.due_date == utc(2026, 2, 9, 20, 0)
    assert result.title == "看电影"


def test_tonight_keeps_explicit_am(parser: QuickAddParser) -> None:
    """Test a time with its own am/pm is not moved to the evening."""
    result = parser.parse("call mom tonight 9am")

    assert result.due_date == utc(2026, 2, 9, 9, 0)
    assert result.title == "call mom"


def test_tonight_with_bare_colon_time(parser: QuickAddParser) -> None:
    assert parser.parse("tonight 9:30 read").due_date == utc(2026, 2, 9, 21, 30)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("明天早上8点开会", utc(2026, 2, 10, 8, 0)),
        ("明天傍晚6点跑步", utc(2026, 2, 10, 18, 0)),
    ],
)
def test_colloquial_day_parts(parser: QuickAddParser, text: str, expected: datetime) -> None:
    """Test 早上 and 傍晚 before an hour read like 上午 and 晚上."""
    result = parser.parse(text)

    assert result.due_date == expected
    assert result.title in {"开会", "跑步"}


def test_implied_times_can_be_disabled(calendar: LocalCalendar, now: datetime) -> None:
    """Test the resolver alone gives the start of day for 今晚."""
    parser = QuickAddParser(calendar, now_provider=lambda: now, implied_times=False)

    result = parser.parse("今晚整理复盘")

    assert result.due_date == utc(2026, 2, 9, 0, 0)
    assert result.recognized_tokens == ["今晚"]


def test_priority_case_insensitive_first_wins(parser: QuickAddParser) -> None:
    """Test P1 is recognized and only the first priority token is consumed."""
    result = parser.parse("P3 fix bug p1")

    assert result.priority == Priority.LOW
    assert result.title == "fix bug p1"


@pytest.mark.parametrize(
    ("text", "rule"),
    [
        ("跑步 每天", RepeatRule.DAILY),
        ("周报 每星期", RepeatRule.WEEKLY),
        ("交房租 每月", RepeatRule.MONTHLY),
        ("stretch daily", RepeatRule.DAILY),
        ("report every week", RepeatRule.WEEKLY),
        ("invoice every-month", RepeatRule.MONTHLY),
        ("invoice monthly", RepeatRule.MONTHLY),
    ],
)
def test_repeat_rules(parser: QuickAddParser, text: str, rule: RepeatRule) -> None:
    """Test repeat words in both languages."""
    assert parser.parse(text).repeat_rule == rule


@pytest.mark.parametrize(
    "text",
    [
        "明天下午3点开会 p1 每周",
        "review docs tomorrow 9am every day p2",
        "call mom next friday",
        "今晚整理复盘",
        "10:30 sync",
    ],
)
def test_reparsing_title_extracts_nothing(parser: QuickAddParser, text: str) -> None:
    """Test the residual title holds no further recognizable token."""
    title = parser.parse(text).title
    again = parser.parse(title)

    assert again.title == title
    assert again.recognized_tokens == []
    assert again.due_date is None
    assert again.priority == Priority.MEDIUM
    assert again.repeat_rule == RepeatRule.NONE


def test_parse_is_deterministic(parser: QuickAddParser) -> None:
    """Test the same input gives the same result."""
    assert parser.parse("下周五 下午2点 评审 p1") == parser.parse("下周五 下午2点 评审 p1")


def test_dates_are_resolved_in_calendar_time_zone() -> None:
    """Test "tomorrow" means the local tomorrow, not the UTC one."""
    shanghai = LocalCalendar("Asia/Shanghai")
    # 04:00 on Tuesday in Shanghai
    parser = QuickAddParser(shanghai, now_provider=lambda: utc(2026, 2, 9, 20, 0))

    result = parser.parse("明天 9:00 开会")

    assert result.due_date == datetime(2026, 2, 11, 9, 0, tzinfo=ZoneInfo("Asia/Shanghai"))
    assert result.due_date == utc(2026, 2, 11, 1, 0)


def test_english_locale_enables_english_rules(calendar: LocalCalendar, now: datetime) -> None:
    """Test an English locale keeps English rules on for any text."""
    parser = QuickAddParser(calendar, now_provider=lambda: now, locale="en_US")

    result = parser.parse("明天 开会")

    assert result.due_date == utc(2026, 2, 10)
