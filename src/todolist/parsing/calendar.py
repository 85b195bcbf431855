"""Time zone aware day arithmetic."""

from calendar import monthrange
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo


class LocalCalendar:
    """Calendar bound to one time zone.

    Weekdays are numbered 1 = Sunday through 7 = Saturday.
    """

    def __init__(self, tz: tzinfo | str = "UTC") -> None:
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def local(self, value: datetime) -> datetime:
        """Convert an instant to this calendar's wall time."""
        return value.astimezone(self.tz)

    def start_of_day(self, value: datetime) -> datetime:
        local = self.local(value)
        return datetime(local.year, local.month, local.day, tzinfo=self.tz)

    def add_days(self, value: datetime, days: int) -> datetime:
        # Calendar days, so a DST shift keeps the wall time
        local = self.local(value)
        day = local.date() + timedelta(days=days)
        return datetime.combine(day, local.time(), tzinfo=self.tz)

    def add_months(self, value: datetime, months: int) -> datetime:
        """Add calendar months, clamping the day to the target month's length."""
        local = self.local(value)
        month_index = local.month - 1 + months
        year = local.year + month_index // 12
        month = month_index % 12 + 1
        day = min(local.day, monthrange(year, month)[1])
        return local.replace(year=year, month=month, day=day)

    def weekday(self, value: datetime) -> int:
        return self.local(value).isoweekday() % 7 + 1

    def is_same_day(self, first: datetime, second: datetime) -> bool:
        return self.local(first).date() == self.local(second).date()

    def set_time(self, value: datetime, hour: int, minute: int) -> datetime:
        """Return the instant at hour:minute on value's calendar day."""
        local = self.local(value)
        return datetime(local.year, local.month, local.day, hour, minute, tzinfo=self.tz)
