import calendar
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class MonthWindow:
    year: int
    month: int
    start: datetime
    end: datetime

    @property
    def month_name(self) -> str:
        return calendar.month_name[self.month]


def local_now(timezone: str) -> datetime:
    """Current wall-clock time in ``timezone``, returned naive like stored dates."""
    return datetime.now(ZoneInfo(timezone)).replace(tzinfo=None)


def resolve_month(
    year: Optional[int],
    month: Optional[int],
    *,
    today: Optional[date] = None,
) -> MonthWindow:
    today = today or date.today()
    target_year = year if year is not None else today.year
    target_month = month if month is not None else today.month
    if not 1 <= target_month <= 12:
        raise ValueError("Month must be between 1 and 12")

    last_day = calendar.monthrange(target_year, target_month)[1]
    start = datetime(target_year, target_month, 1)
    end = datetime.combine(
        date(target_year, target_month, last_day), time.max
    )
    return MonthWindow(target_year, target_month, start, end)


def to_local(value: datetime, timezone: str) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(timezone)).replace(tzinfo=None)


def parse_bound(
    value: Optional[str], timezone: str, *, end_of_day: bool = False
) -> Optional[datetime]:
    """Parse an ISO date or datetime query value.

    A bare date used as an upper bound covers the whole day.
    """
    if value is None or value == "":
        return None
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end_of_day else time.min)
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc
    return to_local(parsed, timezone)
