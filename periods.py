from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional


@dataclass(frozen=True)
class Period:
    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_before(self) -> datetime:
        """Exclusive upper bound: midnight of the day after ``end``."""
        return datetime.combine(self.end + timedelta(days=1), time.min)


def month_period(year: int, month: int) -> Period:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    first = date(year, month, 1)
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return Period(first, next_month - date.resolution)


def year_period(year: int) -> Period:
    return Period(date(year, 1, 1), date(year, 12, 31))


def day_bounds(
    start: Optional[date], end: Optional[date]
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive calendar days turned into a half-open datetime window."""
    start_at = datetime.combine(start, time.min) if start else None
    end_before = (
        datetime.combine(end + timedelta(days=1), time.min) if end else None
    )
    return start_at, end_before
