from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from taskscope.models.enums import ReportInterval


@dataclass(frozen=True)
class Period:
    label: str
    start: date
    end: date

    def overlaps(self, opened: date, closed: date | None) -> bool:
        return opened <= self.end and (closed is None or closed >= self.start)


def iso_week_label(day: date) -> str:
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def month_label(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def _week_end(day: date) -> date:
    return day + timedelta(days=6 - day.weekday())


def _month_end(day: date) -> date:
    return date(day.year, day.month, calendar.monthrange(day.year, day.month)[1])


def iter_periods(start: date, end: date, interval: ReportInterval) -> list[Period]:
    """
    Split [start, end] into consecutive ISO weeks or calendar months.

    The first and last buckets are clipped to the range, so the buckets
    cover every day of the range exactly once.
    """
    if end < start:
        return []
    label_for = iso_week_label if interval == ReportInterval.WEEK else month_label
    bucket_end = _week_end if interval == ReportInterval.WEEK else _month_end

    periods: list[Period] = []
    current = start
    while current <= end:
        last = min(bucket_end(current), end)
        periods.append(Period(label=label_for(current), start=current, end=last))
        current = last + timedelta(days=1)
    return periods
