from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Mapping, TypeVar

from taskscope.errors import ReportValidationError
from taskscope.models.enums import ReportInterval, TaskStatus, TimeReportView
from taskscope.services.department_paths import DepartmentPath, InvalidDepartmentPath


T = TypeVar("T")

DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
MIN_PRIORITY = 1
MAX_PRIORITY = 10


@dataclass(frozen=True)
class ReportFilter:
    department_ids: tuple[DepartmentPath, ...] | None = None
    project_ids: tuple[uuid.UUID, ...] | None = None
    statuses: tuple[TaskStatus, ...] | None = None
    priorities: tuple[int, ...] | None = None
    user_ids: tuple[uuid.UUID, ...] | None = None
    start_date: date | None = None
    end_date: date | None = None
    interval: ReportInterval | None = None

    @property
    def has_range(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    def to_echo(self) -> dict[str, Any]:
        def _list(values, render=str):
            return None if values is None else [render(v) for v in values]

        return {
            "departmentIds": _list(self.department_ids),
            "projectIds": _list(self.project_ids),
            "statuses": _list(self.statuses, lambda s: s.value),
            "priorities": _list(self.priorities, int),
            "userIds": _list(self.user_ids),
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "interval": self.interval.value if self.interval else None,
        }


def _is_absent(value: Any) -> bool:
    return value is None or value == ""


def _parse_date(raw: Mapping[str, Any], key: str) -> date | None:
    value = raw.get(key)
    if _is_absent(value):
        return None
    if not isinstance(value, str) or not DATE_RE.fullmatch(value):
        raise ReportValidationError(f"Invalid {key} format. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ReportValidationError(f"Invalid {key}: {value} is not a calendar date")


def _parse_interval(value: Any) -> ReportInterval | None:
    if _is_absent(value):
        return None
    if not isinstance(value, str) or value not in {i.value for i in ReportInterval}:
        raise ReportValidationError('Invalid interval. Must be "week" or "month"')
    return ReportInterval(value)


def _parse_list(raw: Mapping[str, Any], key: str, parse_item: Callable[[Any], T]) -> tuple[T, ...] | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ReportValidationError(f"{key} must be a list")
    if not value:
        raise ReportValidationError(f"{key} must not be an empty list")
    return tuple(dict.fromkeys(parse_item(item) for item in value))


def _department_item(item: Any) -> DepartmentPath:
    try:
        return DepartmentPath(item)
    except InvalidDepartmentPath:
        raise ReportValidationError(f"departmentIds contains an invalid department path: {item!r}")


def _uuid_item(key: str) -> Callable[[Any], uuid.UUID]:
    def parse(item: Any) -> uuid.UUID:
        if isinstance(item, str):
            try:
                return uuid.UUID(item)
            except ValueError:
                pass
        raise ReportValidationError(f"{key} must contain UUID strings; got {item!r}")

    return parse


def _status_item(item: Any) -> TaskStatus:
    if isinstance(item, str):
        try:
            return TaskStatus(item)
        except ValueError:
            pass
    allowed = ", ".join(s.value for s in TaskStatus)
    raise ReportValidationError(f"Invalid status {item!r}. Must be one of: {allowed}")


def _priority_item(item: Any) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(item, bool) or not isinstance(item, int) or not MIN_PRIORITY <= item <= MAX_PRIORITY:
        raise ReportValidationError(
            f"priorities must contain integers between {MIN_PRIORITY} and {MAX_PRIORITY}; got {item!r}"
        )
    return item


def validate_report_filter(raw: Mapping[str, Any] | None) -> ReportFilter:
    """
    Validate an inbound report request body.

    Checks run in a fixed order and the first failure is raised as
    ReportValidationError with a message specific to that failure:
    date formats, date ordering, interval value, interval without a range,
    then each list-valued filter.
    """
    if raw is None:
        return ReportFilter()
    if not isinstance(raw, Mapping):
        raise ReportValidationError("Report filter must be a JSON object")

    start_date = _parse_date(raw, "startDate")
    end_date = _parse_date(raw, "endDate")
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ReportValidationError("endDate must be after or equal to startDate")

    interval = _parse_interval(raw.get("interval"))
    if interval is not None and (start_date is None or end_date is None):
        raise ReportValidationError("interval requires both startDate and endDate")

    return ReportFilter(
        department_ids=_parse_list(raw, "departmentIds", _department_item),
        project_ids=_parse_list(raw, "projectIds", _uuid_item("projectIds")),
        statuses=_parse_list(raw, "statuses", _status_item),
        priorities=_parse_list(raw, "priorities", _priority_item),
        user_ids=_parse_list(raw, "userIds", _uuid_item("userIds")),
        start_date=start_date,
        end_date=end_date,
        interval=interval,
    )


def parse_time_view(raw: Mapping[str, Any] | None) -> TimeReportView:
    """Grouping of the manual time report; project when absent."""
    value = None if raw is None else raw.get("view")
    if _is_absent(value):
        return TimeReportView.PROJECT
    if not isinstance(value, str) or value not in {v.value for v in TimeReportView}:
        raise ReportValidationError('Invalid view. Must be "project" or "department"')
    return TimeReportView(value)
