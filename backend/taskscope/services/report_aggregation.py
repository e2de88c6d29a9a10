from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

from taskscope.models.enums import PriorityBucket, ReportInterval, TaskStatus
from taskscope.schemas.report import (
    DepartmentInsights,
    DepartmentStats,
    DepartmentSummary,
    ManualTimeDepartmentRow,
    ManualTimeProjectRow,
    ManualTimeSummary,
    ProjectStats,
    TaskSummary,
    TimeSeriesBucket,
    UserStats,
)
from taskscope.services.access_scope import AccessScope
from taskscope.services.department_paths import DepartmentPath
from taskscope.services.report_filters import ReportFilter
from taskscope.services.report_periods import iter_periods
from taskscope.services.task_store import (
    DirectoryUser,
    ProjectRecord,
    ReportStore,
    TaskQuery,
    TaskRecord,
    TimeEntry,
)


DEFAULT_PRIORITY = 5


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def percentage(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(round_half_up(part / total * 100))


def mean_rounded(values: Sequence[int]) -> int:
    if not values:
        return 0
    return int(round_half_up(sum(values) / len(values)))


def priority_bucket(priority: int | None) -> PriorityBucket | None:
    value = DEFAULT_PRIORITY if priority is None else priority
    if 1 <= value <= 3:
        return PriorityBucket.LOW
    if 4 <= value <= 6:
        return PriorityBucket.MEDIUM
    if 7 <= value <= 10:
        return PriorityBucket.HIGH
    return None


def status_counts(tasks: Iterable[TaskRecord]) -> dict[str, int]:
    counts = {s.value: 0 for s in TaskStatus}
    for task in tasks:
        counts[TaskStatus(task.status).value] += 1
    return counts


def priority_counts(tasks: Iterable[TaskRecord]) -> dict[str, int]:
    counts = {b.value: 0 for b in PriorityBucket}
    for task in tasks:
        bucket = priority_bucket(task.priority)
        if bucket is not None:
            counts[bucket.value] += 1
    return counts


def completion_rate(tasks: Sequence[TaskRecord]) -> int:
    completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    return percentage(completed, len(tasks))


def _sum_counts(rows: Iterable[dict[str, int]], keys: Iterable[str]) -> dict[str, int]:
    totals = {key: 0 for key in keys}
    for row in rows:
        for key, value in row.items():
            totals[key] += value
    return totals


def tasks_in_department(tasks: Iterable[TaskRecord], department: DepartmentPath) -> list[TaskRecord]:
    return [t for t in tasks if department in t.departments]


def department_members(tasks: Iterable[TaskRecord], department: DepartmentPath) -> set:
    members: set = set()
    for task in tasks:
        members |= task.members_of(department)
    return members


def department_stats(department: DepartmentPath, tasks: Sequence[TaskRecord]) -> DepartmentStats:
    """Statistics for one literal department path; tasks of child departments are not folded in."""
    dept_tasks = tasks_in_department(tasks, department)
    members = department_members(dept_tasks, department)
    total = len(dept_tasks)
    return DepartmentStats(
        department=str(department),
        total_tasks=total,
        member_count=len(members),
        status_counts=status_counts(dept_tasks),
        priority_counts=priority_counts(dept_tasks),
        completion_rate=completion_rate(dept_tasks),
        average_tasks_per_member=round_half_up(total / len(members), 1) if members else 0,
    )


def summarize_departments(
    rows: Sequence[DepartmentStats],
    tasks: Sequence[TaskRecord],
    departments: Sequence[DepartmentPath],
) -> DepartmentSummary:
    members: set = set()
    for department in departments:
        members |= department_members(tasks, department)
    return DepartmentSummary(
        total_departments=len(rows),
        total_tasks=sum(row.total_tasks for row in rows),
        total_members=len(members),
        # Unweighted: every department counts once regardless of its size.
        average_completion_rate=mean_rounded([row.completion_rate for row in rows]),
        overall_status_counts=_sum_counts((row.status_counts for row in rows), (s.value for s in TaskStatus)),
        overall_priority_counts=_sum_counts((row.priority_counts for row in rows), (b.value for b in PriorityBucket)),
    )


def time_series(
    tasks: Sequence[TaskRecord],
    start: date,
    end: date,
    interval: ReportInterval,
) -> list[TimeSeriesBucket]:
    buckets: list[TimeSeriesBucket] = []
    for period in iter_periods(start, end, interval):
        in_period = [t for t in tasks if period.overlaps(*t.activity_window())]
        buckets.append(
            TimeSeriesBucket(
                period=period.label,
                start_date=period.start,
                end_date=period.end,
                total_tasks=len(in_period),
                status_counts=status_counts(in_period),
                priority_counts=priority_counts(in_period),
                completion_rate=completion_rate(in_period),
            )
        )
    return buckets


def department_insights(rows: Sequence[DepartmentStats]) -> DepartmentInsights:
    if not rows:
        return DepartmentInsights()
    # Ties go to the alphabetically earliest department.
    by_name = sorted(rows, key=lambda row: row.department)
    most = max(by_name, key=lambda row: row.completion_rate)
    least = min(by_name, key=lambda row: row.completion_rate)
    busiest = max(by_name, key=lambda row: row.total_tasks)
    return DepartmentInsights(
        most_productive_department=most.department,
        least_productive_department=least.department,
        highest_workload_department=busiest.department,
    )


@dataclass(frozen=True)
class DepartmentAggregate:
    summary: DepartmentSummary
    departments: list[DepartmentStats]
    time_series: list[TimeSeriesBucket] | None
    insights: DepartmentInsights
    department_rows: tuple[DepartmentPath, ...]


def _optional_set(values) -> frozenset | None:
    return None if values is None else frozenset(values)


async def aggregate_departments(
    scope: AccessScope,
    report_filter: ReportFilter,
    store: ReportStore,
    known: Sequence[DepartmentPath] | None = None,
) -> DepartmentAggregate:
    """
    Reduce every task in the caller's department scope into the departmental
    performance statistics. The date range matches the task activity window
    (created until closed), not the deadline. Pass `known` when the
    directory listing was already fetched.
    """
    wants_series = report_filter.interval is not None and report_filter.has_range

    if scope.is_empty:
        tasks: list[TaskRecord] = []
        rows_paths: list[DepartmentPath] = []
    else:
        if known is None:
            known = await store.known_departments()
        rows_paths = scope.department_rows(known)
        tasks = await store.query_tasks(
            TaskQuery(
                departments=scope.departments,
                project_ids=_optional_set(report_filter.project_ids),
                statuses=_optional_set(report_filter.statuses),
                priorities=_optional_set(report_filter.priorities),
                user_ids=_optional_set(report_filter.user_ids),
                start_date=report_filter.start_date,
                end_date=report_filter.end_date,
                date_field="activity",
            )
        )

    rows = [department_stats(path, tasks) for path in rows_paths]
    series = None
    if wants_series:
        series = time_series(tasks, report_filter.start_date, report_filter.end_date, report_filter.interval)
    return DepartmentAggregate(
        summary=summarize_departments(rows, tasks, rows_paths),
        departments=rows,
        time_series=series,
        insights=department_insights(rows),
        department_rows=tuple(rows_paths),
    )


def task_summary(tasks: Sequence[TaskRecord]) -> TaskSummary:
    return TaskSummary(
        total_tasks=len(tasks),
        by_status=status_counts(tasks),
        by_priority=priority_counts(tasks),
    )


def _status_total(tasks: Iterable[TaskRecord], status: TaskStatus) -> int:
    return sum(1 for t in tasks if t.status == status)


def user_stats(user: DirectoryUser, tasks: Sequence[TaskRecord]) -> UserStats:
    user_tasks = [t for t in tasks if user.id in t.assignee_ids]
    return UserStats(
        user_id=user.id,
        user_name=user.name,
        user_email=user.email,
        department=str(user.department) if user.department else None,
        total_tasks=len(user_tasks),
        completed_tasks=_status_total(user_tasks, TaskStatus.COMPLETED),
        in_progress_tasks=_status_total(user_tasks, TaskStatus.IN_PROGRESS),
        pending_tasks=_status_total(user_tasks, TaskStatus.PENDING),
        completion_rate=completion_rate(user_tasks),
    )


def project_stats(project: ProjectRecord, tasks: Sequence[TaskRecord]) -> ProjectStats:
    project_tasks = [t for t in tasks if t.project_id == project.id]
    return ProjectStats(
        project_id=project.id,
        project_name=project.name,
        total_tasks=len(project_tasks),
        completed_tasks=_status_total(project_tasks, TaskStatus.COMPLETED),
        in_progress_tasks=_status_total(project_tasks, TaskStatus.IN_PROGRESS),
        pending_tasks=_status_total(project_tasks, TaskStatus.PENDING),
        progress_percentage=completion_rate(project_tasks),
    )


UNKNOWN_PROJECT = "Unknown Project"


def hours_rounded(value: float) -> float:
    return round_half_up(value, 2)


def _per_user_average(total: float, users: set) -> float:
    return hours_rounded(total / len(users)) if users else 0.0


def summarize_manual_time(entries: Sequence[TimeEntry]) -> ManualTimeSummary:
    """
    Totals of manually logged hours, grouped by project and by the logging
    user's home department. Entries without a project (or without a
    department) still count toward the overall total. Groups are ordered by
    hours, largest first.
    """
    project_hours: dict = {}
    project_names: dict = {}
    project_users: dict = {}
    department_hours: dict[DepartmentPath, float] = {}
    department_users: dict[DepartmentPath, set] = {}

    for entry in entries:
        if entry.project_id is not None:
            project_hours[entry.project_id] = project_hours.get(entry.project_id, 0.0) + entry.hours
            project_users.setdefault(entry.project_id, set()).add(entry.user_id)
            if entry.project_name or entry.project_id not in project_names:
                project_names[entry.project_id] = entry.project_name or UNKNOWN_PROJECT
        if entry.department is not None:
            department_hours[entry.department] = department_hours.get(entry.department, 0.0) + entry.hours
            department_users.setdefault(entry.department, set()).add(entry.user_id)

    by_project = [
        ManualTimeProjectRow(
            project_id=project_id,
            project_name=project_names[project_id],
            total_hours=hours_rounded(total),
            user_count=len(project_users[project_id]),
            avg_hours_per_user=_per_user_average(total, project_users[project_id]),
        )
        for project_id, total in project_hours.items()
    ]
    by_project.sort(key=lambda row: (-row.total_hours, row.project_name, str(row.project_id)))

    by_department = [
        ManualTimeDepartmentRow(
            department=str(department),
            total_hours=hours_rounded(total),
            user_count=len(department_users[department]),
            avg_hours_per_user=_per_user_average(total, department_users[department]),
        )
        for department, total in department_hours.items()
    ]
    by_department.sort(key=lambda row: (-row.total_hours, row.department))

    return ManualTimeSummary(
        total_hours=hours_rounded(sum(entry.hours for entry in entries)),
        total_users=len({entry.user_id for entry in entries}),
        by_project=by_project,
        by_department=by_department,
    )
