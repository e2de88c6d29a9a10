from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping, TypeVar

from taskscope.errors import Forbidden, ReportValidationError, StoreFailure, Unauthenticated
from taskscope.models.enums import ReportType, UserRole
from taskscope.schemas.report import (
    DepartmentalPerformanceReport,
    ManualTimeEntryRow,
    ManualTimeReport,
    ProjectOption,
    ProjectReport,
    ProjectReportSummary,
    TaskReport,
    TaskRow,
    UserOption,
    UserProductivityReport,
    UserProductivitySummary,
)
from taskscope.services.access_scope import (
    REPORT_ROLES,
    Caller,
    authorize,
    projects_for_users,
    resolve_task_visibility,
    scope_departments,
    scope_projects,
    scope_users,
    subtree_user_ids,
    task_is_visible,
    users_in_subtree,
)
from taskscope.services.department_paths import filter_to_subtree
from taskscope.services.report_aggregation import (
    aggregate_departments,
    mean_rounded,
    project_stats,
    summarize_manual_time,
    task_summary,
    user_stats,
)
from taskscope.services.report_filters import ReportFilter, parse_time_view, validate_report_filter
from taskscope.services.task_store import ReportStore, TaskQuery, TaskRecord, TimeEntry, TimeEntryQuery


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sorted_ids(values: Iterable | None) -> list[str] | None:
    return None if values is None else sorted(str(v) for v in values)


def _optional_set(values) -> frozenset | None:
    return None if values is None else frozenset(values)


@contextmanager
def _report_failures(report_type: ReportType, caller: Caller) -> Iterator[None]:
    try:
        yield
    except Forbidden as exc:
        logger.debug("Report %s for caller %s denied: %s", report_type.value, caller.id, exc.message)
        raise
    except StoreFailure:
        logger.exception("Report %s for caller %s failed on the data store", report_type.value, caller.id)
        raise


def _validate(
    caller: Caller,
    raw_filter: Mapping[str, Any] | None,
    parse: Callable[[Mapping[str, Any] | None], T] = validate_report_filter,
) -> T:
    try:
        return parse(raw_filter)
    except ReportValidationError as exc:
        logger.debug("Rejected report filter from %s: %s", caller.id, exc.message)
        raise


def task_row(task: TaskRecord) -> TaskRow:
    return TaskRow(
        id=task.id,
        title=task.title,
        status=task.status,
        priority=task.priority,
        project_id=task.project_id,
        assignee_ids=sorted(task.assignee_ids, key=str),
        departments=sorted(str(d) for d in task.departments),
        deadline=task.deadline,
        created_at=task.created_at,
        completed_at=task.completed_at,
    )


def time_entry_row(entry: TimeEntry) -> ManualTimeEntryRow:
    return ManualTimeEntryRow(
        task_id=entry.task_id,
        task_title=entry.task_title,
        task_status=entry.task_status,
        project_id=entry.project_id,
        project_name=entry.project_name,
        user_id=entry.user_id,
        user_name=entry.user_name,
        department=str(entry.department) if entry.department else None,
        hours=entry.hours,
        logged_at=entry.logged_at,
    )


def _newest_first(tasks: Iterable[TaskRecord]) -> list[TaskRecord]:
    return sorted(tasks, key=lambda t: (t.created_at, str(t.id)), reverse=True)


async def generate_departmental_performance_report(
    caller: Caller | None,
    raw_filter: Mapping[str, Any] | None,
    store: ReportStore,
    *,
    now: datetime | None = None,
) -> DepartmentalPerformanceReport:
    """
    Department-by-department performance for HR and admins.

    HR callers are limited to their own department subtree; asking for any
    department outside it rejects the whole request rather than narrowing it.
    """
    caller = authorize(caller, REPORT_ROLES)
    report_filter = _validate(caller, raw_filter)
    report_type = ReportType.DEPARTMENTAL_PERFORMANCE

    with _report_failures(report_type, caller):
        # HR scoping needs no directory lookup, so a rejected request never touches the store.
        known = await store.known_departments() if caller.role == UserRole.ADMIN else None
        scope = scope_departments(caller, report_filter.department_ids, known or [])
        aggregate = await aggregate_departments(scope, report_filter, store, known=known)

    filters = report_filter.to_echo()
    filters["departmentIds"] = [str(d) for d in scope.departments]
    logger.info(
        "Generated %s report for %s (%d departments, %d tasks)",
        report_type.value,
        caller.id,
        aggregate.summary.total_departments,
        aggregate.summary.total_tasks,
    )
    return DepartmentalPerformanceReport(
        summary=aggregate.summary,
        departments=aggregate.departments,
        time_series=aggregate.time_series,
        insights=aggregate.insights,
        filters=filters,
        generated_at=now or _utcnow(),
        generated_by=caller.id,
        report_type=report_type,
    )


async def _scoped_people_and_projects(caller: Caller, report_filter: ReportFilter, store: ReportStore):
    users = await store.list_users()
    projects = await store.list_projects()
    user_scope = scope_users(caller, report_filter.user_ids, users)
    # Project authority comes from the whole subtree, not just the users picked in the filter.
    project_scope = scope_projects(caller, report_filter.project_ids, projects, subtree_user_ids(caller, users))
    return users, projects, user_scope, project_scope


async def generate_task_report(
    caller: Caller | None,
    raw_filter: Mapping[str, Any] | None,
    store: ReportStore,
    *,
    now: datetime | None = None,
) -> TaskReport:
    caller = authorize(caller, REPORT_ROLES)
    report_filter = _validate(caller, raw_filter)
    report_type = ReportType.TASK

    with _report_failures(report_type, caller):
        department_scope = None
        if report_filter.department_ids is not None:
            department_scope = scope_departments(caller, report_filter.department_ids, []).departments
        _, _, user_scope, project_scope = await _scoped_people_and_projects(caller, report_filter, store)
        if report_filter.project_ids is None:
            # The user scope already bounds HR callers; tasks without a project stay in.
            project_scope = None
        tasks = await store.query_tasks(
            TaskQuery(
                departments=department_scope,
                project_ids=project_scope,
                statuses=_optional_set(report_filter.statuses),
                priorities=_optional_set(report_filter.priorities),
                user_ids=user_scope,
                start_date=report_filter.start_date,
                end_date=report_filter.end_date,
                date_field="created",
            )
        )

    tasks = _newest_first(tasks)
    filters = report_filter.to_echo()
    filters["userIds"] = _sorted_ids(user_scope)
    filters["projectIds"] = _sorted_ids(project_scope)
    logger.info("Generated %s report for %s (%d tasks)", report_type.value, caller.id, len(tasks))
    return TaskReport(
        summary=task_summary(tasks),
        tasks=[task_row(t) for t in tasks],
        department=str(caller.department) if caller.department else None,
        filters=filters,
        generated_at=now or _utcnow(),
        generated_by=caller.id,
        report_type=report_type,
    )


async def generate_user_productivity_report(
    caller: Caller | None,
    raw_filter: Mapping[str, Any] | None,
    store: ReportStore,
    *,
    now: datetime | None = None,
) -> UserProductivityReport:
    caller = authorize(caller, REPORT_ROLES)
    report_filter = _validate(caller, raw_filter)
    report_type = ReportType.USER_PRODUCTIVITY

    with _report_failures(report_type, caller):
        users = await store.list_users()
        user_scope = scope_users(caller, report_filter.user_ids, users)
        targets = [u for u in users if user_scope is None or u.id in user_scope]
        tasks: list[TaskRecord] = []
        if targets:
            tasks = await store.query_tasks(
                TaskQuery(
                    project_ids=_optional_set(report_filter.project_ids),
                    statuses=_optional_set(report_filter.statuses),
                    priorities=_optional_set(report_filter.priorities),
                    user_ids=frozenset(u.id for u in targets),
                    start_date=report_filter.start_date,
                    end_date=report_filter.end_date,
                    date_field="created",
                )
            )

    stats = [user_stats(u, tasks) for u in targets]
    filters = report_filter.to_echo()
    filters["userIds"] = [str(u.id) for u in targets]
    logger.info("Generated %s report for %s (%d users)", report_type.value, caller.id, len(stats))
    return UserProductivityReport(
        summary=UserProductivitySummary(
            total_users=len(stats),
            average_completion_rate=mean_rounded([s.completion_rate for s in stats]),
        ),
        users=stats,
        filters=filters,
        generated_at=now or _utcnow(),
        generated_by=caller.id,
        report_type=report_type,
    )


async def generate_project_report(
    caller: Caller | None,
    raw_filter: Mapping[str, Any] | None,
    store: ReportStore,
    *,
    now: datetime | None = None,
) -> ProjectReport:
    caller = authorize(caller, REPORT_ROLES)
    report_filter = _validate(caller, raw_filter)
    report_type = ReportType.PROJECT

    with _report_failures(report_type, caller):
        _, projects, _, project_scope = await _scoped_people_and_projects(caller, report_filter, store)
        targets = [p for p in projects if project_scope is None or p.id in project_scope]
        tasks: list[TaskRecord] = []
        if targets:
            tasks = await store.query_tasks(
                TaskQuery(
                    project_ids=frozenset(p.id for p in targets),
                    statuses=_optional_set(report_filter.statuses),
                    priorities=_optional_set(report_filter.priorities),
                    start_date=report_filter.start_date,
                    end_date=report_filter.end_date,
                    date_field="created",
                )
            )

    stats = [project_stats(p, tasks) for p in targets]
    filters = report_filter.to_echo()
    filters["projectIds"] = [str(p.id) for p in targets]
    logger.info("Generated %s report for %s (%d projects)", report_type.value, caller.id, len(stats))
    return ProjectReport(
        summary=ProjectReportSummary(
            total_projects=len(stats),
            average_progress=mean_rounded([s.progress_percentage for s in stats]),
        ),
        projects=stats,
        filters=filters,
        generated_at=now or _utcnow(),
        generated_by=caller.id,
        report_type=report_type,
    )


async def generate_manual_time_report(
    caller: Caller | None,
    raw_filter: Mapping[str, Any] | None,
    store: ReportStore,
    *,
    now: datetime | None = None,
) -> ManualTimeReport:
    """
    Hours assignees logged by hand, grouped by project or by department.

    Only departmentIds, projectIds, startDate, endDate and view narrow this
    report; the date range applies to the day the hours were last logged.
    HR callers are held to their subtree the same way as the other reports.
    """
    caller = authorize(caller, REPORT_ROLES)
    report_filter = _validate(caller, raw_filter)
    view = _validate(caller, raw_filter, parse_time_view)
    report_type = ReportType.MANUAL_TIME

    with _report_failures(report_type, caller):
        departments = None
        if caller.role != UserRole.ADMIN or report_filter.department_ids is not None:
            departments = scope_departments(caller, report_filter.department_ids, []).departments
        project_ids = None
        if report_filter.project_ids is not None:
            users, projects = [], []
            if caller.role != UserRole.ADMIN:
                users = await store.list_users()
                projects = await store.list_projects()
            allowed_users = subtree_user_ids(caller, users)
            project_ids = scope_projects(caller, report_filter.project_ids, projects, allowed_users)

        entries: list[TimeEntry] = []
        # An HR caller without a department has an empty scope.
        if departments != ():
            entries = await store.query_time_entries(
                TimeEntryQuery(
                    departments=departments,
                    project_ids=project_ids,
                    start_date=report_filter.start_date,
                    end_date=report_filter.end_date,
                )
            )

    summary = summarize_manual_time(entries)
    filters = {
        "departmentIds": None if departments is None else [str(d) for d in departments],
        "projectIds": _sorted_ids(project_ids),
        "startDate": report_filter.start_date.isoformat() if report_filter.start_date else None,
        "endDate": report_filter.end_date.isoformat() if report_filter.end_date else None,
        "view": view.value,
    }
    logger.info(
        "Generated %s report for %s (%d entries, %s hours)",
        report_type.value,
        caller.id,
        len(entries),
        summary.total_hours,
    )
    return ManualTimeReport(
        summary=summary,
        entries=[time_entry_row(e) for e in entries],
        view=view,
        filters=filters,
        generated_at=now or _utcnow(),
        generated_by=caller.id,
        report_type=report_type,
    )


async def available_departments(caller: Caller | None, store: ReportStore) -> list[str]:
    caller = authorize(caller, REPORT_ROLES)
    known = await store.known_departments()
    if caller.role == UserRole.ADMIN:
        return [str(d) for d in known]
    if caller.department is None:
        return []
    return [str(d) for d in filter_to_subtree(caller.department, known)]


async def available_users(caller: Caller | None, store: ReportStore) -> list[UserOption]:
    caller = authorize(caller, REPORT_ROLES)
    users = await store.list_users()
    if caller.role != UserRole.ADMIN:
        users = users_in_subtree(caller.department, users) if caller.department else []
    return [
        UserOption(
            id=u.id,
            name=u.name,
            email=u.email,
            department=str(u.department) if u.department else None,
            role=u.role,
        )
        for u in users
    ]


async def available_projects(caller: Caller | None, store: ReportStore) -> list[ProjectOption]:
    caller = authorize(caller, REPORT_ROLES)
    projects = await store.list_projects()
    if caller.role != UserRole.ADMIN:
        allowed = frozenset()
        if caller.department is not None:
            allowed = frozenset(u.id for u in users_in_subtree(caller.department, await store.list_users()))
        projects = projects_for_users(projects, allowed)
    return [ProjectOption(id=p.id, name=p.name) for p in projects]


async def list_visible_tasks(caller: Caller | None, store: ReportStore) -> list[TaskRow]:
    """Tasks the caller may see on the board, for every role."""
    if caller is None:
        raise Unauthenticated()

    users = []
    if caller.role in (UserRole.HR, UserRole.MANAGER):
        users = await store.list_users()
    memberships = frozenset()
    if caller.role == UserRole.STAFF:
        memberships = await store.project_ids_for_member(caller.id)
    visibility = resolve_task_visibility(caller, users, memberships)

    if visibility.unrestricted:
        tasks = await store.query_tasks(TaskQuery())
    else:
        found = {t.id: t for t in await store.query_tasks(TaskQuery(user_ids=visibility.user_ids))}
        if visibility.project_ids:
            for t in await store.query_tasks(TaskQuery(project_ids=visibility.project_ids)):
                found.setdefault(t.id, t)
        tasks = list(found.values())

    return [task_row(t) for t in _newest_first(tasks) if task_is_visible(t, visibility)]
