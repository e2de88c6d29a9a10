from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Literal, Protocol

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.errors import StoreFailure
from taskscope.models.enums import TaskStatus, UserRole
from taskscope.models.project import Project
from taskscope.models.project_member import ProjectMember
from taskscope.models.task import Task
from taskscope.models.task_assignee import TaskAssignee
from taskscope.models.task_assignee_hours import TaskAssigneeHours
from taskscope.models.user import User
from taskscope.services.department_paths import DepartmentPath, parse_optional, within_any

DateField = Literal["created", "activity"]


def as_utc_date(value: datetime | date | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).date() if value.tzinfo else value.date()
    return value


@dataclass(frozen=True)
class AssigneeRef:
    user_id: uuid.UUID
    department: DepartmentPath | None = None


@dataclass(frozen=True)
class TaskRecord:
    id: uuid.UUID
    title: str
    status: TaskStatus
    priority: int | None
    project_id: uuid.UUID | None
    assignees: frozenset[AssigneeRef]
    created_at: datetime
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    deadline: date | None = None

    @property
    def assignee_ids(self) -> frozenset[uuid.UUID]:
        return frozenset(a.user_id for a in self.assignees)

    @property
    def departments(self) -> frozenset[DepartmentPath]:
        """Home departments of the assignees; the task belongs to each of them."""
        return frozenset(a.department for a in self.assignees if a.department is not None)

    def members_of(self, department: DepartmentPath) -> frozenset[uuid.UUID]:
        return frozenset(a.user_id for a in self.assignees if a.department == department)

    def closed_on(self) -> date | None:
        if self.completed_at is not None:
            return as_utc_date(self.completed_at)
        if self.status == TaskStatus.CANCELLED and self.updated_at is not None:
            return as_utc_date(self.updated_at)
        return None

    def activity_window(self) -> tuple[date, date | None]:
        """(created day, closed day) where an open task has no closed day."""
        return as_utc_date(self.created_at), self.closed_on()

    def active_between(self, start: date | None, end: date | None) -> bool:
        opened, closed = self.activity_window()
        if end is not None and opened > end:
            return False
        if start is not None and closed is not None and closed < start:
            return False
        return True


@dataclass(frozen=True)
class DirectoryUser:
    id: uuid.UUID
    name: str
    email: str
    role: UserRole
    department: DepartmentPath | None
    division: str | None = None
    hierarchy: int | None = None


@dataclass(frozen=True)
class ProjectRecord:
    id: uuid.UUID
    name: str
    creator_id: uuid.UUID | None
    member_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)


@dataclass(frozen=True)
class TaskQuery:
    # None means "not constrained"; an empty tuple/set matches nothing.
    departments: tuple[DepartmentPath, ...] | None = None
    project_ids: frozenset[uuid.UUID] | None = None
    statuses: frozenset[TaskStatus] | None = None
    priorities: frozenset[int] | None = None
    user_ids: frozenset[uuid.UUID] | None = None
    start_date: date | None = None
    end_date: date | None = None
    date_field: DateField = "created"


def task_matches(task: TaskRecord, query: TaskQuery) -> bool:
    if query.departments is not None:
        if not any(within_any(dept, query.departments) for dept in task.departments):
            return False
    if query.project_ids is not None and task.project_id not in query.project_ids:
        return False
    if query.statuses is not None and task.status not in query.statuses:
        return False
    if query.priorities is not None and task.priority not in query.priorities:
        return False
    if query.user_ids is not None and not (task.assignee_ids & query.user_ids):
        return False
    if query.date_field == "activity":
        return task.active_between(query.start_date, query.end_date)
    created = as_utc_date(task.created_at)
    if query.start_date is not None and created < query.start_date:
        return False
    if query.end_date is not None and created > query.end_date:
        return False
    return True


@dataclass(frozen=True)
class TimeEntry:
    """One assignee's manually logged hours on one task."""

    task_id: uuid.UUID
    task_title: str
    task_status: TaskStatus
    user_id: uuid.UUID
    user_name: str
    department: DepartmentPath | None
    project_id: uuid.UUID | None
    project_name: str | None
    hours: float
    logged_at: datetime


@dataclass(frozen=True)
class TimeEntryQuery:
    departments: tuple[DepartmentPath, ...] | None = None
    project_ids: frozenset[uuid.UUID] | None = None
    start_date: date | None = None
    end_date: date | None = None


def time_entry_matches(entry: TimeEntry, query: TimeEntryQuery) -> bool:
    if query.departments is not None:
        if entry.department is None or not within_any(entry.department, query.departments):
            return False
    if query.project_ids is not None and entry.project_id not in query.project_ids:
        return False
    logged = as_utc_date(entry.logged_at)
    if query.start_date is not None and logged < query.start_date:
        return False
    if query.end_date is not None and logged > query.end_date:
        return False
    return True


class TaskStore(Protocol):
    async def query_tasks(self, query: TaskQuery) -> list[TaskRecord]: ...


class DirectoryStore(Protocol):
    async def list_users(self) -> list[DirectoryUser]: ...

    async def list_projects(self) -> list[ProjectRecord]: ...

    async def known_departments(self) -> list[DepartmentPath]: ...

    async def project_ids_for_member(self, user_id: uuid.UUID) -> frozenset[uuid.UUID]: ...


class TimeStore(Protocol):
    async def query_time_entries(self, query: TimeEntryQuery) -> list[TimeEntry]: ...


class ReportStore(TaskStore, TimeStore, DirectoryStore, Protocol):
    pass


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreFailure(f"Failed to {operation}") from exc


class SqlReportStore:
    """Task and directory reads backed by the application database."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def query_tasks(self, query: TaskQuery) -> list[TaskRecord]:
        stmt = select(Task).where(Task.is_archived.is_(False))
        if query.statuses is not None:
            stmt = stmt.where(Task.status.in_(list(query.statuses)))
        if query.priorities is not None:
            stmt = stmt.where(Task.priority.in_(list(query.priorities)))
        if query.project_ids is not None:
            stmt = stmt.where(Task.project_id.in_(list(query.project_ids)))
        if query.user_ids is not None:
            stmt = stmt.where(
                Task.id.in_(select(TaskAssignee.task_id).where(TaskAssignee.user_id.in_(list(query.user_ids))))
            )
        if query.end_date is not None:
            stmt = stmt.where(Task.created_at < _day_start(query.end_date + timedelta(days=1)))
        if query.start_date is not None:
            if query.date_field == "activity":
                # Cancelled tasks without completed_at are re-checked in task_matches.
                stmt = stmt.where(or_(Task.completed_at.is_(None), Task.completed_at >= _day_start(query.start_date)))
            else:
                stmt = stmt.where(Task.created_at >= _day_start(query.start_date))
        stmt = stmt.order_by(Task.created_at.desc(), Task.id)

        with _store_errors("fetch tasks"):
            tasks = (await self.db.execute(stmt)).scalars().all()
            assignees = await self._assignees_for_tasks([t.id for t in tasks])

        records: list[TaskRecord] = []
        for t in tasks:
            record = TaskRecord(
                id=t.id,
                title=t.title,
                status=t.status,
                priority=t.priority,
                project_id=t.project_id,
                assignees=frozenset(assignees.get(t.id, ())),
                created_at=t.created_at,
                updated_at=t.updated_at,
                completed_at=t.completed_at,
                deadline=t.deadline,
            )
            if task_matches(record, query):
                records.append(record)
        return records

    async def _assignees_for_tasks(self, task_ids: list[uuid.UUID]) -> dict[uuid.UUID, list[AssigneeRef]]:
        if not task_ids:
            return {}
        rows = (
            await self.db.execute(
                select(TaskAssignee.task_id, User.id, User.department)
                .join(User, TaskAssignee.user_id == User.id)
                .where(TaskAssignee.task_id.in_(task_ids))
            )
        ).all()
        out: dict[uuid.UUID, list[AssigneeRef]] = {}
        for task_id, user_id, department in rows:
            out.setdefault(task_id, []).append(AssigneeRef(user_id=user_id, department=parse_optional(department)))
        return out

    async def list_users(self) -> list[DirectoryUser]:
        with _store_errors("fetch users"):
            users = (
                await self.db.execute(select(User).where(User.is_active.is_(True)).order_by(User.name, User.id))
            ).scalars().all()
        return [
            DirectoryUser(
                id=u.id,
                name=u.name,
                email=u.email,
                role=u.role,
                department=parse_optional(u.department),
                division=u.division,
                hierarchy=u.hierarchy,
            )
            for u in users
        ]

    async def list_projects(self) -> list[ProjectRecord]:
        with _store_errors("fetch projects"):
            projects = (await self.db.execute(select(Project).order_by(Project.name, Project.id))).scalars().all()
            member_rows = (await self.db.execute(select(ProjectMember.project_id, ProjectMember.user_id))).all()
        members: dict[uuid.UUID, set[uuid.UUID]] = {}
        for project_id, user_id in member_rows:
            members.setdefault(project_id, set()).add(user_id)
        return [
            ProjectRecord(
                id=p.id,
                name=p.name,
                creator_id=p.creator_id,
                member_ids=frozenset(members.get(p.id, ())),
            )
            for p in projects
        ]

    async def known_departments(self) -> list[DepartmentPath]:
        with _store_errors("fetch departments"):
            rows = (
                await self.db.execute(
                    select(User.department)
                    # Inactive users still own tasks, so their departments stay reportable.
                    .where(User.department.is_not(None))
                    .distinct()
                )
            ).scalars().all()
        paths = {path for path in (parse_optional(raw) for raw in rows) if path is not None}
        return sorted(paths)

    async def project_ids_for_member(self, user_id: uuid.UUID) -> frozenset[uuid.UUID]:
        with _store_errors("fetch project memberships"):
            rows = (
                await self.db.execute(select(ProjectMember.project_id).where(ProjectMember.user_id == user_id))
            ).scalars().all()
        return frozenset(rows)

    async def query_time_entries(self, query: TimeEntryQuery) -> list[TimeEntry]:
        logged_at = func.coalesce(TaskAssigneeHours.updated_at, TaskAssigneeHours.created_at)
        stmt = (
            select(
                TaskAssigneeHours.task_id,
                TaskAssigneeHours.user_id,
                TaskAssigneeHours.hours,
                logged_at.label("logged_at"),
                Task.title,
                Task.status,
                Task.project_id,
                Project.name,
                User.name,
                User.department,
            )
            .join(Task, TaskAssigneeHours.task_id == Task.id)
            .join(User, TaskAssigneeHours.user_id == User.id)
            .outerjoin(Project, Task.project_id == Project.id)
            .where(Task.is_archived.is_(False))
        )
        if query.project_ids is not None:
            stmt = stmt.where(Task.project_id.in_(list(query.project_ids)))
        if query.start_date is not None:
            stmt = stmt.where(logged_at >= _day_start(query.start_date))
        if query.end_date is not None:
            stmt = stmt.where(logged_at < _day_start(query.end_date + timedelta(days=1)))
        stmt = stmt.order_by(logged_at.desc(), TaskAssigneeHours.task_id, TaskAssigneeHours.user_id)

        with _store_errors("fetch manual time logs"):
            rows = (await self.db.execute(stmt)).all()

        entries: list[TimeEntry] = []
        for task_id, user_id, hours, logged, title, status, project_id, project_name, user_name, department in rows:
            entry = TimeEntry(
                task_id=task_id,
                task_title=title,
                task_status=status,
                user_id=user_id,
                user_name=user_name,
                department=parse_optional(department),
                project_id=project_id,
                project_name=project_name,
                hours=float(hours or 0),
                logged_at=logged,
            )
            # Department paths are matched by subtree here, not in SQL.
            if time_entry_matches(entry, query):
                entries.append(entry)
        return entries
