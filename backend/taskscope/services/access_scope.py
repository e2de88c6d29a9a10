from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from taskscope.errors import Forbidden, Unauthenticated
from taskscope.models.enums import UserRole
from taskscope.services.department_paths import DepartmentPath, parse_optional, within_any
from taskscope.services.task_store import DirectoryUser, ProjectRecord, TaskRecord


logger = logging.getLogger(__name__)

REPORT_ROLES: frozenset[UserRole] = frozenset({UserRole.HR, UserRole.ADMIN})


@dataclass(frozen=True, order=True)
class OrgRank:
    """
    Organizational seniority of a user.

    Higher values are more senior: a manager with rank 3 outranks staff with
    rank 1, and only users whose rank is strictly lower than the manager's
    count as subordinates.
    """

    value: int

    def outranks(self, other: "OrgRank") -> bool:
        return self.value > other.value

    def is_junior_to(self, other: "OrgRank") -> bool:
        return self.value < other.value


@dataclass(frozen=True)
class Caller:
    id: uuid.UUID
    role: UserRole
    department: DepartmentPath | None = None
    division: str | None = None
    rank: OrgRank | None = None

    @classmethod
    def from_user(cls, user) -> "Caller":
        hierarchy = getattr(user, "hierarchy", None)
        return cls(
            id=user.id,
            role=UserRole(user.role),
            department=parse_optional(getattr(user, "department", None)),
            division=getattr(user, "division", None),
            rank=OrgRank(hierarchy) if hierarchy is not None else None,
        )


@dataclass(frozen=True)
class AccessScope:
    """What one caller may report on, resolved once per request."""

    # Subtree roots; every department at or below one of them is in scope.
    departments: tuple[DepartmentPath, ...] = ()
    # None means unrestricted.
    user_ids: frozenset[uuid.UUID] | None = None
    project_ids: frozenset[uuid.UUID] | None = None

    @property
    def is_empty(self) -> bool:
        return not self.departments

    def department_rows(self, known: Iterable[DepartmentPath]) -> list[DepartmentPath]:
        rows = {dept for dept in known if within_any(dept, self.departments)}
        rows.update(self.departments)
        return sorted(rows)


def authorize(caller: Caller | None, roles: Iterable[UserRole]) -> Caller:
    if caller is None:
        raise Unauthenticated()
    allowed = frozenset(roles)
    if caller.role not in allowed:
        logger.debug("Caller %s with role %s denied; requires %s", caller.id, caller.role.value, sorted(r.value for r in allowed))
        raise Forbidden("Only HR and Admin staff can generate reports" if allowed == REPORT_ROLES else "Forbidden")
    return caller


def _dedupe(paths: Iterable[DepartmentPath]) -> tuple[DepartmentPath, ...]:
    return tuple(dict.fromkeys(paths))


def scope_departments(
    caller: Caller,
    requested: Sequence[DepartmentPath] | None,
    known: Sequence[DepartmentPath],
) -> AccessScope:
    if caller.role == UserRole.ADMIN:
        if requested:
            return AccessScope(departments=_dedupe(requested))
        return AccessScope(departments=_dedupe(sorted(known)))

    if caller.role != UserRole.HR:
        raise Forbidden("Only HR and Admin staff can generate reports")

    if caller.department is None:
        if requested:
            raise Forbidden(
                "No department is assigned to your account",
                denied=[str(dept) for dept in requested],
            )
        # Nothing the caller may see; an empty report is still a valid answer.
        return AccessScope()

    home = caller.department
    if not requested:
        return AccessScope(departments=(home,))

    denied = [str(dept) for dept in requested if not home.is_ancestor_or_self_of(dept)]
    if denied:
        raise Forbidden(
            f"Departments outside {home} are not accessible: {', '.join(denied)}",
            denied=denied,
        )
    return AccessScope(departments=_dedupe(requested))


def users_in_subtree(root: DepartmentPath, users: Iterable[DirectoryUser]) -> list[DirectoryUser]:
    return [u for u in users if u.department is not None and root.is_ancestor_or_self_of(u.department)]


def subtree_user_ids(caller: Caller, users: Iterable[DirectoryUser]) -> frozenset[uuid.UUID] | None:
    """Users an HR caller has authority over; None for admins."""
    if caller.role == UserRole.ADMIN:
        return None
    if caller.department is None:
        return frozenset()
    return frozenset(u.id for u in users_in_subtree(caller.department, users))


def scope_users(
    caller: Caller,
    requested: Sequence[uuid.UUID] | None,
    users: Sequence[DirectoryUser],
) -> frozenset[uuid.UUID] | None:
    if caller.role == UserRole.ADMIN:
        return frozenset(requested) if requested else None
    if caller.role != UserRole.HR:
        raise Forbidden("Only HR and Admin staff can generate reports")
    allowed = subtree_user_ids(caller, users)
    if not requested:
        return allowed
    denied = [str(user_id) for user_id in requested if user_id not in allowed]
    if denied:
        raise Forbidden("Users outside your department are not accessible", denied=denied)
    return frozenset(requested)


def projects_for_users(projects: Iterable[ProjectRecord], user_ids: frozenset[uuid.UUID]) -> list[ProjectRecord]:
    return [p for p in projects if p.creator_id in user_ids or p.member_ids & user_ids]


def scope_projects(
    caller: Caller,
    requested: Sequence[uuid.UUID] | None,
    projects: Sequence[ProjectRecord],
    allowed_user_ids: frozenset[uuid.UUID] | None,
) -> frozenset[uuid.UUID] | None:
    if caller.role == UserRole.ADMIN or allowed_user_ids is None:
        return frozenset(requested) if requested else None

    allowed = frozenset(p.id for p in projects_for_users(projects, allowed_user_ids))
    if not requested:
        return allowed
    denied = [str(project_id) for project_id in requested if project_id not in allowed]
    if denied:
        raise Forbidden("Projects outside your department are not accessible", denied=denied)
    return frozenset(requested)


@dataclass(frozen=True)
class TaskVisibility:
    unrestricted: bool = False
    user_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    project_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)


def subordinates_of(manager: Caller, users: Iterable[DirectoryUser]) -> list[DirectoryUser]:
    if manager.rank is None or manager.division is None:
        return []
    out: list[DirectoryUser] = []
    for user in users:
        if user.id == manager.id or user.division != manager.division or user.hierarchy is None:
            continue
        if OrgRank(user.hierarchy).is_junior_to(manager.rank):
            out.append(user)
    return out


def resolve_task_visibility(
    caller: Caller | None,
    users: Sequence[DirectoryUser],
    member_project_ids: frozenset[uuid.UUID] = frozenset(),
) -> TaskVisibility:
    if caller is None:
        raise Unauthenticated()
    if caller.role == UserRole.ADMIN:
        return TaskVisibility(unrestricted=True)

    own = frozenset({caller.id})
    if caller.role == UserRole.HR:
        if caller.department is None:
            return TaskVisibility(user_ids=own)
        return TaskVisibility(user_ids=own | {u.id for u in users_in_subtree(caller.department, users)})
    if caller.role == UserRole.MANAGER:
        return TaskVisibility(user_ids=own | {u.id for u in subordinates_of(caller, users)})
    return TaskVisibility(user_ids=own, project_ids=member_project_ids)


def task_is_visible(task: TaskRecord, visibility: TaskVisibility) -> bool:
    if visibility.unrestricted:
        return True
    if task.assignee_ids & visibility.user_ids:
        return True
    return task.project_id is not None and task.project_id in visibility.project_ids
