from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from taskscope.models.enums import ReportType, TaskStatus, TimeReportView, UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class DepartmentStats(CamelModel):
    department: str
    total_tasks: int
    member_count: int
    status_counts: dict[str, int]
    priority_counts: dict[str, int]
    completion_rate: int
    average_tasks_per_member: float


class DepartmentSummary(CamelModel):
    total_departments: int
    total_tasks: int
    total_members: int
    average_completion_rate: int
    overall_status_counts: dict[str, int]
    overall_priority_counts: dict[str, int]


class TimeSeriesBucket(CamelModel):
    period: str
    start_date: date
    end_date: date
    total_tasks: int
    status_counts: dict[str, int]
    priority_counts: dict[str, int]
    completion_rate: int


class DepartmentInsights(CamelModel):
    most_productive_department: str | None = None
    least_productive_department: str | None = None
    highest_workload_department: str | None = None


class ReportEnvelope(CamelModel):
    filters: dict[str, Any]
    generated_at: datetime
    generated_by: uuid.UUID
    report_type: ReportType


class DepartmentalPerformanceReport(ReportEnvelope):
    summary: DepartmentSummary
    departments: list[DepartmentStats]
    time_series: list[TimeSeriesBucket] | None = None
    insights: DepartmentInsights


class TaskSummary(CamelModel):
    total_tasks: int
    by_status: dict[str, int]
    by_priority: dict[str, int]


class TaskRow(CamelModel):
    id: uuid.UUID
    title: str
    status: TaskStatus
    priority: int | None = None
    project_id: uuid.UUID | None = None
    assignee_ids: list[uuid.UUID]
    departments: list[str]
    deadline: date | None = None
    created_at: datetime
    completed_at: datetime | None = None


class TaskReport(ReportEnvelope):
    summary: TaskSummary
    tasks: list[TaskRow]
    department: str | None = None


class UserStats(CamelModel):
    user_id: uuid.UUID
    user_name: str
    user_email: str
    department: str | None = None
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    pending_tasks: int
    completion_rate: int


class UserProductivitySummary(CamelModel):
    total_users: int
    average_completion_rate: int


class UserProductivityReport(ReportEnvelope):
    summary: UserProductivitySummary
    users: list[UserStats]


class ProjectStats(CamelModel):
    project_id: uuid.UUID
    project_name: str
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    pending_tasks: int
    progress_percentage: int


class ProjectReportSummary(CamelModel):
    total_projects: int
    average_progress: int


class ProjectReport(ReportEnvelope):
    summary: ProjectReportSummary
    projects: list[ProjectStats]


class UserOption(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    department: str | None = None
    role: UserRole


class ProjectOption(CamelModel):
    id: uuid.UUID
    name: str


class ManualTimeProjectRow(CamelModel):
    project_id: uuid.UUID
    project_name: str
    total_hours: float
    user_count: int
    avg_hours_per_user: float


class ManualTimeDepartmentRow(CamelModel):
    department: str
    total_hours: float
    user_count: int
    avg_hours_per_user: float


class ManualTimeSummary(CamelModel):
    total_hours: float
    total_users: int
    by_project: list[ManualTimeProjectRow]
    by_department: list[ManualTimeDepartmentRow]


class ManualTimeEntryRow(CamelModel):
    task_id: uuid.UUID
    task_title: str
    task_status: TaskStatus
    project_id: uuid.UUID | None = None
    project_name: str | None = None
    user_id: uuid.UUID
    user_name: str
    department: str | None = None
    hours: float
    logged_at: datetime


class ManualTimeReport(ReportEnvelope):
    summary: ManualTimeSummary
    entries: list[ManualTimeEntryRow]
    view: TimeReportView
