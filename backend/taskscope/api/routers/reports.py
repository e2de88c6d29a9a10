from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from taskscope.api.access import http_error_for
from taskscope.api.deps import get_current_caller, get_report_store
from taskscope.errors import ReportError
from taskscope.schemas.report import (
    DepartmentalPerformanceReport,
    ManualTimeReport,
    ProjectOption,
    ProjectReport,
    TaskReport,
    UserOption,
    UserProductivityReport,
)
from taskscope.services.access_scope import Caller
from taskscope.services.reports import (
    available_departments,
    available_projects,
    available_users,
    generate_departmental_performance_report,
    generate_manual_time_report,
    generate_project_report,
    generate_task_report,
    generate_user_productivity_report,
)
from taskscope.services.task_store import SqlReportStore


router = APIRouter()


@router.post("/departments", response_model=DepartmentalPerformanceReport)
async def departmental_performance_report(
    body: Any = Body(default=None),
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> DepartmentalPerformanceReport:
    try:
        return await generate_departmental_performance_report(caller, body, store)
    except ReportError as exc:
        raise http_error_for(exc)


@router.post("/tasks", response_model=TaskReport)
async def task_report(
    body: Any = Body(default=None),
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> TaskReport:
    try:
        return await generate_task_report(caller, body, store)
    except ReportError as exc:
        raise http_error_for(exc)


@router.post("/users/productivity", response_model=UserProductivityReport)
async def user_productivity_report(
    body: Any = Body(default=None),
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> UserProductivityReport:
    try:
        return await generate_user_productivity_report(caller, body, store)
    except ReportError as exc:
        raise http_error_for(exc)


@router.post("/projects", response_model=ProjectReport)
async def project_report(
    body: Any = Body(default=None),
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> ProjectReport:
    try:
        return await generate_project_report(caller, body, store)
    except ReportError as exc:
        raise http_error_for(exc)


@router.post("/time/manual", response_model=ManualTimeReport)
async def manual_time_report(
    body: Any = Body(default=None),
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> ManualTimeReport:
    try:
        return await generate_manual_time_report(caller, body, store)
    except ReportError as exc:
        raise http_error_for(exc)


@router.get("/filters/departments", response_model=list[str])
async def department_options(
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> list[str]:
    try:
        return await available_departments(caller, store)
    except ReportError as exc:
        raise http_error_for(exc)


@router.get("/filters/users", response_model=list[UserOption])
async def user_options(
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> list[UserOption]:
    try:
        return await available_users(caller, store)
    except ReportError as exc:
        raise http_error_for(exc)


@router.get("/filters/projects", response_model=list[ProjectOption])
async def project_options(
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> list[ProjectOption]:
    try:
        return await available_projects(caller, store)
    except ReportError as exc:
        raise http_error_for(exc)
