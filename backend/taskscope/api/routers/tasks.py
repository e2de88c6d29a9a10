from __future__ import annotations

from fastapi import APIRouter, Depends

from taskscope.api.access import http_error_for
from taskscope.api.deps import get_current_caller, get_report_store
from taskscope.errors import ReportError
from taskscope.schemas.report import TaskRow
from taskscope.services.access_scope import Caller
from taskscope.services.reports import list_visible_tasks
from taskscope.services.task_store import SqlReportStore


router = APIRouter()


@router.get("/visible", response_model=list[TaskRow])
async def visible_tasks(
    caller: Caller | None = Depends(get_current_caller),
    store: SqlReportStore = Depends(get_report_store),
) -> list[TaskRow]:
    try:
        return await list_visible_tasks(caller, store)
    except ReportError as exc:
        raise http_error_for(exc)
