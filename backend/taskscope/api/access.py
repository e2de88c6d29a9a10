from __future__ import annotations

from fastapi import HTTPException

from taskscope.errors import ReportError


def http_error_for(exc: ReportError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
