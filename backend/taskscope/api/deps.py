from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.auth.security import subject_id
from taskscope.db import get_db
from taskscope.models.user import User
from taskscope.services.access_scope import Caller
from taskscope.services.task_store import SqlReportStore


logger = logging.getLogger(__name__)

http_bearer = HTTPBearer(auto_error=False)


async def get_current_caller(
    db: AsyncSession = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
) -> Caller | None:
    """
    Resolve the bearer token to a Caller.

    Returns None for a missing, invalid or inactive identity; the report
    operations turn an absent caller into 401 themselves.
    """
    if credentials is None or not credentials.credentials:
        return None

    try:
        user_id = subject_id(credentials.credentials)
    except ValueError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    return Caller.from_user(user)


async def get_report_store(db: AsyncSession = Depends(get_db)) -> AsyncIterator[SqlReportStore]:
    yield SqlReportStore(db)
