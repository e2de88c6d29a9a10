from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    STAFF = "staff"
    MANAGER = "manager"
    HR = "hr"
    ADMIN = "admin"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


class PriorityBucket(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReportInterval(str, enum.Enum):
    WEEK = "week"
    MONTH = "month"


class ReportType(str, enum.Enum):
    DEPARTMENTAL_PERFORMANCE = "departmental_performance"
    TASK = "task"
    USER_PRODUCTIVITY = "user_productivity"
    PROJECT = "project"
    MANUAL_TIME = "manual_time"


class TimeReportView(str, enum.Enum):
    PROJECT = "project"
    DEPARTMENT = "department"
