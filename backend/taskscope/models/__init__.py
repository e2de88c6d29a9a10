from taskscope.models.project import Project
from taskscope.models.project_member import ProjectMember
from taskscope.models.task import Task
from taskscope.models.task_assignee import TaskAssignee
from taskscope.models.task_assignee_hours import TaskAssigneeHours
from taskscope.models.user import User

__all__ = [
    "Project",
    "ProjectMember",
    "Task",
    "TaskAssignee",
    "TaskAssigneeHours",
    "User",
]
