import unittest
from datetime import datetime, timezone

from report_fakes import InMemoryReportStore, admin_caller, hr_caller, make_project, make_task, make_user

from taskscope.errors import Forbidden
from taskscope.models.enums import ReportType, TaskStatus
from taskscope.services.reports import (
    available_departments,
    available_projects,
    available_users,
    generate_project_report,
    generate_task_report,
    generate_user_productivity_report,
)


NOW = datetime(2025, 11, 1, tzinfo=timezone.utc)


class SiblingReportCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.backend = make_user("Bo", "Engineering.Backend")
        self.frontend = make_user("Fay", "Engineering.Frontend")
        self.marketer = make_user("Max", "Marketing")
        self.api = make_project("Api", creator=self.backend)
        self.campaign = make_project("Campaign", creator=self.marketer)
        self.tasks = [
            make_task([self.backend], status=TaskStatus.COMPLETED, created="2025-10-02", project_id=self.api.id),
            make_task([self.backend], status=TaskStatus.IN_PROGRESS, created="2025-10-10", project_id=self.api.id),
            make_task([self.frontend], status=TaskStatus.PENDING, priority=9, created="2025-09-28"),
            make_task([self.marketer], status=TaskStatus.COMPLETED, created="2025-10-05", project_id=self.campaign.id),
        ]
        self.store = InMemoryReportStore(
            users=[self.backend, self.frontend, self.marketer],
            tasks=self.tasks,
            projects=[self.api, self.campaign],
        )


class TestTaskReport(SiblingReportCase):
    async def test_hr_sees_subtree_tasks_newest_first(self) -> None:
        report = await generate_task_report(hr_caller("Engineering"), {}, self.store, now=NOW)
        self.assertEqual(report.report_type, ReportType.TASK)
        self.assertEqual(report.department, "Engineering")
        self.assertEqual(report.summary.total_tasks, 3)
        self.assertEqual([t.id for t in report.tasks], [self.tasks[1].id, self.tasks[0].id, self.tasks[2].id])
        self.assertEqual(report.summary.by_priority["high"], 1)

    async def test_date_range_applies_to_creation_date(self) -> None:
        report = await generate_task_report(
            admin_caller(), {"startDate": "2025-10-01", "endDate": "2025-10-31"}, self.store, now=NOW
        )
        self.assertEqual(report.summary.total_tasks, 3)
        self.assertNotIn(self.tasks[2].id, [t.id for t in report.tasks])

    async def test_status_filter(self) -> None:
        report = await generate_task_report(admin_caller(), {"statuses": ["completed"]}, self.store, now=NOW)
        self.assertEqual(report.summary.by_status["completed"], 2)
        self.assertEqual(report.summary.total_tasks, 2)

    async def test_hr_foreign_department_is_forbidden(self) -> None:
        with self.assertRaises(Forbidden):
            await generate_task_report(hr_caller("Engineering"), {"departmentIds": ["Marketing"]}, self.store)

    async def test_hr_foreign_project_is_forbidden(self) -> None:
        with self.assertRaises(Forbidden) as err:
            await generate_task_report(
                hr_caller("Engineering"), {"projectIds": [str(self.campaign.id)]}, self.store
            )
        self.assertEqual(err.exception.denied, [str(self.campaign.id)])


class TestUserProductivityReport(SiblingReportCase):
    async def test_per_user_counts(self) -> None:
        report = await generate_user_productivity_report(hr_caller("Engineering"), None, self.store, now=NOW)
        self.assertEqual(report.report_type, ReportType.USER_PRODUCTIVITY)
        by_name = {u.user_name: u for u in report.users}
        self.assertEqual(sorted(by_name), ["Bo", "Fay"])
        self.assertEqual(by_name["Bo"].total_tasks, 2)
        self.assertEqual(by_name["Bo"].completed_tasks, 1)
        self.assertEqual(by_name["Bo"].in_progress_tasks, 1)
        self.assertEqual(by_name["Bo"].completion_rate, 50)
        self.assertEqual(by_name["Fay"].pending_tasks, 1)
        self.assertEqual(report.summary.total_users, 2)
        self.assertEqual(report.summary.average_completion_rate, 25)

    async def test_hr_cannot_request_foreign_user(self) -> None:
        with self.assertRaises(Forbidden):
            await generate_user_productivity_report(
                hr_caller("Engineering"), {"userIds": [str(self.marketer.id)]}, self.store
            )

    async def test_admin_may_pick_users(self) -> None:
        report = await generate_user_productivity_report(
            admin_caller(), {"userIds": [str(self.marketer.id)]}, self.store, now=NOW
        )
        self.assertEqual([u.user_id for u in report.users], [self.marketer.id])
        self.assertEqual(report.users[0].completion_rate, 100)


class TestProjectReport(SiblingReportCase):
    async def test_admin_sees_all_projects(self) -> None:
        report = await generate_project_report(admin_caller(), {}, self.store, now=NOW)
        self.assertEqual(report.report_type, ReportType.PROJECT)
        progress = {p.project_name: p.progress_percentage for p in report.projects}
        self.assertEqual(progress, {"Api": 50, "Campaign": 100})
        self.assertEqual(report.summary.total_projects, 2)
        self.assertEqual(report.summary.average_progress, 75)

    async def test_hr_sees_projects_touching_subtree(self) -> None:
        report = await generate_project_report(hr_caller("Engineering"), {}, self.store, now=NOW)
        self.assertEqual([p.project_name for p in report.projects], ["Api"])

    async def test_hr_project_authority_is_not_narrowed_by_user_filter(self) -> None:
        # Api was created by Bo, yet only Fay is picked; both sit under Engineering.
        raw = {"userIds": [str(self.frontend.id)], "projectIds": [str(self.api.id)]}
        report = await generate_project_report(hr_caller("Engineering"), raw, self.store, now=NOW)
        self.assertEqual([p.project_name for p in report.projects], ["Api"])
        self.assertEqual(report.projects[0].total_tasks, 2)

        tasks = await generate_task_report(hr_caller("Engineering"), raw, self.store, now=NOW)
        self.assertEqual(tasks.summary.total_tasks, 0)


class TestFilterOptions(SiblingReportCase):
    async def test_departments(self) -> None:
        self.assertEqual(
            await available_departments(hr_caller("Engineering"), self.store),
            ["Engineering.Backend", "Engineering.Frontend"],
        )
        self.assertEqual(
            await available_departments(admin_caller(), self.store),
            ["Engineering.Backend", "Engineering.Frontend", "Marketing"],
        )
        self.assertEqual(await available_departments(hr_caller(None), self.store), [])

    async def test_users(self) -> None:
        options = await available_users(hr_caller("Engineering"), self.store)
        self.assertEqual([o.name for o in options], ["Bo", "Fay"])

    async def test_projects(self) -> None:
        options = await available_projects(hr_caller("Engineering"), self.store)
        self.assertEqual([o.name for o in options], ["Api"])
        self.assertEqual(len(await available_projects(admin_caller(), self.store)), 2)


if __name__ == "__main__":
    unittest.main()
