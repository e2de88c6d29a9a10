import unittest
from datetime import datetime, timezone

from report_fakes import InMemoryReportStore, admin_caller, caller_for, hr_caller, make_task, make_user

from taskscope.errors import Forbidden, ReportValidationError, StoreFailure, Unauthenticated
from taskscope.models.enums import ReportType, TaskStatus
from taskscope.services.reports import generate_departmental_performance_report


NOW = datetime(2025, 11, 1, 8, 30, tzinfo=timezone.utc)


def october_store() -> InMemoryReportStore:
    eng_a = make_user("Ada", "Engineering")
    eng_b = make_user("Brian", "Engineering")
    hr_a = make_user("Hana", "HR")
    tasks = [
        make_task([eng_a], status=TaskStatus.COMPLETED, priority=8, created="2025-10-06", completed="2025-10-08"),
        make_task([eng_a], status=TaskStatus.COMPLETED, priority=5, created="2025-10-07", completed="2025-10-15"),
        make_task([eng_b], status=TaskStatus.PENDING, priority=2, created="2025-10-20"),
        make_task([hr_a], status=TaskStatus.COMPLETED, priority=None, created="2025-10-02", completed="2025-10-03"),
        make_task([hr_a], status=TaskStatus.IN_PROGRESS, priority=9, created="2025-10-14"),
    ]
    return InMemoryReportStore(users=[eng_a, eng_b, hr_a], tasks=tasks)


def subtree_store() -> InMemoryReportStore:
    backend = make_user("Bo", "Engineering.Backend")
    frontend = make_user("Fay", "Engineering.Frontend")
    marketer = make_user("Max", "Marketing")
    tasks = [
        make_task([backend], status=TaskStatus.COMPLETED, completed="2025-10-09"),
        make_task([frontend], status=TaskStatus.BLOCKED),
        make_task([marketer], status=TaskStatus.COMPLETED, completed="2025-10-10"),
    ]
    return InMemoryReportStore(users=[backend, frontend, marketer], tasks=tasks)


class TestDepartmentalPerformanceReport(unittest.IsolatedAsyncioTestCase):
    async def test_admin_report_over_two_departments(self) -> None:
        caller = admin_caller()
        report = await generate_departmental_performance_report(
            caller,
            {"startDate": "2025-10-01", "endDate": "2025-10-31", "interval": "week"},
            october_store(),
            now=NOW,
        )

        self.assertEqual(report.report_type, ReportType.DEPARTMENTAL_PERFORMANCE)
        self.assertEqual(report.generated_by, caller.id)
        self.assertEqual(report.generated_at, NOW)

        by_name = {row.department: row for row in report.departments}
        self.assertEqual(list(by_name), ["Engineering", "HR"])
        self.assertEqual(by_name["Engineering"].completion_rate, 67)
        self.assertEqual(by_name["Engineering"].member_count, 2)
        self.assertEqual(by_name["Engineering"].average_tasks_per_member, 1.5)
        self.assertEqual(by_name["HR"].completion_rate, 50)
        self.assertEqual(by_name["HR"].priority_counts, {"low": 0, "medium": 1, "high": 1})

        self.assertEqual(report.summary.total_departments, 2)
        self.assertEqual(report.summary.total_tasks, 5)
        self.assertEqual(report.summary.total_members, 3)
        self.assertEqual(report.summary.average_completion_rate, 59)
        self.assertEqual(report.summary.overall_status_counts["completed"], 3)

        self.assertEqual(report.insights.most_productive_department, "Engineering")
        self.assertEqual(report.insights.least_productive_department, "HR")
        self.assertEqual(report.insights.highest_workload_department, "Engineering")

        self.assertEqual([b.period for b in report.time_series], ["2025-W40", "2025-W41", "2025-W42", "2025-W43", "2025-W44"])
        self.assertEqual([b.total_tasks for b in report.time_series], [1, 2, 2, 2, 2])
        self.assertEqual([b.completion_rate for b in report.time_series], [100, 100, 50, 0, 0])

        self.assertEqual(report.filters["departmentIds"], ["Engineering", "HR"])
        self.assertEqual(report.filters["interval"], "week")

    async def test_serializes_with_camel_case_keys(self) -> None:
        report = await generate_departmental_performance_report(admin_caller(), {}, october_store(), now=NOW)
        body = report.model_dump(by_alias=True, mode="json")
        self.assertEqual(body["reportType"], "departmental_performance")
        self.assertIn("generatedAt", body)
        self.assertIn("averageCompletionRate", body["summary"])
        self.assertIn("mostProductiveDepartment", body["insights"])
        self.assertIsNone(body["timeSeries"])

    async def test_date_range_uses_activity_window(self) -> None:
        user = make_user("Ada", "Engineering")
        finished_before = make_task([user], status=TaskStatus.COMPLETED, created="2025-09-01", completed="2025-09-15")
        still_open = make_task([user], status=TaskStatus.PENDING, created="2025-09-01")
        closed_inside = make_task([user], status=TaskStatus.COMPLETED, created="2025-09-20", completed="2025-10-02")
        created_after = make_task([user], created="2025-11-03")
        store = InMemoryReportStore(users=[user], tasks=[finished_before, still_open, closed_inside, created_after])

        report = await generate_departmental_performance_report(
            admin_caller(), {"startDate": "2025-10-01", "endDate": "2025-10-31"}, store, now=NOW
        )
        self.assertEqual(report.summary.total_tasks, 2)
        self.assertEqual(report.departments[0].completion_rate, 50)

    async def test_hr_is_limited_to_own_subtree(self) -> None:
        store = subtree_store()
        report = await generate_departmental_performance_report(hr_caller("Engineering"), None, store, now=NOW)
        self.assertEqual(
            [row.department for row in report.departments],
            ["Engineering", "Engineering.Backend", "Engineering.Frontend"],
        )
        self.assertEqual(report.summary.total_tasks, 2)
        self.assertEqual(report.filters["departmentIds"], ["Engineering"])

    async def test_hr_may_request_descendant_departments(self) -> None:
        report = await generate_departmental_performance_report(
            hr_caller("Engineering"),
            {"departmentIds": ["Engineering.Backend", "Engineering.Frontend"]},
            subtree_store(),
            now=NOW,
        )
        rates = {row.department: row.completion_rate for row in report.departments}
        self.assertEqual(rates, {"Engineering.Backend": 100, "Engineering.Frontend": 0})

    async def test_hr_requesting_foreign_department_is_forbidden(self) -> None:
        store = subtree_store()
        with self.assertRaises(Forbidden) as err:
            await generate_departmental_performance_report(
                hr_caller("Engineering"), {"departmentIds": ["Marketing"]}, store, now=NOW
            )
        self.assertEqual(err.exception.status_code, 403)
        self.assertEqual(err.exception.denied, ["Marketing"])
        self.assertEqual(store.calls, 0)

    async def test_hr_without_department_gets_empty_report(self) -> None:
        store = subtree_store()
        report = await generate_departmental_performance_report(hr_caller(None), {}, store, now=NOW)
        self.assertEqual(report.departments, [])
        self.assertEqual(report.summary.total_departments, 0)
        self.assertEqual(report.summary.average_completion_rate, 0)
        self.assertIsNone(report.insights.most_productive_department)
        self.assertEqual(store.calls, 0)

    async def test_hr_without_department_cannot_name_departments(self) -> None:
        store = subtree_store()
        with self.assertRaises(Forbidden) as err:
            await generate_departmental_performance_report(
                hr_caller(None), {"departmentIds": ["Marketing", "Engineering"]}, store, now=NOW
            )
        self.assertEqual(err.exception.denied, ["Marketing", "Engineering"])
        self.assertEqual(store.calls, 0)

    async def test_admin_reads_the_directory_once(self) -> None:
        store = october_store()
        await generate_departmental_performance_report(admin_caller(), {}, store, now=NOW)
        self.assertEqual(store.calls, 2)

    async def test_unauthenticated_before_validation(self) -> None:
        with self.assertRaises(Unauthenticated):
            await generate_departmental_performance_report(None, {"startDate": "bad"}, subtree_store())

    async def test_validation_before_scope(self) -> None:
        with self.assertRaises(ReportValidationError):
            await generate_departmental_performance_report(
                hr_caller("Engineering"),
                {"departmentIds": ["Marketing"], "startDate": "2025-10-31", "endDate": "2025-10-01"},
                subtree_store(),
            )

    async def test_staff_cannot_generate(self) -> None:
        staff = make_user("Sid", "Engineering")
        with self.assertRaises(Forbidden) as err:
            await generate_departmental_performance_report(caller_for(staff), {}, subtree_store())
        self.assertEqual(err.exception.message, "Only HR and Admin staff can generate reports")

    async def test_same_input_gives_same_report(self) -> None:
        store = october_store()
        caller = admin_caller()
        raw = {"startDate": "2025-10-01", "endDate": "2025-10-31", "interval": "month"}
        first = await generate_departmental_performance_report(caller, raw, store, now=NOW)
        second = await generate_departmental_performance_report(caller, raw, store, now=NOW)
        self.assertEqual(first.model_dump(), second.model_dump())

    async def test_store_failure_is_logged_and_propagated(self) -> None:
        with self.assertLogs("taskscope.services.reports", level="ERROR"):
            with self.assertRaises(StoreFailure) as err:
                await generate_departmental_performance_report(admin_caller(), {}, InMemoryReportStore(fail=True))
        self.assertEqual(err.exception.status_code, 500)


if __name__ == "__main__":
    unittest.main()
