import unittest
from datetime import date

from report_fakes import make_task, make_user

from taskscope.models.enums import PriorityBucket, ReportInterval, TaskStatus
from taskscope.schemas.report import DepartmentStats
from taskscope.services.department_paths import DepartmentPath
from taskscope.services.report_aggregation import (
    completion_rate,
    department_insights,
    department_stats,
    mean_rounded,
    percentage,
    priority_bucket,
    priority_counts,
    round_half_up,
    status_counts,
    time_series,
)


def row(name: str, rate: int, total: int) -> DepartmentStats:
    return DepartmentStats(
        department=name,
        total_tasks=total,
        member_count=1,
        status_counts={},
        priority_counts={},
        completion_rate=rate,
        average_tasks_per_member=float(total),
    )


class TestRounding(unittest.TestCase):
    def test_half_rounds_up(self) -> None:
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(1.25, 1), 1.3)

    def test_percentage(self) -> None:
        self.assertEqual(percentage(2, 3), 67)
        self.assertEqual(percentage(1, 2), 50)
        self.assertEqual(percentage(0, 0), 0)

    def test_mean_rounded(self) -> None:
        self.assertEqual(mean_rounded([67, 50]), 59)
        self.assertEqual(mean_rounded([]), 0)


class TestPriorityBuckets(unittest.TestCase):
    def test_bucket_boundaries(self) -> None:
        self.assertEqual(priority_bucket(1), PriorityBucket.LOW)
        self.assertEqual(priority_bucket(3), PriorityBucket.LOW)
        self.assertEqual(priority_bucket(4), PriorityBucket.MEDIUM)
        self.assertEqual(priority_bucket(6), PriorityBucket.MEDIUM)
        self.assertEqual(priority_bucket(7), PriorityBucket.HIGH)
        self.assertEqual(priority_bucket(10), PriorityBucket.HIGH)

    def test_missing_priority_counts_as_medium(self) -> None:
        self.assertEqual(priority_bucket(None), PriorityBucket.MEDIUM)

    def test_out_of_range_priority_is_not_bucketed(self) -> None:
        self.assertIsNone(priority_bucket(0))
        self.assertIsNone(priority_bucket(11))


class TestDepartmentStats(unittest.TestCase):
    def setUp(self) -> None:
        self.lead = make_user("Lea", "Engineering")
        self.dev = make_user("Dev", "Engineering")
        self.backend = make_user("Ben", "Engineering.Backend")

    def test_counts_rates_and_members(self) -> None:
        tasks = [
            make_task([self.lead], status=TaskStatus.COMPLETED, priority=8),
            make_task([self.lead], status=TaskStatus.COMPLETED, priority=5),
            make_task([self.dev], status=TaskStatus.PENDING, priority=2),
        ]
        stats = department_stats(DepartmentPath("Engineering"), tasks)
        self.assertEqual(stats.total_tasks, 3)
        self.assertEqual(stats.member_count, 2)
        self.assertEqual(stats.completion_rate, 67)
        self.assertEqual(stats.average_tasks_per_member, 1.5)
        self.assertEqual(stats.status_counts["completed"], 2)
        self.assertEqual(stats.status_counts["blocked"], 0)
        self.assertEqual(stats.priority_counts, {"low": 1, "medium": 1, "high": 1})

    def test_child_department_tasks_are_not_folded_in(self) -> None:
        tasks = [make_task([self.backend]), make_task([self.lead])]
        stats = department_stats(DepartmentPath("Engineering"), tasks)
        self.assertEqual(stats.total_tasks, 1)

    def test_department_without_tasks(self) -> None:
        stats = department_stats(DepartmentPath("Engineering"), [])
        self.assertEqual(stats.total_tasks, 0)
        self.assertEqual(stats.completion_rate, 0)
        self.assertEqual(stats.average_tasks_per_member, 0)

    def test_shared_task_counts_in_each_assignee_department(self) -> None:
        task = make_task([self.lead, self.backend])
        self.assertEqual(department_stats(DepartmentPath("Engineering"), [task]).total_tasks, 1)
        self.assertEqual(department_stats(DepartmentPath("Engineering.Backend"), [task]).total_tasks, 1)

    def test_counts_sum_to_total(self) -> None:
        tasks = [make_task([self.lead], status=s, priority=p) for s, p in zip(TaskStatus, (1, 4, 7, 10, 5))]
        self.assertEqual(sum(status_counts(tasks).values()), len(tasks))
        self.assertEqual(sum(priority_counts(tasks).values()), len(tasks))
        self.assertEqual(completion_rate(tasks), 20)


class TestInsights(unittest.TestCase):
    def test_extremes(self) -> None:
        insights = department_insights([row("HR", 50, 2), row("Engineering", 67, 3), row("Sales", 10, 9)])
        self.assertEqual(insights.most_productive_department, "Engineering")
        self.assertEqual(insights.least_productive_department, "Sales")
        self.assertEqual(insights.highest_workload_department, "Sales")

    def test_ties_go_to_alphabetically_first(self) -> None:
        insights = department_insights([row("Sales", 50, 4), row("Finance", 50, 4)])
        self.assertEqual(insights.most_productive_department, "Finance")
        self.assertEqual(insights.least_productive_department, "Finance")
        self.assertEqual(insights.highest_workload_department, "Finance")

    def test_no_departments(self) -> None:
        insights = department_insights([])
        self.assertIsNone(insights.most_productive_department)
        self.assertIsNone(insights.highest_workload_department)


class TestTimeSeries(unittest.TestCase):
    def test_task_counts_in_every_week_it_was_active(self) -> None:
        user = make_user("Ann", "Engineering")
        short = make_task([user], status=TaskStatus.COMPLETED, created="2025-10-06", completed="2025-10-08")
        open_task = make_task([user], status=TaskStatus.IN_PROGRESS, created="2025-10-14")
        series = time_series([short, open_task], date(2025, 10, 1), date(2025, 10, 31), ReportInterval.WEEK)

        self.assertEqual([b.period for b in series], ["2025-W40", "2025-W41", "2025-W42", "2025-W43", "2025-W44"])
        self.assertEqual([b.total_tasks for b in series], [0, 1, 1, 1, 1])
        self.assertEqual([b.completion_rate for b in series], [0, 100, 0, 0, 0])

    def test_cancelled_task_closes_on_last_update(self) -> None:
        user = make_user("Ann", "Engineering")
        cancelled = make_task([user], status=TaskStatus.CANCELLED, created="2025-10-02", updated="2025-10-07")
        series = time_series([cancelled], date(2025, 10, 1), date(2025, 10, 31), ReportInterval.WEEK)
        self.assertEqual([b.total_tasks for b in series], [1, 1, 0, 0, 0])


if __name__ == "__main__":
    unittest.main()
