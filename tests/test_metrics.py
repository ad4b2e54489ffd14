"""
Tests for project metrics: financials, billable hours, task health and burn rate.
"""
from datetime import timedelta

import pytest

from metrics import (
    billable_hours,
    compute_project_metrics,
    extract_team_members,
    calculate_project_health,
    calculate_burn_rate,
    find_overdue_tasks,
    find_upcoming_tasks,
    summarize_projects,
)
from models import ProjectType

ROSTER = {"Alice", "Bob"}


class TestComputeProjectMetrics:
    """Tests for the per-client financial roll-up."""

    def test_acme_financials(self, now, make_client, make_task):
        """40 hours at $100/hr against $10,000 revenue and 100 available hours."""
        client = make_client(available_hours=100, revenue=10000, rate=100)
        tasks = [make_task(spent_hours=25), make_task(spent_hours=15)]

        metrics = compute_project_metrics(client, tasks, billable_names=ROSTER, now=now)

        assert metrics["hours_spent"] == 40
        assert metrics["delivery_cost"] == 4000
        assert metrics["profit"] == 6000
        assert metrics["profit_margin"] == 60
        assert metrics["utilization_percentage"] == 40
        assert metrics["hours_remaining"] == 60
        assert metrics["project_type"] == ProjectType.RECURRING.value
        assert metrics["no_data"] is False

    def test_zero_revenue_has_zero_margin(self, now, make_client, make_task):
        client = make_client(revenue=0)
        metrics = compute_project_metrics(
            client, [make_task(spent_hours=5)], billable_names=ROSTER, now=now)

        assert metrics["profit_margin"] == 0
        assert metrics["has_revenue"] is False
        assert metrics["no_data"] is True
        assert metrics["profit"] == -500

    def test_missing_time_counts_as_zero(self, now, make_client, make_task):
        client = make_client()
        task = make_task(time_spent_ms=0)

        metrics = compute_project_metrics(client, [task], billable_names=ROSTER, now=now)

        assert metrics["hours_spent"] == 0
        assert metrics["task_count"] == 1

    def test_zero_available_hours(self, now, make_client, make_task):
        client = make_client(available_hours=0)
        metrics = compute_project_metrics(
            client, [make_task(spent_hours=10)], billable_names=ROSTER, now=now)

        assert metrics["utilization_percentage"] == 0
        assert metrics["hours_remaining"] == 0

    def test_no_tasks(self, now, make_client):
        metrics = compute_project_metrics(make_client(), [], billable_names=ROSTER, now=now)

        assert metrics["hours_spent"] == 0
        assert metrics["has_tasks"] is False
        assert metrics["no_data"] is True

    def test_status_counts(self, now, make_client, make_task):
        tasks = [
            make_task(status="to do"),
            make_task(status="in progress"),
            make_task(status="client review"),
            make_task(status="complete"),
            make_task(status="approved"),
        ]
        metrics = compute_project_metrics(make_client(), tasks, billable_names=ROSTER, now=now)

        assert metrics["todo_tasks"] == 1
        assert metrics["in_progress_tasks"] == 2
        assert metrics["completed_tasks"] == 2

    def test_this_month_uses_all_time_superset(self, now, make_client, make_task):
        """Period tasks drive totals; the all-time list drives the month figures."""
        last_month = make_task(spent_hours=10, updated=now - timedelta(days=40))
        this_month = make_task(spent_hours=3, updated=now - timedelta(days=2))

        metrics = compute_project_metrics(
            make_client(), [last_month], [last_month, this_month], billable_names=ROSTER, now=now)

        assert metrics["hours_spent"] == 10
        assert metrics["hours_spent_this_month"] == 3
        assert metrics["task_count_this_month"] == 1

    def test_idempotent(self, now, make_client, make_task):
        client = make_client()
        tasks = [make_task(spent_hours=7, assignees=("Alice", "Bob")), make_task(spent_hours=2)]

        first = compute_project_metrics(client, tasks, billable_names={"Alice"}, now=now)
        second = compute_project_metrics(client, tasks, billable_names={"Alice"}, now=now)

        assert first == second


class TestBillableHours:
    """Tests for the roster filter on logged time."""

    def test_split_between_roster_and_non_roster_assignee(self, make_task):
        task = make_task(spent_hours=2, assignees=("Alice", "Contractor"))
        assert billable_hours([task], {"Alice"}) == 1

    def test_empty_roster_bills_nothing(self, make_task):
        task = make_task(spent_hours=2, assignees=("Contractor",))

        assert billable_hours([task], set()) == 0
        assert billable_hours([task], None) == 0

    def test_only_non_roster_assignees(self, make_task):
        task = make_task(spent_hours=2, assignees=("Contractor", "Freelancer"))
        assert billable_hours([task], {"Alice"}) == 0

    def test_unassigned_task_not_billable(self, make_task):
        task = make_task(spent_hours=2, assignees=())
        assert billable_hours([task], {"Alice"}) == 0

    def test_contractor_time_excluded_from_cost(self, now, make_client, make_task):
        tasks = [make_task(spent_hours=10), make_task(spent_hours=30, assignees=("Contractor",))]

        metrics = compute_project_metrics(make_client(), tasks, billable_names={"Alice"}, now=now)

        assert metrics["hours_spent"] == 10
        assert metrics["delivery_cost"] == 1000


class TestExtractTeamMembers:

    def test_hours_split_evenly(self, now, make_task):
        task = make_task(spent_hours=2, assignees=("Alice", "Bob"))
        members = {m["name"]: m for m in extract_team_members([task], now=now)}

        assert members["Alice"]["hours_spent"] == 1
        assert members["Bob"]["hours_spent"] == 1
        assert members["Alice"]["task_count"] == 1

    def test_utilization_against_monthly_capacity(self, now, make_task):
        task = make_task(spent_hours=8, assignees=("Alice", "Bob"))
        members = {m["name"]: m for m in extract_team_members([task], {"Alice": 20}, now)}

        # Alice: 4 hrs / (20 * 4); Bob falls back to 160
        assert members["Alice"]["utilization_percentage"] == 5
        assert members["Bob"]["utilization_percentage"] == 2.5

    def test_sorted_by_hours(self, now, make_task):
        tasks = [make_task(spent_hours=1, assignees=("Bob",)), make_task(spent_hours=5, assignees=("Alice",))]
        members = extract_team_members(tasks, now=now)
        assert [m["name"] for m in members] == ["Alice", "Bob"]


class TestProjectHealth:

    @pytest.mark.parametrize("margin,status", [
        (75, "excellent"),
        (50, "excellent"),
        (25, "good"),
        (24.9, "at-risk"),
        (-10, "at-risk"),
    ])
    def test_margin_thresholds(self, margin, status):
        assert calculate_project_health({"no_data": False, "profit_margin": margin})["status"] == status

    def test_no_data(self):
        assert calculate_project_health({"no_data": True, "profit_margin": 90})["status"] == "no-data"


class TestBurnRate:

    def test_healthy(self):
        burn = calculate_burn_rate({"delivery_cost": 4000, "total_revenue": 10000, "hours_spent": 40})

        assert burn["months_of_work"] == 1
        assert burn["monthly_burn_rate"] == 4000
        assert burn["remaining_budget"] == 6000
        assert burn["months_remaining"] == 2
        assert burn["status"] == "healthy"

    def test_warning_when_under_quarter_left(self):
        burn = calculate_burn_rate({"delivery_cost": 8000, "total_revenue": 10000, "hours_spent": 80})
        assert burn["status"] == "warning"

    def test_over_budget(self):
        burn = calculate_burn_rate({"delivery_cost": 12000, "total_revenue": 10000, "hours_spent": 120})

        assert burn["status"] == "over-budget"
        assert burn["months_remaining"] == 0

    def test_months_of_work_rounds_up(self):
        burn = calculate_burn_rate({"delivery_cost": 20000, "total_revenue": 40000, "hours_spent": 200})

        assert burn["months_of_work"] == 2
        assert burn["monthly_burn_rate"] == 10000


class TestDueDates:

    def test_overdue_excludes_completed(self, now, make_task):
        late = make_task(due=now - timedelta(days=1, hours=2))
        done = make_task(status="complete", due=now - timedelta(days=3))
        undated = make_task(due=None)

        overdue = find_overdue_tasks([late, done, undated], now)

        assert [t["id"] for t in overdue] == [late["id"]]
        assert overdue[0]["days_overdue"] == 1

    def test_upcoming_within_week(self, now, make_task):
        soon = make_task(due=now + timedelta(days=3, hours=1))
        later = make_task(due=now + timedelta(days=10))
        approved = make_task(status="approved", due=now + timedelta(days=1))

        upcoming = find_upcoming_tasks([later, soon, approved], now)

        assert [t["id"] for t in upcoming] == [soon["id"]]
        assert upcoming[0]["days_until_due"] == 3


class TestSummarizeProjects:

    def test_margin_ignores_projects_without_revenue(self, now, make_client, make_task):
        paying = compute_project_metrics(
            make_client(), [make_task(spent_hours=40)], billable_names=ROSTER, now=now)
        internal = compute_project_metrics(
            make_client(client_name="Internal", revenue=0), [make_task(spent_hours=5)], billable_names=ROSTER, now=now)
        analytics = [{"metrics": paying}, {"metrics": internal}]

        summary = summarize_projects(analytics)

        assert summary["project_count"] == 2
        assert summary["total_revenue"] == 10000
        assert summary["total_delivery_cost"] == 4500
        assert summary["total_profit"] == 5500
        assert summary["average_profit_margin"] == 60
        assert summary["health"] == {"excellent": 1, "no-data": 1}

    def test_empty(self):
        summary = summarize_projects([])
        assert summary["project_count"] == 0
        assert summary["average_utilization"] == 0
