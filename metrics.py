"""
Project metrics aggregation.

Pure functions that turn a client configuration plus its normalized task rows
into financial, utilization and task-health figures. No I/O happens here;
missing numbers were already coerced to zero by models.parse_task.
"""

import math
from collections import defaultdict
from datetime import timedelta
from typing import Optional

from models import (
    MS_PER_HOUR, TODO, IN_PROGRESS, COMPLETED,
    now_local, get_timezone, localize,
)

DEFAULT_MONTHLY_CAPACITY = 160  # 40 hrs/week * 4 weeks
HOURS_PER_MONTH_OF_WORK = 160

# Profit-margin thresholds for project health
HEALTH_EXCELLENT_MARGIN = 50
HEALTH_GOOD_MARGIN = 25

BUDGET_WARNING_RATIO = 0.25


def month_start(now=None):
    """First moment of the current calendar month in the dashboard timezone."""
    now = now or now_local()
    first = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    return localize(first, now.tzinfo or get_timezone())


def billable_fraction(task: dict, billable_names=None) -> float:
    """Share of a task's time that counts toward billable delivery.

    Only the fraction of assignees who are on the team roster counts, so
    contractor time logged on shared tasks doesn't inflate delivery cost.
    No roster means nothing is billable.
    """
    if not billable_names:
        return 0.0
    assignees = task.get("assignees") or []
    if not assignees:
        return 0.0
    billable = sum(1 for name in assignees if name in billable_names)
    return billable / len(assignees)


def billable_hours(tasks: list, billable_names=None) -> float:
    total_ms = sum(
        (task.get("time_spent_ms") or 0) * billable_fraction(task, billable_names)
        for task in tasks
    )
    return round(total_ms / MS_PER_HOUR, 2)


def count_by_status(tasks: list) -> dict:
    counts = {TODO: 0, IN_PROGRESS: 0, COMPLETED: 0}
    for task in tasks:
        counts[task.get("status_bucket") or TODO] += 1
    return counts


def tasks_updated_since(tasks: list, since) -> list:
    return [t for t in tasks if t.get("date_updated") and t["date_updated"] >= since]


def compute_project_metrics(client: dict, period_tasks: list, all_time_tasks: Optional[list] = None,
                            billable_names=None, now=None) -> dict:
    """Calculate project metrics for one client.

    Args:
        client: Normalized client configuration
        period_tasks: Client tasks already filtered to the requested period
        all_time_tasks: Optional superset used for the "this month" figures
        billable_names: Set of roster names whose time is billable
        now: Reference time for the month boundary

    Returns:
        Dict of derived metrics. profit_margin is 0 when revenue is 0; check
        has_revenue / no_data to tell that apart from a real 0% margin.
    """
    this_month_start = month_start(now)
    month_source = all_time_tasks if all_time_tasks is not None else period_tasks
    this_month_tasks = tasks_updated_since(month_source, this_month_start)

    hours_spent = billable_hours(period_tasks, billable_names)
    hours_spent_this_month = billable_hours(this_month_tasks, billable_names)

    total_hours = client.get("available_hours") or 0
    hours_remaining = max(0, total_hours - hours_spent)
    utilization = (hours_spent / total_hours) * 100 if total_hours > 0 else 0

    average_hourly_rate = client.get("average_delivery_hourly") or 0
    total_revenue = client.get("revenue") or 0
    delivery_cost = round(hours_spent * average_hourly_rate, 2)
    profit = round(total_revenue - delivery_cost, 2)
    profit_margin = (profit / total_revenue) * 100 if total_revenue > 0 else 0

    counts = count_by_status(period_tasks)
    counts_this_month = count_by_status(this_month_tasks)

    has_revenue = total_revenue > 0
    has_tasks = len(period_tasks) > 0

    return {
        "client_name": client.get("client_name"),
        "project_type": client["project_type"].value if client.get("project_type") else None,
        "total_hours": total_hours,
        "hours_spent": hours_spent,
        "hours_spent_this_month": hours_spent_this_month,
        "hours_remaining": round(hours_remaining, 2),
        "utilization_percentage": round(utilization, 2),
        "total_revenue": total_revenue,
        "average_hourly_rate": average_hourly_rate,
        "delivery_cost": delivery_cost,
        "profit": profit,
        "profit_margin": round(profit_margin, 2),
        "has_revenue": has_revenue,
        "has_tasks": has_tasks,
        "no_data": not (has_revenue and has_tasks),
        "task_count": len(period_tasks),
        "todo_tasks": counts[TODO],
        "in_progress_tasks": counts[IN_PROGRESS],
        "completed_tasks": counts[COMPLETED],
        "task_count_this_month": len(this_month_tasks),
        "todo_tasks_this_month": counts_this_month[TODO],
        "in_progress_tasks_this_month": counts_this_month[IN_PROGRESS],
        "completed_tasks_this_month": counts_this_month[COMPLETED],
    }


def extract_team_members(tasks: list, capacity_by_name: Optional[dict] = None, now=None) -> list:
    """Per-assignee contribution to a project, hours split evenly among co-assignees."""
    capacity_by_name = capacity_by_name or {}
    this_month_start = month_start(now)
    members = defaultdict(lambda: {
        "hours_spent": 0.0,
        "task_count": 0,
        "hours_spent_this_month": 0.0,
        "task_count_this_month": 0,
    })

    for task in tasks:
        assignees = task.get("assignees") or []
        if not assignees:
            continue
        split_hours = (task.get("time_spent_ms") or 0) / MS_PER_HOUR / len(assignees)
        is_this_month = bool(task.get("date_updated") and task["date_updated"] >= this_month_start)
        for name in assignees:
            entry = members[name]
            entry["hours_spent"] += split_hours
            entry["task_count"] += 1
            if is_this_month:
                entry["hours_spent_this_month"] += split_hours
                entry["task_count_this_month"] += 1

    result = []
    for name, data in members.items():
        weekly = capacity_by_name.get(name)
        monthly_capacity = weekly * 4 if weekly else DEFAULT_MONTHLY_CAPACITY
        utilization = data["hours_spent_this_month"] / monthly_capacity * 100
        result.append({
            "name": name,
            "hours_spent": round(data["hours_spent"], 2),
            "task_count": data["task_count"],
            "hours_spent_this_month": round(data["hours_spent_this_month"], 2),
            "task_count_this_month": data["task_count_this_month"],
            "utilization_percentage": round(utilization, 2),
        })

    result.sort(key=lambda m: m["hours_spent"], reverse=True)
    return result


def calculate_project_health(metrics: dict) -> dict:
    """Bucket a project by profit margin; projects without data get their own status."""
    if metrics.get("no_data"):
        return {
            "status": "no-data",
            "label": "No Data",
            "description": "No project data available",
        }

    margin = metrics.get("profit_margin", 0)
    if margin >= HEALTH_EXCELLENT_MARGIN:
        return {
            "status": "excellent",
            "label": "Excellent",
            "description": "Project is highly profitable",
        }
    if margin >= HEALTH_GOOD_MARGIN:
        return {
            "status": "good",
            "label": "Good",
            "description": "Project is moderately profitable",
        }
    return {
        "status": "at-risk",
        "label": "At Risk",
        "description": "Project profitability is concerning",
    }


def _task_summary(task: dict) -> dict:
    return {
        "id": task.get("id"),
        "name": task.get("name"),
        "status": task.get("status"),
        "assignees": task.get("assignees") or [],
        "due_date": task["due_date"].isoformat() if task.get("due_date") else None,
    }


def find_overdue_tasks(tasks: list, now=None) -> list:
    """Incomplete tasks whose due date has passed, most overdue first."""
    now = now or now_local()
    overdue = [
        t for t in tasks
        if t.get("due_date") and t["due_date"] < now and t.get("status_bucket") != COMPLETED
    ]
    overdue.sort(key=lambda t: t["due_date"])
    result = []
    for task in overdue:
        summary = _task_summary(task)
        summary["days_overdue"] = (now - task["due_date"]).days
        result.append(summary)
    return result


def find_upcoming_tasks(tasks: list, now=None, days: int = 7) -> list:
    """Incomplete tasks due within the next `days` days, soonest first."""
    now = now or now_local()
    horizon = now + timedelta(days=days)
    upcoming = [
        t for t in tasks
        if t.get("due_date") and now <= t["due_date"] <= horizon
        and t.get("status_bucket") != COMPLETED
    ]
    upcoming.sort(key=lambda t: t["due_date"])
    result = []
    for task in upcoming:
        summary = _task_summary(task)
        summary["days_until_due"] = (task["due_date"] - now).days
        result.append(summary)
    return result


def calculate_burn_rate(metrics: dict) -> dict:
    """Average monthly spend and how long the remaining budget lasts at that pace."""
    total_spent = metrics.get("delivery_cost", 0)
    total_budget = metrics.get("total_revenue", 0)
    months_of_work = max(1, math.ceil(metrics.get("hours_spent", 0) / HOURS_PER_MONTH_OF_WORK))
    monthly_burn = total_spent / months_of_work
    remaining_budget = total_budget - total_spent
    months_remaining = math.ceil(remaining_budget / monthly_burn) if monthly_burn > 0 and remaining_budget > 0 else 0

    if remaining_budget < 0:
        status = "over-budget"
    elif total_budget > 0 and remaining_budget < total_budget * BUDGET_WARNING_RATIO:
        status = "warning"
    else:
        status = "healthy"

    return {
        "total_spent": round(total_spent, 2),
        "total_budget": total_budget,
        "remaining_budget": round(remaining_budget, 2),
        "monthly_burn_rate": round(monthly_burn, 2),
        "months_of_work": months_of_work,
        "months_remaining": months_remaining,
        "status": status,
    }


def summarize_projects(analytics_list: list) -> dict:
    """Portfolio totals across a list of project analytics payloads."""
    metrics_list = [a["metrics"] for a in analytics_list]
    with_revenue = [m for m in metrics_list if m["has_revenue"]]

    total_revenue = sum(m["total_revenue"] for m in metrics_list)
    total_cost = sum(m["delivery_cost"] for m in metrics_list)
    revenue_with_data = sum(m["total_revenue"] for m in with_revenue)
    profit_with_data = sum(m["profit"] for m in with_revenue)

    health_counts = defaultdict(int)
    for analytics in analytics_list:
        health_counts[calculate_project_health(analytics["metrics"])["status"]] += 1

    return {
        "project_count": len(metrics_list),
        "total_allocated_hours": round(sum(m["total_hours"] for m in metrics_list), 2),
        "total_hours_spent": round(sum(m["hours_spent"] for m in metrics_list), 2),
        "total_hours_spent_this_month": round(sum(m["hours_spent_this_month"] for m in metrics_list), 2),
        "total_revenue": round(total_revenue, 2),
        "total_delivery_cost": round(total_cost, 2),
        "total_profit": round(total_revenue - total_cost, 2),
        "average_profit_margin": round(profit_with_data / revenue_with_data * 100, 2) if revenue_with_data > 0 else 0,
        "average_utilization": round(
            sum(m["utilization_percentage"] for m in metrics_list) / len(metrics_list), 2
        ) if metrics_list else 0,
        "total_tasks": sum(m["task_count"] for m in metrics_list),
        "completed_tasks": sum(m["completed_tasks"] for m in metrics_list),
        "health": dict(health_counts),
    }
