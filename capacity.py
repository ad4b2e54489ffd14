"""
Team capacity and utilization.

Looks backwards (hours logged in trailing windows vs weekly capacity) and
forwards (estimates on open tasks due in upcoming windows) for each member of
the team roster, then rolls members up into team figures.
"""

import calendar
from datetime import datetime, time, timedelta
from collections import defaultdict

import config
from models import MS_PER_HOUR, COMPLETED, TODO, IN_PROGRESS, localize, now_local

THREE_MONTH_WEEKS = 13
PROJECT_ALLOCATION_WEEKS = 4

TRAILING_WINDOWS = ("this_week", "last_week", "this_month", "three_months")
FORWARD_WINDOWS = ("next_week", "next_two_weeks", "next_month")


def _midnight(day, tz) -> datetime:
    return localize(datetime.combine(day, time.min), tz)


def _add_months(day, months: int):
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return day.replace(year=year, month=month, day=1)


def get_week_bounds(now: datetime, week_offset: int = 0, week_start_day: int = None):
    """Start (inclusive) and end (exclusive) of a calendar week relative to now."""
    if week_start_day is None:
        week_start_day = config.WEEK_START_DAY
    today = now.date()
    week_start = today - timedelta(days=(today.weekday() - week_start_day) % 7)
    week_start += timedelta(weeks=week_offset)
    return _midnight(week_start, now.tzinfo), _midnight(week_start + timedelta(days=7), now.tzinfo)


def get_capacity_windows(now: datetime = None, week_start_day: int = None) -> dict:
    """Named time windows used for utilization, each {start, end, weeks}."""
    now = now or now_local()
    tz = now.tzinfo
    today = now.date()

    this_week_start, this_week_end = get_week_bounds(now, 0, week_start_day)
    last_week_start, _ = get_week_bounds(now, -1, week_start_day)
    next_week_start, next_week_end = get_week_bounds(now, 1, week_start_day)
    _, week_after_next_end = get_week_bounds(now, 2, week_start_day)

    first_of_month = today.replace(day=1)
    first_of_next = _add_months(first_of_month, 1)
    first_of_following = _add_months(first_of_month, 2)
    days_this_month = calendar.monthrange(today.year, today.month)[1]
    days_next_month = calendar.monthrange(first_of_next.year, first_of_next.month)[1]

    tomorrow = _midnight(today + timedelta(days=1), tz)

    return {
        "this_week": {"start": this_week_start, "end": this_week_end, "weeks": 1},
        "last_week": {"start": last_week_start, "end": this_week_start, "weeks": 1},
        "this_month": {
            "start": _midnight(first_of_month, tz),
            "end": _midnight(first_of_next, tz),
            "weeks": days_this_month / 7,
        },
        "three_months": {
            "start": _midnight(today + timedelta(days=1) - timedelta(weeks=THREE_MONTH_WEEKS), tz),
            "end": tomorrow,
            "weeks": THREE_MONTH_WEEKS,
        },
        "next_week": {"start": next_week_start, "end": next_week_end, "weeks": 1},
        "next_two_weeks": {"start": next_week_start, "end": week_after_next_end, "weeks": 2},
        "next_month": {
            "start": _midnight(first_of_next, tz),
            "end": _midnight(first_of_following, tz),
            "weeks": days_next_month / 7,
        },
    }


def _in_window(value, window: dict) -> bool:
    return value is not None and window["start"] <= value < window["end"]


def member_tasks(member: dict, tasks: list) -> list:
    """Tasks whose assignee list contains the member's ClickUp name."""
    name = (member.get("clickup_name") or "").strip()
    if not name:
        return []
    return [t for t in tasks if name in (t.get("assignees") or [])]


def _share(task: dict) -> float:
    """The member's even split of a task among its co-assignees."""
    assignees = task.get("assignees") or []
    return 1 / len(assignees) if assignees else 0


def _utilization(hours: float, weekly_hours: float, weeks: float) -> float:
    capacity = weekly_hours * weeks
    if capacity <= 0:
        return 0
    return round(hours / capacity * 100, 1)


def _active_task_summary(task: dict) -> dict:
    return {
        "id": task.get("id"),
        "name": task.get("name"),
        "status": task.get("status"),
        "project": task.get("folder"),
        "due_date": task["due_date"].isoformat() if task.get("due_date") else None,
        "estimate_hours": round((task.get("time_estimate_ms") or 0) / MS_PER_HOUR, 2),
    }


def compute_member_analytics(member: dict, tasks: list, now: datetime = None,
                             week_start_day: int = None) -> dict:
    """Capacity analytics for one roster member over the full task corpus."""
    now = now or now_local()
    windows = get_capacity_windows(now, week_start_day)
    weekly_hours = member.get("weekly_hours") or 0
    assigned = member_tasks(member, tasks)

    result = {
        "id": member.get("id"),
        "clickup_name": member.get("clickup_name"),
        "display_name": member.get("display_name"),
        "role": member.get("role"),
        "team": member.get("team"),
        "weekly_hours": weekly_hours,
    }

    # Backward-looking: logged time by date_updated
    trailing_hours = {}
    for key in TRAILING_WINDOWS:
        window = windows[key]
        ms = sum(
            (t.get("time_spent_ms") or 0) * _share(t)
            for t in assigned if _in_window(t.get("date_updated"), window)
        )
        trailing_hours[key] = ms / MS_PER_HOUR

    result["hours_this_week"] = round(trailing_hours["this_week"], 2)
    result["hours_last_week"] = round(trailing_hours["last_week"], 2)
    result["hours_this_month"] = round(trailing_hours["this_month"], 2)
    result["hours_3_months"] = round(trailing_hours["three_months"], 2)
    result["utilization_this_week"] = _utilization(trailing_hours["this_week"], weekly_hours, 1)
    result["utilization_last_week"] = _utilization(trailing_hours["last_week"], weekly_hours, 1)
    result["utilization_this_month"] = _utilization(
        trailing_hours["this_month"], weekly_hours, windows["this_month"]["weeks"])
    result["utilization_3_month_avg"] = _utilization(
        trailing_hours["three_months"], weekly_hours, THREE_MONTH_WEEKS)

    # Forward-looking: estimates on open tasks with a due date in the window
    open_tasks = [t for t in assigned if t.get("status_bucket") != COMPLETED]
    for key in FORWARD_WINDOWS:
        window = windows[key]
        ms = sum(
            (t.get("time_estimate_ms") or 0) * _share(t)
            for t in open_tasks if _in_window(t.get("due_date"), window)
        )
        hours = ms / MS_PER_HOUR
        result[f"estimated_hours_{key}"] = round(hours, 2)
        result[f"planned_utilization_{key}"] = _utilization(hours, weekly_hours, window["weeks"])

    measured = [
        t for t in assigned
        if (t.get("time_estimate_ms") or 0) > 0 and (t.get("time_spent_ms") or 0) > 0
    ]
    total_estimate = sum(t["time_estimate_ms"] for t in measured)
    total_actual = sum(t["time_spent_ms"] for t in measured)
    result["efficiency_ratio"] = round(total_actual / total_estimate * 100, 1) if total_estimate else 0

    estimated_open = sum(1 for t in open_tasks if (t.get("time_estimate_ms") or 0) > 0)
    result["estimate_coverage"] = round(estimated_open / len(open_tasks) * 100, 1) if open_tasks else 0

    # Where the member's recent hours went
    allocation_start = windows["three_months"]["end"] - timedelta(weeks=PROJECT_ALLOCATION_WEEKS)
    project_ms = defaultdict(float)
    for t in assigned:
        updated = t.get("date_updated")
        if updated is not None and updated >= allocation_start:
            project_ms[t.get("folder") or "(No Folder)"] += (t.get("time_spent_ms") or 0) * _share(t)
    current_projects = [
        {
            "project_name": project,
            "hours": round(ms / MS_PER_HOUR, 2),
            "average_weekly_hours": round(ms / MS_PER_HOUR / PROJECT_ALLOCATION_WEEKS, 1),
        }
        for project, ms in project_ms.items() if ms > 0
    ]
    current_projects.sort(key=lambda p: p["hours"], reverse=True)
    result["current_projects"] = current_projects

    this_week_tasks = [t for t in assigned if _in_window(t.get("date_updated"), windows["this_week"])]
    result["total_tasks_this_week"] = len(this_week_tasks)
    result["completed_tasks_this_week"] = sum(
        1 for t in this_week_tasks if t.get("status_bucket") == COMPLETED)
    result["active_tasks"] = [_active_task_summary(t) for t in open_tasks]
    result["active_task_count"] = len(open_tasks)

    return result


def _mean(values: list) -> float:
    return round(sum(values) / len(values), 1) if values else 0


def compute_team_analytics(team_name: str, roster: list, tasks: list, now: datetime = None,
                           week_start_day: int = None):
    """Roll active members of one team up into team figures.

    Team utilization is the plain mean of member utilization; a 10 hr/week
    member counts the same as a 40 hr/week member.

    Returns:
        Team analytics dict, or None if the team has no active members.
    """
    now = now or now_local()
    wanted = (team_name or "").strip().lower()
    members = [
        m for m in roster
        if m.get("team", "").lower() == wanted and m.get("status", "active") == "active"
    ]
    if not members:
        return None

    member_analytics = [compute_member_analytics(m, tasks, now, week_start_day) for m in members]
    windows = get_capacity_windows(now, week_start_day)

    # Team-level task counts, each task once even when several members share it
    team_tasks = {}
    for member in members:
        for t in member_tasks(member, tasks):
            team_tasks[t.get("id")] = t
    team_tasks = list(team_tasks.values())

    this_week_tasks = [t for t in team_tasks if _in_window(t.get("date_updated"), windows["this_week"])]
    completed_this_week = sum(1 for t in this_week_tasks if t.get("status_bucket") == COMPLETED)
    active = [t for t in team_tasks if t.get("status_bucket") != COMPLETED]

    tasks_by_status = {TODO: 0, IN_PROGRESS: 0, COMPLETED: 0}
    for t in team_tasks:
        bucket = t.get("status_bucket") or TODO
        if bucket != COMPLETED or _in_window(t.get("date_updated"), windows["this_month"]):
            tasks_by_status[bucket] += 1

    return {
        "team_name": members[0]["team"],
        "total_members": len(members),
        "total_weekly_capacity": sum(m.get("weekly_hours") or 0 for m in members),
        "team_utilization_this_week": _mean([m["utilization_this_week"] for m in member_analytics]),
        "team_utilization_last_week": _mean([m["utilization_last_week"] for m in member_analytics]),
        "team_utilization_this_month": _mean([m["utilization_this_month"] for m in member_analytics]),
        "team_utilization_3_month_avg": _mean([m["utilization_3_month_avg"] for m in member_analytics]),
        "upcoming_week_capacity": _mean([m["planned_utilization_next_week"] for m in member_analytics]),
        "upcoming_two_weeks_capacity": _mean([m["planned_utilization_next_two_weeks"] for m in member_analytics]),
        "upcoming_month_capacity": _mean([m["planned_utilization_next_month"] for m in member_analytics]),
        "average_efficiency_ratio": _mean([m["efficiency_ratio"] for m in member_analytics]),
        "total_active_tasks": len(active),
        "total_tasks_this_week": len(this_week_tasks),
        "total_completed_tasks_this_week": completed_this_week,
        "team_progress": round(completed_this_week / len(this_week_tasks) * 100, 1) if this_week_tasks else 0,
        "tasks_by_status": tasks_by_status,
        "members": member_analytics,
    }
