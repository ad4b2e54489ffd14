"""
Dashboard data services.

Glue between the Supabase repository and the pure aggregators: resolves time
periods, loads the right rows, computes metrics and shapes the JSON payloads
served by app.py. Repository failures (SupabaseError) propagate to the caller.
"""

import re
import logging
from datetime import datetime, timedelta

import config
from capacity import compute_team_analytics
from metrics import (
    compute_project_metrics, extract_team_members, calculate_project_health,
    calculate_burn_rate, find_overdue_tasks, find_upcoming_tasks, summarize_projects,
)
from metrics_cache import RequestKind
from models import (
    ProjectType, normalize_project_type, normalize_project_status,
    serialize_task, serialize_client, localize, now_local,
)
from supabase_client import query_tasks, query_client_configs, query_team_members

logger = logging.getLogger(__name__)

ALL = "all"
ALL_TIME = "all-time"

TIME_PERIODS = (
    "all-time", "this-month", "previous-month", "last-30-days",
    "this-quarter", "last-quarter", "this-year", "last-year",
)
MONTH_PERIOD_RE = re.compile(r"^month-(\d{4})-(\d{2})$")


class InvalidParameter(ValueError):
    """A request parameter (period, type or status filter) isn't recognized."""


# ============================================================================
# Periods and filters
# ============================================================================

def _month_floor(year: int, month: int, tz) -> datetime:
    return localize(datetime(year, month, 1), tz)


def _shift_month(year: int, month: int, months: int):
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def _just_before(moment: datetime) -> datetime:
    return moment - timedelta(microseconds=1)


def get_period_bounds(period: str, now: datetime = None):
    """Return (start, end) for a period name, either side None when open.

    Both bounds are inclusive. Besides the named periods, "month-YYYY-MM"
    selects a single historical month.

    Raises:
        InvalidParameter: for an unknown period.
    """
    now = now or now_local()
    tz = now.tzinfo
    period = period or ALL_TIME

    if period == "all-time":
        return None, None
    if period == "this-month":
        return _month_floor(now.year, now.month, tz), None
    if period == "previous-month":
        year, month = _shift_month(now.year, now.month, -1)
        return _month_floor(year, month, tz), _just_before(_month_floor(now.year, now.month, tz))
    if period == "last-30-days":
        return now - timedelta(days=30), None

    quarter_month = (now.month - 1) // 3 * 3 + 1
    if period == "this-quarter":
        return _month_floor(now.year, quarter_month, tz), None
    if period == "last-quarter":
        year, month = _shift_month(now.year, quarter_month, -3)
        return _month_floor(year, month, tz), _just_before(_month_floor(now.year, quarter_month, tz))
    if period == "this-year":
        return _month_floor(now.year, 1, tz), None
    if period == "last-year":
        return _month_floor(now.year - 1, 1, tz), _just_before(_month_floor(now.year, 1, tz))

    match = MONTH_PERIOD_RE.match(period)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            raise InvalidParameter(f"Unknown time period: {period}")
        next_year, next_month = _shift_month(year, month, 1)
        return _month_floor(year, month, tz), _just_before(_month_floor(next_year, next_month, tz))

    raise InvalidParameter(f"Unknown time period: {period}")


def canonical_type_filter(value) -> str:
    """'all' or a ProjectType value; accepts upstream spellings like 'On-going'."""
    if not value or str(value).lower() == ALL:
        return ALL
    project_type = normalize_project_type(value)
    if project_type is None:
        raise InvalidParameter(f"Unknown project type: {value}")
    return project_type.value


def canonical_status_filter(value) -> str:
    if not value or str(value).lower() == ALL:
        return ALL
    status = normalize_project_status(value)
    if status is None:
        raise InvalidParameter(f"Unknown project status: {value}")
    return status.value


def canonical_period(value) -> str:
    period = value or ALL_TIME
    get_period_bounds(period)  # validates
    return period


# ============================================================================
# Repository helpers
# ============================================================================

def get_client_configs() -> list:
    clients = query_client_configs()
    logger.info(f"Loaded {len(clients)} client configurations")
    return clients


def get_team_roster() -> list:
    roster = query_team_members()
    logger.info(f"Loaded {len(roster)} team members")
    return roster


def get_client_tasks(client: dict, period: str = ALL_TIME, now: datetime = None) -> list:
    """Tasks in the client's folder/list, limited to the period by date_updated."""
    start, end = get_period_bounds(period, now)
    tasks = query_tasks(
        folder_name=client.get("folder_name"),
        list_name=client.get("list_name"),
        updated_after=start,
        updated_before=end,
    )
    logger.info(f"Fetched {len(tasks)} tasks for {client.get('client_name')} ({period})")
    return tasks


def _roster_lookups(roster: list):
    """Billable name set and weekly hours by name."""
    names = {m["clickup_name"] for m in roster if m.get("clickup_name")}
    capacity = {m["clickup_name"]: m.get("weekly_hours") or 0 for m in roster if m.get("clickup_name")}
    if not names:
        logger.warning("Team roster is empty - no task time will count as billable")
    return names, capacity


# ============================================================================
# Project analytics
# ============================================================================

def build_project_analytics(client: dict, period: str, roster: list, now: datetime = None) -> dict:
    now = now or now_local()
    billable_names, capacity_by_name = _roster_lookups(roster)

    period_tasks = get_client_tasks(client, period, now)
    if period == ALL_TIME:
        all_time_tasks = period_tasks
    else:
        all_time_tasks = get_client_tasks(client, ALL_TIME, now)

    metrics = compute_project_metrics(client, period_tasks, all_time_tasks, billable_names, now)

    return {
        "client": serialize_client(client),
        "tasks": [serialize_task(t) for t in period_tasks],
        "metrics": metrics,
        "team_members": extract_team_members(period_tasks, capacity_by_name, now),
        "health": calculate_project_health(metrics),
        "burn_rate": calculate_burn_rate(metrics),
        "overdue_tasks": find_overdue_tasks(all_time_tasks, now),
        "upcoming_tasks": find_upcoming_tasks(all_time_tasks, now),
    }


def get_project_analytics(client_name: str, period: str = ALL_TIME, now: datetime = None):
    """Full analytics for one client, or None if there's no client configuration."""
    clients = get_client_configs()
    client = next((c for c in clients if c["client_name"] == client_name), None)
    if client is None:
        logger.warning(f"Client not found in mappings: {client_name}")
        return None

    analytics = build_project_analytics(client, period, get_team_roster(), now)
    logger.info(
        f"Analytics calculated for {client_name} - Tasks: {analytics['metrics']['task_count']}, "
        f"Hours: {analytics['metrics']['hours_spent']}"
    )
    return analytics


def get_aggregated_analytics(type_filter: str = ALL, status_filter: str = ALL,
                             period: str = ALL_TIME, company: str = None,
                             now: datetime = None) -> list:
    """Analytics for every client matching the type/status (and optional company) filters."""
    type_filter = canonical_type_filter(type_filter)
    status_filter = canonical_status_filter(status_filter)

    clients = get_client_configs()
    selected = []
    for client in clients:
        project_type = client.get("project_type")
        status = client.get("status")
        if type_filter != ALL and (project_type is None or project_type.value != type_filter):
            continue
        if status_filter != ALL and (status is None or status.value != status_filter):
            continue
        if company and client.get("company") != company.lower():
            continue
        selected.append(client)

    roster = get_team_roster()
    results = [build_project_analytics(client, period, roster, now) for client in selected]
    logger.info(f"Aggregated analytics for {len(results)} projects "
                f"(type={type_filter}, status={status_filter}, company={company or ALL}, period={period})")
    return results


def get_company_projects_analytics(company: str, project_type: str, status_filter: str = ALL,
                                   period: str = ALL_TIME, now: datetime = None) -> list:
    return get_aggregated_analytics(project_type, status_filter, period, company=company, now=now)


def get_portfolio_summary(type_filter: str = ALL, status_filter: str = ALL,
                          period: str = ALL_TIME, now: datetime = None) -> dict:
    """Totals across matching projects plus a lightweight per-project list."""
    analytics = get_aggregated_analytics(type_filter, status_filter, period, now=now)
    return {
        "summary": summarize_projects(analytics),
        "projects": [
            {
                "client_name": a["metrics"]["client_name"],
                "project_type": a["metrics"]["project_type"],
                "metrics": a["metrics"],
                "health": a["health"],
            }
            for a in analytics
        ],
    }


# ============================================================================
# Team analytics
# ============================================================================

def get_team_analytics(team_name: str, now: datetime = None):
    """Capacity analytics for one team, or None if it has no active members."""
    roster = get_team_roster()
    tasks = query_tasks()
    analytics = compute_team_analytics(team_name, roster, tasks, now, config.WEEK_START_DAY)
    if analytics is None:
        logger.warning(f"Team not found or has no active members: {team_name}")
    return analytics


def get_all_teams_analytics(now: datetime = None) -> list:
    roster = get_team_roster()
    tasks = query_tasks()
    team_names = sorted({m["team"] for m in roster if m.get("team") and m.get("status") == "active"})
    results = []
    for team_name in team_names:
        analytics = compute_team_analytics(team_name, roster, tasks, now, config.WEEK_START_DAY)
        if analytics is not None:
            results.append(analytics)
    return results


# ============================================================================
# Cache refresh
# ============================================================================

def _project_prewarm_targets() -> list:
    """Recurring views default to this month, fixed-scope views to all time."""
    defaults = [
        (ProjectType.RECURRING.value, "this-month"),
        (ProjectType.FIXED_SCOPE.value, ALL_TIME),
    ]
    targets = []
    for project_type, period in defaults:
        targets.append((
            RequestKind.ALL_PROJECTS,
            {"type_filter": project_type, "status_filter": ALL, "time_period": period},
            lambda pt=project_type, p=period: get_aggregated_analytics(pt, ALL, p),
        ))
    for company in config.PREWARM_COMPANIES:
        company = company.lower()
        for project_type, period in defaults:
            targets.append((
                RequestKind.COMPANY_PROJECTS,
                {"company": company, "project_type": project_type,
                 "status_filter": ALL, "time_period": period},
                lambda c=company, pt=project_type, p=period: get_company_projects_analytics(c, pt, ALL, p),
            ))
    return targets


def _team_prewarm_targets() -> list:
    return [
        (RequestKind.TEAM_ANALYTICS, {"team_id": team}, lambda t=team: get_team_analytics(t))
        for team in config.PREWARM_TEAMS
    ]


def refresh_cache(cache) -> dict:
    """Flush the cache and pre-warm the high-traffic views.

    Individual prewarm failures are logged by the cache and reported in
    "failed"; they never turn the refresh into a failure.
    """
    logger.info("Starting cache refresh...")
    cache.invalidate_all()
    result = cache.prewarm(_project_prewarm_targets() + _team_prewarm_targets())
    logger.info("Cache refresh completed")
    return {
        "success": True,
        "message": "Cache refreshed successfully",
        "warmed": len(result["warmed"]),
        "failed": result["failed"],
    }
