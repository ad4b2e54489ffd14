"""
Record normalization for rows read from Supabase.

Rows are turned into plain dicts with coerced numbers, parsed timestamps and
normalized enums right at the repository boundary, so nothing downstream ever
compares raw upstream strings (e.g. "On-going" vs "On-Going").
"""

import math
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

import pytz

import config

logger = logging.getLogger(__name__)

MS_PER_HOUR = 1000 * 60 * 60


class ProjectType(str, Enum):
    RECURRING = "Recurring"
    FIXED_SCOPE = "FixedScope"


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    NOT_ACTIVE = "Not Active"
    PAUSED = "Paused"
    COMPLETED = "Completed"


# Raw project_type spellings seen in client_mappings, keyed after _normalize_label
PROJECT_TYPE_ALIASES = {
    "on going": ProjectType.RECURRING,
    "ongoing": ProjectType.RECURRING,
    "recurring": ProjectType.RECURRING,
    "retainer": ProjectType.RECURRING,
    "one time": ProjectType.FIXED_SCOPE,
    "onetime": ProjectType.FIXED_SCOPE,
    "fixed scope": ProjectType.FIXED_SCOPE,
    "fixedscope": ProjectType.FIXED_SCOPE,
}

PROJECT_STATUS_ALIASES = {
    "active": ProjectStatus.ACTIVE,
    "not active": ProjectStatus.NOT_ACTIVE,
    "inactive": ProjectStatus.NOT_ACTIVE,
    "paused": ProjectStatus.PAUSED,
    "completed": ProjectStatus.COMPLETED,
    "complete": ProjectStatus.COMPLETED,
}

# Task status buckets
TODO = "todo"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"

STATUS_BUCKETS = {
    "to do": TODO,
    "todo": TODO,
    "backlog": TODO,
    "planning": TODO,
    "open": TODO,
    "in progress": IN_PROGRESS,
    "review": IN_PROGRESS,
    "in review": IN_PROGRESS,
    "client review": IN_PROGRESS,
    "complete": COMPLETED,
    "completed": COMPLETED,
    "approved": COMPLETED,
    "closed": COMPLETED,
}


def _normalize_label(value) -> str:
    """Lowercase and collapse '-', '_' and repeated whitespace to single spaces."""
    if value is None:
        return ""
    text = str(value).strip().lower().replace("-", " ").replace("_", " ")
    return " ".join(text.split())


def classify_status(status) -> str:
    """Map a ClickUp status string to todo / in_progress / completed.

    Unknown statuses fall into todo instead of being dropped.
    """
    return STATUS_BUCKETS.get(_normalize_label(status), TODO)


def normalize_project_type(value) -> Optional[ProjectType]:
    if isinstance(value, ProjectType):
        return value
    return PROJECT_TYPE_ALIASES.get(_normalize_label(value))


def normalize_project_status(value) -> Optional[ProjectStatus]:
    if isinstance(value, ProjectStatus):
        return value
    return PROJECT_STATUS_ALIASES.get(_normalize_label(value))


def _finite_float(value) -> Optional[float]:
    """float(value), or None for null, garbage, NaN and infinities."""
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def to_int(value) -> int:
    """Coerce a nullable numeric column to a non-negative int (bad data -> 0)."""
    number = _finite_float(value)
    if number is None:
        return 0
    return max(int(number), 0)


def to_float(value) -> float:
    number = _finite_float(value)
    return 0.0 if number is None else number


def ms_to_hours(ms) -> float:
    return to_int(ms) / MS_PER_HOUR


def get_timezone():
    return pytz.timezone(config.DASHBOARD_TIMEZONE)


def now_local() -> datetime:
    """Current time in the dashboard timezone."""
    return datetime.now(get_timezone())


def localize(naive: datetime, tz) -> datetime:
    """Attach tz to a naive local datetime (pytz zones need localize for DST)."""
    if hasattr(tz, "localize"):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a millisecond epoch (int or numeric string) into a tz-aware datetime.

    Unparseable or out-of-range values give None.
    """
    if value is None or value == "":
        return None
    try:
        ms = float(value)
    except (TypeError, ValueError):
        # Some mirrors store ISO strings instead of epochs
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = pytz.utc.localize(parsed)
            return parsed.astimezone(get_timezone())
        except (ValueError, OverflowError):
            return None
    if not math.isfinite(ms):
        return None
    try:
        return datetime.fromtimestamp(int(ms) / 1000, tz=pytz.utc).astimezone(get_timezone())
    except (ValueError, OverflowError, OSError):
        logger.warning(f"Ignoring out-of-range timestamp: {value}")
        return None


def parse_assignees(value) -> list:
    """Split the comma-separated assignees column into trimmed names."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        names = value
    else:
        names = str(value).split(",")
    return [str(name).strip() for name in names if str(name).strip()]


def parse_task(row: dict) -> dict:
    """Normalize a clickup_supabase row."""
    status = (row.get("status") or "").strip().lower()
    return {
        "id": row.get("task_id") or row.get("id"),
        "name": row.get("task_name") or row.get("name") or "",
        "status": status,
        "status_bucket": classify_status(status),
        "time_spent_ms": to_int(row.get("time_spent")),
        "time_estimate_ms": to_int(row.get("time_estimate")),
        "assignees": parse_assignees(row.get("assignees")),
        "date_created": parse_timestamp(row.get("date_created")),
        "date_updated": parse_timestamp(row.get("date_updated")),
        "due_date": parse_timestamp(row.get("due_date")),
        "space": row.get("space_name") or "",
        "folder": row.get("folder_name") or "",
        "list": row.get("list_name") or "",
        "priority": row.get("priority"),
    }


def parse_client_config(row: dict) -> dict:
    """Normalize a client_mappings row."""
    company = row.get("company")
    client_name = (row.get("client_name") or "").strip()
    return {
        "id": row.get("id"),
        "client_name": client_name,
        "project_type": normalize_project_type(row.get("project_type")),
        "status": normalize_project_status(row.get("status")),
        "available_hours": to_float(row.get("available_hours")),
        "revenue": to_float(row.get("revenue")),
        "average_delivery_hourly": to_float(row.get("average_delivery_hourly")),
        "folder_name": row.get("clickup_folder_name") or client_name,
        "folder_id": row.get("clickup_folder_id"),
        "list_name": row.get("clickup_list_name"),
        "list_id": row.get("clickup_list_id"),
        "company": company.strip().lower() if company else None,
    }


def parse_team_member(row: dict) -> dict:
    """Normalize a team_members row."""
    clickup_name = (row.get("clickup_name") or row.get("name") or "").strip()
    return {
        "id": row.get("id"),
        "clickup_name": clickup_name,
        "display_name": row.get("display_name") or clickup_name,
        "team": (row.get("team") or "").strip(),
        "role": row.get("role") or "",
        "weekly_hours": to_float(row.get("weekly_hours")),
        "status": (row.get("status") or "active").strip().lower(),
    }


def serialize_task(task: dict) -> dict:
    """JSON-ready copy of a normalized task (datetimes as ISO strings)."""
    serializable = dict(task)
    for k in ("date_created", "date_updated", "due_date"):
        if isinstance(serializable.get(k), datetime):
            serializable[k] = serializable[k].isoformat()
    return serializable


def serialize_client(client: dict) -> dict:
    serializable = dict(client)
    for k in ("project_type", "status"):
        if isinstance(serializable.get(k), Enum):
            serializable[k] = serializable[k].value
    return serializable
