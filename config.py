"""
Configuration for the Project Analytics Dashboard.

Everything is read from environment variables once at import time so the
values can be set in the hosting provider's dashboard (Render/Railway) or a
local .env loaded by the shell.
"""

import os


def _env_list(name: str, default: str) -> list:
    """Parse a comma-separated env var into a list of trimmed, non-empty strings."""
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Supabase (PostgREST)
SUPABASE_URL = os.environ.get("SUPABASE_URL", "").rstrip("/")
SUPABASE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_KEY", "")
TASKS_TABLE = os.environ.get("TASKS_TABLE", "clickup_supabase")
CLIENTS_TABLE = os.environ.get("CLIENTS_TABLE", "client_mappings")
TEAM_TABLE = os.environ.get("TEAM_TABLE", "team_members")

SUPABASE_TIMEOUT = int(os.environ.get("SUPABASE_TIMEOUT", 30))
SUPABASE_MAX_RETRIES = int(os.environ.get("SUPABASE_MAX_RETRIES", 3))
SUPABASE_RETRY_DELAY = float(os.environ.get("SUPABASE_RETRY_DELAY", 1.0))
SUPABASE_PAGE_SIZE = int(os.environ.get("SUPABASE_PAGE_SIZE", 1000))

# Time handling
DASHBOARD_TIMEZONE = os.environ.get("DASHBOARD_TIMEZONE", "US/Eastern")
WEEK_START_DAY = int(os.environ.get("WEEK_START_DAY", 0))  # 0 = Monday

# Cache TTLs (seconds)
PROJECT_ANALYTICS_TTL = int(os.environ.get("PROJECT_ANALYTICS_TTL", 300))
ALL_PROJECTS_TTL = int(os.environ.get("ALL_PROJECTS_TTL", 180))
TEAM_ANALYTICS_TTL = int(os.environ.get("TEAM_ANALYTICS_TTL", 120))

# Cache refresh
BACKGROUND_REFRESH_SECRET = os.environ.get("BACKGROUND_REFRESH_SECRET", "")
PREWARM_COMPANIES = _env_list("PREWARM_COMPANIES", "veza,shadow")
PREWARM_TEAMS = _env_list("PREWARM_TEAMS", "Design,Development,SEO,QA")
ENABLE_SCHEDULER = _env_bool("ENABLE_SCHEDULER")
REFRESH_INTERVAL_MINUTES = int(os.environ.get("REFRESH_INTERVAL_MINUTES", 10))
REFRESH_URL = os.environ.get("REFRESH_URL", "http://localhost:5000/api/background-refresh")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
