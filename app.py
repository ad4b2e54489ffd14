"""
Project Analytics Dashboard - ClickUp + Supabase metrics API

Serves project financials (revenue, delivery cost, margin, utilization),
task health and team capacity as JSON for the dashboard front end. Views are
cached in memory with per-view TTLs and can be flushed + pre-warmed on demand,
by an external cron hitting /api/background-refresh, or by the optional
in-process scheduler.
"""

import os
import atexit
import logging
from flask import Flask, jsonify, request
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

import config
from data_services import (
    get_project_analytics, get_aggregated_analytics, get_company_projects_analytics,
    get_portfolio_summary, get_team_analytics, get_all_teams_analytics, refresh_cache,
    canonical_type_filter, canonical_status_filter, canonical_period, InvalidParameter,
)
from decorators import secret_required
from metrics_cache import MetricsCache, RequestKind
from models import now_local
from supabase_client import SupabaseError, check_connection

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# One cache per process, shared by request threads and the scheduler
dashboard_cache = MetricsCache()

# Payload returned in place of data when a view can't be computed
EMPTY_RESULTS = {
    "project-analytics": None,
    "team-analytics": None,
    "portfolio-summary": None,
    "all-projects": [],
    "company-projects": [],
    "all-teams": [],
}


# =============================================================================
# Routes
# =============================================================================

@app.route("/health")
def health():
    """Health check endpoint - tests Supabase connection."""
    supabase = check_connection()
    result = {
        "status": "ok" if supabase["connected"] else "error",
        "config": {
            "supabase_url_set": bool(config.SUPABASE_URL),
            "supabase_key_set": bool(config.SUPABASE_KEY),
            "timezone": config.DASHBOARD_TIMEZONE,
            "scheduler_enabled": config.ENABLE_SCHEDULER,
        },
        "supabase": supabase,
        "cache": dashboard_cache.stats(),
    }
    logger.info(f"Health check result: {result['status']}")
    return jsonify(result)


def _dashboard_view(view_type: str, args):
    """Resolve one GET /api/dashboard request through the cache.

    Filters are canonicalized only for the views that use them.

    Returns (payload, status_code).
    """
    if view_type == "project-analytics":
        project = args.get("project")
        if not project:
            return {"error": "Project name required"}, 400
        period = canonical_period(args.get("timePeriod"))
        data = dashboard_cache.get_or_compute(
            RequestKind.PROJECT_ANALYTICS,
            lambda: get_project_analytics(project, period),
            project=project, time_period=period,
        )
        if data is None:
            return {"data": None, "error": "Project not found"}, 404
        return {"data": data}, 200

    if view_type == "all-projects":
        type_filter = canonical_type_filter(args.get("typeFilter"))
        status_filter = canonical_status_filter(args.get("statusFilter"))
        period = canonical_period(args.get("timePeriod"))
        data = dashboard_cache.get_or_compute(
            RequestKind.ALL_PROJECTS,
            lambda: get_aggregated_analytics(type_filter, status_filter, period),
            type_filter=type_filter, status_filter=status_filter, time_period=period,
        )
        return {"data": data}, 200

    if view_type == "company-projects":
        company = (args.get("company") or "").strip().lower()
        project_type = args.get("projectType")
        if not company or not project_type:
            return {"error": "Company and project type required"}, 400
        project_type = canonical_type_filter(project_type)
        status_filter = canonical_status_filter(args.get("statusFilter"))
        period = canonical_period(args.get("timePeriod"))
        data = dashboard_cache.get_or_compute(
            RequestKind.COMPANY_PROJECTS,
            lambda: get_company_projects_analytics(company, project_type, status_filter, period),
            company=company, project_type=project_type, status_filter=status_filter, time_period=period,
        )
        return {"data": data}, 200

    if view_type == "portfolio-summary":
        type_filter = canonical_type_filter(args.get("typeFilter"))
        status_filter = canonical_status_filter(args.get("statusFilter"))
        period = canonical_period(args.get("timePeriod"))
        data = dashboard_cache.get_or_compute(
            RequestKind.PORTFOLIO_SUMMARY,
            lambda: get_portfolio_summary(type_filter, status_filter, period),
            type_filter=type_filter, status_filter=status_filter, time_period=period,
        )
        return {"data": data}, 200

    if view_type == "team-analytics":
        team_id = args.get("teamId")
        if not team_id:
            return {"error": "Team ID required"}, 400
        data = dashboard_cache.get_or_compute(
            RequestKind.TEAM_ANALYTICS,
            lambda: get_team_analytics(team_id),
            team_id=team_id,
        )
        if data is None:
            return {"data": None, "error": "Team not found"}, 404
        return {"data": data}, 200

    if view_type == "all-teams":
        data = dashboard_cache.get_or_compute(RequestKind.ALL_TEAMS, get_all_teams_analytics)
        return {"data": data}, 200

    return {"error": "Invalid type parameter"}, 400


@app.route("/api/dashboard")
def api_dashboard():
    """Get a dashboard view: ?type=project-analytics|all-projects|company-projects|portfolio-summary|team-analytics|all-teams"""
    view_type = request.args.get("type")
    logger.info(f"API request: {dict(request.args)}")
    try:
        payload, status = _dashboard_view(view_type, request.args)
        return jsonify(payload), status
    except InvalidParameter as e:
        return jsonify({"error": str(e)}), 400
    except SupabaseError as e:
        logger.error(f"Upstream error in api_dashboard ({view_type}): {e}", exc_info=True)
        return jsonify({
            "data": EMPTY_RESULTS.get(view_type),
            "error": "Data source unavailable, please try again shortly",
        }), 503
    except Exception as e:
        logger.error(f"Error in api_dashboard ({view_type}): {e}", exc_info=True)
        return jsonify({"data": EMPTY_RESULTS.get(view_type), "error": "Internal server error"}), 500


def _run_refresh():
    """Refresh the cache, translating unexpected failures into a response payload."""
    try:
        return refresh_cache(dashboard_cache), 200
    except Exception as e:
        logger.error(f"Cache refresh failed: {e}", exc_info=True)
        return {"success": False, "message": "Cache refresh failed"}, 500


@app.route("/api/dashboard", methods=["POST"])
def api_dashboard_action():
    """Manually trigger a cache refresh: ?action=refresh-cache"""
    if request.args.get("action") != "refresh-cache":
        return jsonify({"error": "Invalid action"}), 400

    logger.info("Manual cache refresh triggered")
    result, status = _run_refresh()
    return jsonify(result), status


@app.route("/api/background-refresh")
@secret_required
def api_background_refresh():
    """Cache refresh entry point for the external cron (refresh_cron.py)."""
    logger.info("Background refresh started")
    result, status = _run_refresh()
    result["timestamp"] = now_local().isoformat()
    return jsonify(result), status


@app.route("/api/background-refresh", methods=["POST"])
def api_background_refresh_health():
    """Liveness check for the background refresh service."""
    return jsonify({
        "status": "healthy",
        "timestamp": now_local().isoformat(),
        "message": "Background refresh service is running",
    })


@app.route("/api/cache-status")
def api_cache_status():
    """Get the status of the in-memory cache."""
    return jsonify(dashboard_cache.stats())


# ============================================================================
# Scheduler Setup - optional in-process alternative to the external cron
# ============================================================================

def scheduled_refresh():
    result, _ = _run_refresh()
    logger.info(f"Scheduled cache refresh: {result.get('message')}")


def init_scheduler():
    """Initialize the background scheduler for periodic cache refresh."""
    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(
        func=scheduled_refresh,
        trigger=IntervalTrigger(minutes=config.REFRESH_INTERVAL_MINUTES),
        id='dashboard_cache_refresh',
        name=f'Refresh dashboard cache every {config.REFRESH_INTERVAL_MINUTES} minutes',
        replace_existing=True
    )
    scheduler.start()
    logger.info(f"Scheduler started - cache refresh every {config.REFRESH_INTERVAL_MINUTES} minutes")

    # Ensure scheduler shuts down cleanly
    atexit.register(lambda: scheduler.shutdown())

    return scheduler


# Only start if not in debug reload mode
if config.ENABLE_SCHEDULER and (os.environ.get('WERKZEUG_RUN_MAIN') != 'true' or not app.debug):
    _scheduler = init_scheduler()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(debug=True, port=port, host="127.0.0.1")
