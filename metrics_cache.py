"""
In-memory TTL cache for dashboard views.

One MetricsCache is created per process and handed to the route handlers and
the refresh job. Entries expire lazily on read; invalidate_all() flushes
everything before a prewarm. There is no size bound and no single-flight:
concurrent misses for the same key may both compute, last write wins.
"""

import time
import logging
import threading
from enum import Enum

import config

logger = logging.getLogger(__name__)


class RequestKind(Enum):
    PROJECT_ANALYTICS = "project-analytics"
    ALL_PROJECTS = "all-projects"
    COMPANY_PROJECTS = "company-projects"
    PORTFOLIO_SUMMARY = "portfolio-summary"
    TEAM_ANALYTICS = "team-analytics"
    ALL_TEAMS = "all-teams"


# Ordered key fields per request kind
KEY_FIELDS = {
    RequestKind.PROJECT_ANALYTICS: ("project", "time_period"),
    RequestKind.ALL_PROJECTS: ("type_filter", "status_filter", "time_period"),
    RequestKind.COMPANY_PROJECTS: ("company", "project_type", "status_filter", "time_period"),
    RequestKind.PORTFOLIO_SUMMARY: ("type_filter", "status_filter", "time_period"),
    RequestKind.TEAM_ANALYTICS: ("team_id",),
    RequestKind.ALL_TEAMS: (),
}

PROJECT_ANALYTICS_TTL = config.PROJECT_ANALYTICS_TTL
ALL_PROJECTS_TTL = config.ALL_PROJECTS_TTL
TEAM_ANALYTICS_TTL = config.TEAM_ANALYTICS_TTL

CACHE_TTLS = {
    RequestKind.PROJECT_ANALYTICS: PROJECT_ANALYTICS_TTL,
    RequestKind.ALL_PROJECTS: ALL_PROJECTS_TTL,
    RequestKind.COMPANY_PROJECTS: ALL_PROJECTS_TTL,
    RequestKind.PORTFOLIO_SUMMARY: ALL_PROJECTS_TTL,
    RequestKind.TEAM_ANALYTICS: TEAM_ANALYTICS_TTL,
    RequestKind.ALL_TEAMS: TEAM_ANALYTICS_TTL,
}


def make_cache_key(kind: RequestKind, **params) -> str:
    """Build a canonical key: fields always serialized in the kind's declared order.

    Raises:
        ValueError: on missing or unexpected parameters.
    """
    fields = KEY_FIELDS[kind]
    unexpected = set(params) - set(fields)
    missing = set(fields) - set(params)
    if unexpected or missing:
        raise ValueError(
            f"Bad cache key params for {kind.value}: missing={sorted(missing)} unexpected={sorted(unexpected)}"
        )
    parts = [f"{field}={'' if params[field] is None else params[field]}" for field in fields]
    return f"{kind.value}:{'|'.join(parts)}"


class MetricsCache:
    """Process-wide key -> value store with per-entry TTL (seconds)."""

    def __init__(self, clock=time.time, ttls: dict = None):
        self._clock = clock
        self._ttls = dict(CACHE_TTLS)
        if ttls:
            self._ttls.update(ttls)
        self._entries = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._last_refreshed = None

    def ttl_for(self, kind: RequestKind) -> int:
        return self._ttls[kind]

    def get(self, key: str):
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, created_at, ttl = entry
            if self._clock() > created_at + ttl:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def put(self, key: str, value, ttl: float):
        with self._lock:
            self._entries[key] = (value, self._clock(), ttl)

    def invalidate_all(self):
        with self._lock:
            count = len(self._entries)
            self._entries = {}
        logger.info(f"Cache invalidated: {count} entries dropped")

    def get_or_compute(self, kind: RequestKind, compute, **params):
        """Serve from cache or call compute() and cache its result.

        None results (not found) are returned but not cached.
        """
        key = make_cache_key(kind, **params)
        cached = self.get(key)
        if cached is not None:
            logger.info(f"Cache hit - {key}")
            return cached

        logger.info(f"Cache miss - {key}")
        value = compute()
        if value is not None:
            self.put(key, value, self.ttl_for(kind))
        return value

    def prewarm(self, targets: list) -> dict:
        """Compute and store each (kind, params, compute) target.

        A failing target is logged and skipped; the rest still run.

        Returns:
            {"warmed": [keys], "failed": [keys]}
        """
        warmed = []
        failed = []
        for kind, params, compute in targets:
            key = make_cache_key(kind, **params)
            try:
                value = compute()
                if value is not None:
                    self.put(key, value, self.ttl_for(kind))
                    warmed.append(key)
                else:
                    logger.warning(f"Prewarm returned no data for {key}")
            except Exception as e:
                logger.error(f"Failed to pre-warm {key}: {e}", exc_info=True)
                failed.append(key)

        with self._lock:
            self._last_refreshed = self._clock()
        logger.info(f"Prewarm finished: {len(warmed)} warmed, {len(failed)} failed")
        return {"warmed": warmed, "failed": failed}

    def stats(self) -> dict:
        with self._lock:
            now = self._clock()
            live = sum(1 for _, created_at, ttl in self._entries.values() if now <= created_at + ttl)
            return {
                "entries": len(self._entries),
                "live_entries": live,
                "hits": self._hits,
                "misses": self._misses,
                "last_refreshed": self._last_refreshed,
            }
