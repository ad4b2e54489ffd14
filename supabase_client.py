"""
Supabase (PostgREST) access for tasks, client configuration and the team roster.

Reads only. Every request carries a timeout and is retried with exponential
backoff on network errors and 5xx responses; anything still failing is raised
as SupabaseError for the route handlers to turn into an empty response.
"""

import json
import time
import logging
import urllib.parse
import urllib.request
import urllib.error
from datetime import datetime
from typing import Optional

import config
from models import parse_task, parse_client_config, parse_team_member

logger = logging.getLogger(__name__)


class SupabaseError(Exception):
    """The Supabase REST API could not be reached or rejected the query."""


def _headers() -> dict:
    return {
        "apikey": config.SUPABASE_KEY,
        "Authorization": f"Bearer {config.SUPABASE_KEY}",
        "Accept": "application/json",
    }


def supabase_request(table: str, params: list) -> list:
    """GET /rest/v1/<table> with PostgREST query params, retrying transient failures.

    Args:
        table: Table or view name
        params: List of (key, value) pairs; keys may repeat (e.g. two date filters)

    Returns:
        Decoded JSON rows.
    """
    if not config.SUPABASE_URL:
        raise SupabaseError("SUPABASE_URL is not configured")

    query = urllib.parse.urlencode(params)
    url = f"{config.SUPABASE_URL}/rest/v1/{table}?{query}"
    req = urllib.request.Request(url, headers=_headers())

    last_error = None
    for attempt in range(config.SUPABASE_MAX_RETRIES):
        try:
            with urllib.request.urlopen(req, timeout=config.SUPABASE_TIMEOUT) as response:
                data = json.loads(response.read().decode())
                logger.info(f"Supabase request success: {table} - returned {len(data)} rows")
                return data
        except urllib.error.HTTPError as e:
            logger.error(f"Supabase HTTP error: {e.code} - {e.reason} for {table}")
            if e.code < 500:
                # Bad filter / auth problem: retrying won't help
                raise SupabaseError(f"Supabase rejected query on {table} ({e.code})") from e
            last_error = e
        except (urllib.error.URLError, TimeoutError, json.JSONDecodeError) as e:
            logger.error(f"Supabase request error on {table} (attempt {attempt + 1}): {e}")
            last_error = e

        if attempt < config.SUPABASE_MAX_RETRIES - 1:
            time.sleep(config.SUPABASE_RETRY_DELAY * (2 ** attempt))

    raise SupabaseError(
        f"Supabase unavailable for {table} after {config.SUPABASE_MAX_RETRIES} attempts"
    ) from last_error


def supabase_request_paginated(table: str, params: list, page_size: int = None) -> list:
    """Fetch every page of a query (PostgREST caps responses at max-rows)."""
    page_size = page_size or config.SUPABASE_PAGE_SIZE
    all_rows = []
    offset = 0

    while True:
        page = supabase_request(table, params + [("limit", page_size), ("offset", offset)])
        all_rows.extend(page)

        # A short page means we've reached the end
        if len(page) < page_size:
            break
        offset += page_size

    if offset > 0:
        logger.info(f"Paginated fetch: {len(all_rows)} total rows from {table}")
    return all_rows


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def query_tasks(folder_name: Optional[str] = None, list_name: Optional[str] = None,
                updated_after: Optional[datetime] = None,
                updated_before: Optional[datetime] = None) -> list:
    """Fetch tasks, optionally filtered by grouping labels and an inclusive date_updated range."""
    params = [("select", "*")]
    if folder_name:
        params.append(("folder_name", f"eq.{folder_name}"))
    if list_name:
        params.append(("list_name", f"eq.{list_name}"))
    if updated_after is not None:
        params.append(("date_updated", f"gte.{_epoch_ms(updated_after)}"))
    if updated_before is not None:
        params.append(("date_updated", f"lte.{_epoch_ms(updated_before)}"))
    params.append(("order", "date_updated.desc"))

    rows = supabase_request_paginated(config.TASKS_TABLE, params)
    return [parse_task(row) for row in rows]


def query_client_configs() -> list:
    rows = supabase_request_paginated(
        config.CLIENTS_TABLE, [("select", "*"), ("order", "client_name.asc")]
    )
    return [parse_client_config(row) for row in rows]


def query_team_members() -> list:
    rows = supabase_request_paginated(
        config.TEAM_TABLE, [("select", "*"), ("order", "id.asc")]
    )
    return [parse_team_member(row) for row in rows]


def check_connection() -> dict:
    """Cheap connectivity probe for /health."""
    try:
        supabase_request(config.CLIENTS_TABLE, [("select", "id"), ("limit", 1)])
        return {"connected": True}
    except SupabaseError as e:
        return {"connected": False, "error": str(e)}
