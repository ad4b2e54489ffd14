"""
Cron entry point for the dashboard cache refresh.

Calls GET /api/background-refresh with the shared secret and exits 0 on
success, 1 on any failure, so the hosting provider's cron (Railway/Render)
can report the run status. Usage:

    python refresh_cron.py
"""

import sys
import json
import logging
import urllib.parse
import urllib.request
import urllib.error

import config

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds


def _masked(url: str) -> str:
    """Hide the secret, raw or urlencoded, before the URL is logged."""
    secret = config.BACKGROUND_REFRESH_SECRET
    if not secret:
        return url
    for form in (urllib.parse.quote_plus(secret), urllib.parse.quote(secret, safe=""), secret):
        url = url.replace(form, "***")
    return url


def build_refresh_url(base_url: str = None, secret: str = None) -> str:
    base_url = base_url or config.REFRESH_URL
    secret = config.BACKGROUND_REFRESH_SECRET if secret is None else secret
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urllib.parse.urlencode({'secret': secret})}"


def trigger_refresh(url: str = None, timeout: int = REQUEST_TIMEOUT) -> bool:
    """Hit the refresh endpoint once. Returns True when the server reports success."""
    url = url or build_refresh_url()
    logger.info(f"Triggering cache refresh: {_masked(url)}")

    req = urllib.request.Request(url, headers={"Accept": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            result = json.loads(response.read().decode())
    except urllib.error.HTTPError as e:
        logger.error(f"Refresh failed: HTTP {e.code} - {e.reason}")
        return False
    except (urllib.error.URLError, TimeoutError, json.JSONDecodeError) as e:
        logger.error(f"Refresh request error: {e}")
        return False

    if not result.get("success"):
        logger.error(f"Refresh reported failure: {result.get('message')}")
        return False

    logger.info(f"Refresh completed: {result.get('warmed', 0)} views warmed, "
                f"{len(result.get('failed') or [])} failed")
    return True


def main() -> int:
    if not config.BACKGROUND_REFRESH_SECRET:
        logger.error("BACKGROUND_REFRESH_SECRET is not set")
        return 1
    return 0 if trigger_refresh() else 1


if __name__ == "__main__":
    sys.exit(main())
