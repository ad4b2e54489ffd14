"""
Tests for the cron entry point that triggers the background refresh.
"""
import json
import urllib.error
import urllib.parse
from unittest.mock import MagicMock

import pytest

import config
import refresh_cron


def _response(payload):
    response = MagicMock()
    response.__enter__.return_value.read.return_value = json.dumps(payload).encode()
    return response


@pytest.fixture
def urlopen(monkeypatch):
    monkeypatch.setattr(config, "BACKGROUND_REFRESH_SECRET", "s3cret")
    monkeypatch.setattr(config, "REFRESH_URL", "https://dash.example.com/api/background-refresh")
    mock = MagicMock()
    monkeypatch.setattr(refresh_cron.urllib.request, "urlopen", mock)
    return mock


class TestRefreshCron:

    def test_build_url(self, urlopen):
        assert refresh_cron.build_refresh_url() == \
            "https://dash.example.com/api/background-refresh?secret=s3cret"
        assert refresh_cron.build_refresh_url("http://x/refresh?force=1", "a b") == \
            "http://x/refresh?force=1&secret=a+b"

    def test_success(self, urlopen):
        urlopen.return_value = _response({"success": True, "warmed": 6, "failed": []})

        assert refresh_cron.main() == 0
        assert urlopen.call_args[1]["timeout"] == 30

    def test_server_reports_failure(self, urlopen):
        urlopen.return_value = _response({"success": False, "message": "Cache refresh failed"})
        assert refresh_cron.main() == 1

    def test_unauthorized(self, urlopen):
        urlopen.side_effect = urllib.error.HTTPError("u", 401, "Unauthorized", None, None)
        assert refresh_cron.main() == 1

    def test_unreachable(self, urlopen):
        urlopen.side_effect = urllib.error.URLError("connection refused")
        assert refresh_cron.trigger_refresh() is False

    def test_missing_secret(self, urlopen, monkeypatch):
        monkeypatch.setattr(config, "BACKGROUND_REFRESH_SECRET", "")

        assert refresh_cron.main() == 1
        urlopen.assert_not_called()

    def test_secret_masked_in_logs(self, urlopen, caplog):
        urlopen.return_value = _response({"success": True})

        with caplog.at_level("INFO"):
            refresh_cron.trigger_refresh()

        assert "s3cret" not in caplog.text

    @pytest.mark.parametrize("secret", ["a+b/c=d", "tok&en key", "p%40ss"])
    def test_encoded_secret_masked_in_logs(self, urlopen, caplog, monkeypatch, secret):
        monkeypatch.setattr(config, "BACKGROUND_REFRESH_SECRET", secret)
        urlopen.return_value = _response({"success": True})

        with caplog.at_level("INFO"):
            refresh_cron.trigger_refresh()

        encoded = urllib.parse.quote_plus(secret)
        assert encoded not in caplog.text
        assert secret not in caplog.text
        assert "secret=***" in caplog.text
