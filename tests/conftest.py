import os
import sys
# Ensure project root is importable for tests, regardless of runner CWD
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import types
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pytest
import requests

from toggl_jira_reporter.models import TimeEntry


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_data: Optional[Any] = None,
        text: str = "",
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status_code = status_code
        self._json_data = json_data
        self.text = text
        self.headers = headers or {}

    def json(self):
        return self._json_data

    def raise_for_status(self):
        if 400 <= self.status_code:
            err = requests.HTTPError(f"HTTP {self.status_code}")
            err.response = types.SimpleNamespace(status_code=self.status_code, text=self.text)
            raise err


def entry(description, person="Alice", hours=1.0, start="2025-10-10T09:00:00+00:00", email="", id=1):
    """Build a TimeEntry with duration given in hours."""
    return TimeEntry(
        id=id,
        description=description,
        person=person,
        start=datetime.fromisoformat(start),
        duration_ms=int(round(hours * 3_600_000)),
        email=email,
    )


@pytest.fixture
def no_sleep(monkeypatch):
    """Make time.sleep a no-op for faster retry tests."""
    monkeypatch.setattr("time.sleep", lambda *_args, **_kwargs: None)
    yield


@pytest.fixture
def tmp_config_file(tmp_path):
    """Create a minimal valid config.ini and return its path."""
    p = tmp_path / "config.ini"
    p.write_text(
        "[toggl]\n"
        "api_token = toggltok\n"
        "workspace_id = 111\n"
        "organization_id = 222\n"
        "project_id = 333\n"
        "\n"
        "[jira]\n"
        "base_url = https://example.atlassian.net/\n"
        "email = user@example.com\n"
        "api_token = token123\n"
        "verify_ssl = true\n",
        encoding="utf-8",
    )
    return p


# Expose utilities for tests
__all__ = ["FakeResponse", "entry"]
