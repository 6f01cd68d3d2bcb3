from datetime import date, datetime, timezone

import pytest

from toggl_jira_reporter import toggl as mod
from toggl_jira_reporter.http import ReportError
from tests.conftest import FakeResponse


def _row(description, username, *entries):
    return {
        "user_id": 1,
        "username": username,
        "project_id": 333,
        "description": description,
        "time_entries": [
            {"id": i, "seconds": secs, "start": start, "stop": start}
            for i, (secs, start) in enumerate(entries, start=1)
        ],
    }


class PagingSession:
    def __init__(self, pages):
        self.pages = list(pages)
        self.bodies = []
        self.urls = []

    def post(self, url, json=None, timeout=None):
        self.urls.append(url)
        self.bodies.append(dict(json))
        return self.pages.pop(0)


def test_make_toggl_session_uses_api_token_basic_auth():
    s = mod.make_toggl_session("secret")
    assert s.auth == ("secret", "api_token")
    assert s.headers["User-Agent"] == mod.USER_AGENT


def test_entries_from_row_flattens_and_converts_seconds_to_ms():
    row = _row("ABC-1 work", "Alice", (3600, "2025-10-10T09:00:00+02:00"), (90, "2025-10-11T10:00:00Z"))
    entries = mod.entries_from_row(row)
    assert len(entries) == 2
    first = entries[0]
    assert first.description == "ABC-1 work"
    assert first.person == "Alice"
    assert first.email == ""
    assert first.duration_ms == 3_600_000
    assert first.project_id == 333
    assert first.start.isoformat() == "2025-10-10T09:00:00+02:00"
    assert entries[1].duration_ms == 90_000
    assert entries[1].start == datetime(2025, 10, 11, 10, 0, tzinfo=timezone.utc)


def test_entries_from_row_tolerates_missing_fields():
    entries = mod.entries_from_row({"time_entries": [{"id": 5, "start": "2025-10-10T09:00:00Z"}, {"id": 6}]})
    assert len(entries) == 1
    assert entries[0].description == ""
    assert entries[0].person == ""
    assert entries[0].duration_ms == 0


def test_fetch_time_entries_follows_next_row_number():
    sess = PagingSession([
        FakeResponse(200, [_row("ABC-1", "Alice", (60, "2025-10-01T08:00:00Z"))], headers={"X-Next-Row-Number": "51"}),
        FakeResponse(200, [_row("ABC-2", "Bob", (120, "2025-10-02T08:00:00Z"))]),
    ])
    entries = mod.fetch_time_entries(sess, 111, 333, date(2025, 10, 1), date(2025, 10, 31))

    assert [e.description for e in entries] == ["ABC-1", "ABC-2"]
    assert sess.urls[0].endswith("/workspace/111/search/time_entries")
    assert sess.bodies[0] == {"start_date": "2025-10-01", "end_date": "2025-10-31", "project_ids": [333]}
    assert sess.bodies[1]["first_row_number"] == 51


def test_fetch_time_entries_stops_on_empty_page_and_omits_project_filter():
    sess = PagingSession([FakeResponse(200, [], headers={"X-Next-Row-Number": "10"})])
    assert mod.fetch_time_entries(sess, 111, None, date(2025, 1, 1), date(2025, 1, 2)) == []
    assert "project_ids" not in sess.bodies[0]
    assert len(sess.bodies) == 1


@pytest.mark.parametrize("status", [401, 403])
def test_fetch_time_entries_auth_failure(status):
    sess = PagingSession([FakeResponse(status)])
    with pytest.raises(ReportError, match="Toggl authentication failed") as ei:
        mod.fetch_time_entries(sess, 111, 333, date(2025, 1, 1), date(2025, 1, 2))
    assert ei.value.status_code == status


def test_fetch_time_entries_other_error(no_sleep):
    sess = PagingSession([FakeResponse(400, text="bad dates")])
    with pytest.raises(ReportError, match="Toggl: HTTP 400 - bad dates"):
        mod.fetch_time_entries(sess, 111, 333, date(2025, 1, 1), date(2025, 1, 2))


def test_date_windows_split_long_ranges():
    wins = list(mod.date_windows(date(2023, 1, 1), date(2024, 12, 31)))
    assert wins == [
        (date(2023, 1, 1), date(2023, 12, 31)),
        (date(2024, 1, 1), date(2024, 12, 30)),
        (date(2024, 12, 31), date(2024, 12, 31)),
    ]


def test_date_windows_empty_when_start_after_end():
    assert list(mod.date_windows(date(2025, 2, 1), date(2025, 1, 1))) == []


def test_fetch_all_entries_queries_each_window(monkeypatch):
    seen = []

    def fake_fetch(session, workspace_id, project_id, start, end, timeout=120, verbose=False):
        seen.append((start, end))
        return [start]

    monkeypatch.setattr(mod, "fetch_time_entries", fake_fetch)
    out = mod.fetch_all_entries(object(), 1, 2, date(2024, 1, 1), date(2025, 6, 30))
    assert seen == [(date(2024, 1, 1), date(2024, 12, 30)), (date(2024, 12, 31), date(2025, 6, 30))]
    assert out == [date(2024, 1, 1), date(2024, 12, 31)]
