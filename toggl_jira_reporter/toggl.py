"""
Toggl Track client (Reports API v3, detailed time entry search).
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import requests
from dateutil import parser as date_parser

from .http import ReportError, describe_http_error, http_post_with_retry, make_session
from .models import TimeEntry
from .util import vprint

TOGGL_REPORTS_URL = "https://api.track.toggl.com/reports/api/v3"
USER_AGENT = "toggl-jira-reporter"
# The search endpoint rejects ranges longer than a year
MAX_WINDOW_DAYS = 365
# No Toggl account holds entries before this day
EARLIEST_DATE = date(2006, 1, 1)

def make_toggl_session(api_token: str, **kwargs) -> requests.Session:
    """Session authenticated with a Toggl API token (password is the literal 'api_token')."""
    return make_session(api_token, "api_token", headers={"User-Agent": USER_AGENT}, **kwargs)

def entries_from_row(row: Dict[str, Any]) -> List[TimeEntry]:
    """Flatten one search result row (shared description/user) into TimeEntry objects."""
    description = row.get("description") or ""
    person = row.get("username") or ""
    project_id = row.get("project_id")
    out: List[TimeEntry] = []
    for te in row.get("time_entries") or []:
        start_raw = te.get("start")
        if not start_raw:
            continue
        out.append(TimeEntry(
            id=te.get("id") or 0,
            description=description,
            person=person,
            start=date_parser.isoparse(start_raw),
            duration_ms=int(te.get("seconds") or 0) * 1000,
            email="",
            project_id=project_id,
        ))
    return out

def fetch_time_entries(session: requests.Session, workspace_id: int, project_id: Optional[int],
                       start_date: date, end_date: date, timeout: int = 120,
                       verbose: bool = False) -> List[TimeEntry]:
    """Fetch all time entries between two dates (both inclusive).

    Follows the X-Next-Row-Number header until Toggl stops sending it.

    Args:
        session: Session from make_toggl_session().
        workspace_id: Toggl workspace id.
        project_id: Restrict to this project; falsy means all projects.
        start_date: First day included.
        end_date: Last day included.
        timeout: Per-request timeout seconds.
        verbose: Whether to print per-page progress.

    Returns:
        List[TimeEntry]: Entries in API order.

    Raises:
        ReportError: On authentication failures or unexpected responses.
    """
    url = f"{TOGGL_REPORTS_URL}/workspace/{workspace_id}/search/time_entries"
    entries: List[TimeEntry] = []
    first_row: Optional[int] = None
    page = 1
    while True:
        body: Dict[str, Any] = {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        }
        if project_id:
            body["project_ids"] = [project_id]
        if first_row is not None:
            body["first_row_number"] = first_row
        vprint(verbose, f"  Toggl {start_date} .. {end_date}: page {page}")
        r = http_post_with_retry(session, url, json=body, timeout=timeout, service="Toggl")
        if r.status_code in (401, 403):
            raise ReportError(
                "Toggl authentication failed. Check api_token and workspace_id in the [toggl] section.",
                r.status_code,
            )
        if not 200 <= r.status_code < 300:
            raise ReportError(describe_http_error(r, "Toggl"), r.status_code)

        rows = r.json() or []
        if not rows:
            break
        for row in rows:
            entries.extend(entries_from_row(row))

        nxt = r.headers.get("X-Next-Row-Number")
        try:
            first_row = int(nxt) if nxt else None
        except ValueError:
            first_row = None
        if first_row is None:
            break
        page += 1
    return entries

def date_windows(start: date, end: date, max_days: int = MAX_WINDOW_DAYS):
    """Split [start, end] (inclusive) into consecutive windows of at most max_days days."""
    cur = start
    while cur <= end:
        stop = min(cur + timedelta(days=max_days - 1), end)
        yield cur, stop
        cur = stop + timedelta(days=1)

def fetch_all_entries(session: requests.Session, workspace_id: int, project_id: Optional[int],
                      history_start: date, end_date: date, timeout: int = 120,
                      verbose: bool = False) -> List[TimeEntry]:
    """All entries from history_start up to end_date, fetched one window at a time."""
    entries: List[TimeEntry] = []
    for win_start, win_end in date_windows(history_start, end_date):
        entries.extend(fetch_time_entries(session, workspace_id, project_id, win_start, win_end,
                                          timeout=timeout, verbose=verbose))
    return entries
