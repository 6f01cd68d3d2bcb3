"""Data models shared by the fetchers, the aggregator and the exporters."""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

@dataclass(frozen=True)
class TimeEntry:
    """A single Toggl time entry."""

    id: int
    description: str
    person: str
    start: datetime
    duration_ms: int
    email: str = ""  # Toggl v3 search does not expose it
    project_id: Optional[int] = None

@dataclass(frozen=True)
class IssueRecord:
    """Jira metadata for one issue key."""

    key: str
    issue_type: str = ""
    summary: str = ""
    budget: Optional[str] = None
    account: Optional[str] = None
    fix_versions: Tuple[str, ...] = ()
    estimate_hours: Optional[float] = None  # timeoriginalestimate in hours

@dataclass(frozen=True)
class ReportRow:
    issue_type: str
    key: str
    summary: str
    budget: str
    account: str
    person: str
    start_date: str  # YYYY-MM-DD
    time_used_hhmm: str
    time_used_decimal: str

@dataclass(frozen=True)
class VersionRow:
    version: str
    total_estimate_sum: float
    worked_hours_in_period: float
    total_worked_hours: float
    difference: float

def freeze_issues(issues: Mapping[str, Optional[IssueRecord]]) -> Mapping[str, Optional[IssueRecord]]:
    """Return a read-only copy of ``issues`` keyed by upper-cased issue key.

    A ``None`` value means the key was looked up and no record came back.
    """
    return MappingProxyType({key.upper(): rec for key, rec in issues.items()})
