"""
Cross-reference Toggl time entries with Jira issue metadata.

Two reports come out of here:
- per (issue, person) rows for the reporting period;
- per fix-version rows comparing Jira estimates with hours booked in Toggl,
  both in the period and over all time.

Everything is computed from plain arguments; nothing in this module performs I/O
except through the estimate callable handed to build_version_rows().
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .keys import extract_issue_key
from .models import IssueRecord, ReportRow, TimeEntry, VersionRow

MS_PER_HOUR = 3_600_000

def ms_to_hours(ms: int) -> float:
    return ms / MS_PER_HOUR

def round_hours(value: float) -> float:
    """Round to 2 places, halves away from zero (no banker's rounding).

    Results that round to zero are always +0.0, never -0.0.
    """
    return float(Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)) + 0.0

def format_decimal_hours(total_ms: int) -> str:
    """Duration as decimal hours with exactly two places, e.g. '1.25'."""
    return f"{round_hours(ms_to_hours(total_ms)):.2f}"

def format_hhmm(total_ms: int) -> str:
    """Duration as HH:MM; hours are not capped at 24 or 99, seconds are dropped."""
    total_seconds = total_ms // 1000
    hours, rest = divmod(total_seconds, 3600)
    return f"{hours:02d}:{rest // 60:02d}"

def _lookup(issues: Mapping[str, Optional[IssueRecord]], key: str) -> Optional[IssueRecord]:
    return issues.get(key.upper())

def build_report_rows(period_entries: Iterable[TimeEntry],
                      issues: Mapping[str, Optional[IssueRecord]]) -> List[ReportRow]:
    """Group period entries by (issue key, person, email) into report rows.

    Entries whose description does not start with an issue key are skipped.
    Keys without a Jira record still produce a row, with the issue columns empty.

    Args:
        period_entries: Toggl entries inside the reporting period.
        issues: Resolved Jira records keyed by upper-cased issue key.

    Returns:
        List[ReportRow]: Rows sorted by key, then person (case-insensitive).
    """
    groups: Dict[Tuple[str, str, str], Dict[str, object]] = {}
    for entry in period_entries:
        key = extract_issue_key(entry.description)
        if not key:
            continue
        acc = groups.get((key, entry.person, entry.email))
        if acc is None:
            groups[(key, entry.person, entry.email)] = {"ms": entry.duration_ms, "start": entry.start}
            continue
        acc["ms"] += entry.duration_ms
        if entry.start < acc["start"]:
            acc["start"] = entry.start

    ordered = sorted(
        groups.items(),
        key=lambda kv: (kv[0][0].lower(), kv[0][1].lower(), kv[0][2].lower(), kv[0][1], kv[0][2]),
    )

    rows: List[ReportRow] = []
    for (key, person, _email), acc in ordered:
        issue = _lookup(issues, key)
        rows.append(ReportRow(
            issue_type=(issue.issue_type if issue else "") or "",
            key=key,
            summary=(issue.summary if issue else "") or "",
            budget=(issue.budget if issue else "") or "",
            account=(issue.account if issue else "") or "",
            person=person,
            start_date=acc["start"].date().isoformat(),
            time_used_hhmm=format_hhmm(acc["ms"]),
            time_used_decimal=format_decimal_hours(acc["ms"]),
        ))
    return rows

def collect_fix_versions(issues: Mapping[str, Optional[IssueRecord]]) -> List[str]:
    """Distinct fix-versions across resolved records, sorted case-insensitively.

    Names differing only by case collapse to the first one seen, visiting
    records in key order so the outcome does not depend on resolution order.
    """
    seen: Dict[str, str] = {}
    for key in sorted(issues):
        issue = issues[key]
        if issue is None:
            continue
        for version in issue.fix_versions:
            if version:
                seen.setdefault(version.lower(), version)
    return sorted(seen.values(), key=lambda v: (v.lower(), v))

def versions_by_key(issues: Mapping[str, Optional[IssueRecord]],
                    canonical: Mapping[str, str]) -> Dict[str, Tuple[str, ...]]:
    """Issue key -> canonical fix-version names, for records that carry any."""
    lookup: Dict[str, Tuple[str, ...]] = {}
    for key, issue in issues.items():
        if issue is None or not issue.fix_versions:
            continue
        names: List[str] = []
        for version in issue.fix_versions:
            name = canonical.get(version.lower())
            if name and name not in names:
                names.append(name)
        if names:
            lookup[key.upper()] = tuple(names)
    return lookup

def sum_hours_by_version(entries: Iterable[TimeEntry],
                         key_to_versions: Mapping[str, Sequence[str]]) -> Dict[str, float]:
    """Hours per version; an entry counts in full towards every version of its issue."""
    totals: Dict[str, float] = {}
    for entry in entries:
        key = extract_issue_key(entry.description)
        if key is None:
            continue
        versions = key_to_versions.get(key)
        if not versions:
            continue
        hours = ms_to_hours(entry.duration_ms)
        for version in versions:
            totals[version] = totals.get(version, 0.0) + hours
    return totals

def build_version_rows(issues: Mapping[str, Optional[IssueRecord]],
                       period_entries: Iterable[TimeEntry],
                       all_entries: Iterable[TimeEntry],
                       estimate_for_version: Callable[[str], float]) -> List[VersionRow]:
    """Compare Jira estimates with booked hours for every referenced fix-version.

    Args:
        issues: Resolved Jira records for every key seen in either population.
        period_entries: Toggl entries inside the reporting period.
        all_entries: Toggl entries over all time.
        estimate_for_version: Returns the summed estimate (hours) of all issues
            currently tagged with a version; called once per version.

    Returns:
        List[VersionRow]: One row per version, sorted case-insensitively.
    """
    versions = collect_fix_versions(issues)
    if not versions:
        return []

    canonical = {v.lower(): v for v in versions}
    key_to_versions = versions_by_key(issues, canonical)
    period_hours = sum_hours_by_version(period_entries, key_to_versions)
    total_hours = sum_hours_by_version(all_entries, key_to_versions)

    rows: List[VersionRow] = []
    for version in versions:
        estimate = estimate_for_version(version) or 0.0
        in_period = period_hours.get(version, 0.0)
        total = total_hours.get(version, 0.0)
        rows.append(VersionRow(
            version=version,
            total_estimate_sum=round_hours(estimate),
            worked_hours_in_period=round_hours(in_period),
            total_worked_hours=round_hours(total),
            difference=round_hours(estimate - total),
        ))
    return rows
