"""
Jira Cloud client: custom field discovery, issue lookup and fix-version estimates.
"""

import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import requests
from tqdm import tqdm

from .http import ReportError, describe_http_error, http_get_with_retry, http_post_with_retry
from .models import IssueRecord, freeze_issues
from .util import vprint, warn

BASE_FIELDS = ["summary", "issuetype", "fixVersions", "timeoriginalestimate"]
BULK_BATCH_SIZE = 100

FieldIds = Tuple[Optional[str], Optional[str]]  # (budget field id, account field id)

def resolve_field_ids(session: requests.Session, base_url: str, budget_name: str, account_name: str,
                      timeout: int = 120, verbose: bool = False) -> FieldIds:
    """Find the custom field ids behind the Budget and Account display names.

    Performs a GET to /rest/api/3/field and matches names case-insensitively.
    On HTTP errors, logs a warning and returns (None, None) so the report
    is still produced, with empty Budget/Account columns.

    Returns:
        tuple: (budget_field_id, account_field_id), each None when not found.
    """
    url = f"{base_url}/rest/api/3/field"
    r = http_get_with_retry(session, url, timeout=timeout, service="Jira")
    if r.status_code in (401, 403):
        raise ReportError(describe_http_error(r, "Jira"), r.status_code)
    if not 200 <= r.status_code < 300:
        warn(f"could not list Jira fields ({r.status_code}). Budget/Account will be empty.")
        return None, None

    def find(name: str) -> Optional[str]:
        if not name:
            return None
        for f in r.json() or []:
            if (f.get("name") or "").lower() == name.lower():
                return f.get("id")
        warn(f"Jira field '{name}' not found in field metadata.")
        return None

    budget_id, account_id = find(budget_name), find(account_name)
    vprint(verbose, f"Jira fields: budget={budget_id} account={account_id}")
    return budget_id, account_id

def _best_label(d: Dict[str, Any]) -> str:
    """Return the best human-friendly label from a field-like dict."""
    for k in ("value", "name", "label", "title", "key"):
        v = d.get(k)
        if isinstance(v, str) and v.strip():
            return v.strip()
    v = d.get("id")
    return str(v) if v is not None else ""

def _flatten_hierarchy(d: Dict[str, Any]) -> List[str]:
    """Flatten a cascading select (using 'child' or 'children') into labels."""
    labels: List[str] = []
    cur = d
    while isinstance(cur, dict):
        lab = _best_label(cur)
        if lab:
            labels.append(lab)
        nxt = cur.get("child")
        if not nxt and isinstance(cur.get("children"), list):
            nxt = (cur["children"][0] if cur["children"] else None)
        if nxt is None:
            break
        cur = nxt
    return labels

def stringify_field(val: Any) -> Optional[str]:
    """Convert a custom field value (str, number, option, list of those) into text."""
    if val is None:
        return None
    if isinstance(val, bool):
        return str(val).lower()
    if isinstance(val, str):
        return val
    if isinstance(val, (int, float)):
        return str(val)
    if isinstance(val, list):
        parts = [stringify_field(x) for x in val]
        return ";".join(p for p in parts if p)
    if isinstance(val, dict):
        return ":".join(_flatten_hierarchy(val)) or None
    return str(val)

def issue_fields(field_ids: FieldIds) -> List[str]:
    return BASE_FIELDS + [fid for fid in field_ids if fid]

def parse_issue(payload: Dict[str, Any], field_ids: FieldIds, fallback_key: str = "") -> IssueRecord:
    """Map a Jira issue JSON object onto an IssueRecord."""
    f = payload.get("fields") or {}
    budget_id, account_id = field_ids
    estimate = f.get("timeoriginalestimate")
    versions = tuple(v.get("name") for v in (f.get("fixVersions") or []) if v.get("name"))
    return IssueRecord(
        key=(payload.get("key") or fallback_key).upper(),
        issue_type=(f.get("issuetype") or {}).get("name", "") or "",
        summary=f.get("summary", "") or "",
        budget=stringify_field(f.get(budget_id)) if budget_id else None,
        account=stringify_field(f.get(account_id)) if account_id else None,
        fix_versions=versions,
        estimate_hours=estimate / 3600.0 if estimate is not None else None,
    )

def fetch_issue(session: requests.Session, base_url: str, key: str, field_ids: FieldIds,
                timeout: int = 120) -> Optional[IssueRecord]:
    """Look up one issue; None when Jira says it does not exist."""
    url = f"{base_url}/rest/api/3/issue/{key}"
    r = http_get_with_retry(session, url, params={"fields": ",".join(issue_fields(field_ids))},
                            timeout=timeout, service="Jira")
    if r.status_code == 404:
        warn(f"Jira issue '{key}' not found.")
        return None
    if not 200 <= r.status_code < 300:
        raise ReportError(describe_http_error(r, "Jira"), r.status_code)
    return parse_issue(r.json() or {}, field_ids, fallback_key=key)

def fetch_issues_bulk(session: requests.Session, base_url: str, keys: List[str], field_ids: FieldIds,
                      timeout: int = 120) -> Dict[str, Optional[IssueRecord]]:
    """Fetch one batch of issues via POST /issue/bulkfetch.

    Every requested key is present in the result; keys Jira could not return
    (reported under 'errors' or simply missing) map to None.
    """
    url = f"{base_url}/rest/api/3/issue/bulkfetch"
    body = {"issueIdsOrKeys": keys, "fields": issue_fields(field_ids)}
    r = http_post_with_retry(session, url, json=body, timeout=timeout, service="Jira")
    if not 200 <= r.status_code < 300:
        raise ReportError(describe_http_error(r, "Jira"), r.status_code)
    data = r.json() or {}

    result: Dict[str, Optional[IssueRecord]] = {k.upper(): None for k in keys}
    for issue in data.get("issues") or []:
        if not issue.get("key"):
            continue
        rec = parse_issue(issue, field_ids)
        result[rec.key] = rec
    for err in data.get("errors") or []:
        if err.get("issueKey"):
            warn(f"Jira issue '{err['issueKey']}' could not be fetched (status {err.get('status', 'N/A')}).")
    return result

def _batches(keys: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(keys), size):
        yield keys[i:i + size]

def _fetch_batch(session_factory: Callable[[], requests.Session], base_url: str, batch: List[str],
                 field_ids: FieldIds, timeout: int) -> Dict[str, Optional[IssueRecord]]:
    """Run one bulkfetch on a session of its own, closed once the batch is done."""
    with session_factory() as session:
        return fetch_issues_bulk(session, base_url, batch, field_ids, timeout)

def resolve_issues(session_factory: Callable[[], requests.Session], base_url: str, keys: Iterable[str],
                   field_ids: FieldIds, max_workers: int = 8, timeout: int = 120,
                   batch_size: int = BULK_BATCH_SIZE) -> Mapping[str, Optional[IssueRecord]]:
    """Resolve every key once and return a single read-only mapping.

    Batches run concurrently; results are merged only after all of them
    finished, so callers never observe a partially populated mapping.

    Args:
        session_factory: Callable that returns a configured requests.Session.
        base_url: Jira base URL.
        keys: Issue keys to resolve (any case).
        field_ids: Budget/Account custom field ids.
        max_workers: Maximum number of concurrent bulk requests.
        timeout: Per-request timeout seconds.
        batch_size: Keys per bulkfetch request (Jira allows 100).

    Returns:
        Mapping[str, Optional[IssueRecord]]: Upper-cased key -> record or None.

    Raises:
        ReportError: If any batch fails.
    """
    unique = sorted({k.upper() for k in keys})
    merged: Dict[str, Optional[IssueRecord]] = {}
    if not unique:
        return freeze_issues(merged)

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = {
            executor.submit(_fetch_batch, session_factory, base_url, batch, field_ids, timeout): batch
            for batch in _batches(unique, batch_size)
        }
        with tqdm(total=len(unique), desc="Fetching Jira issues", unit="issue", file=sys.stdout) as pbar:
            for fut in as_completed(futures):
                part = fut.result()
                merged.update(part)
                pbar.update(len(futures[fut]))
    return freeze_issues(merged)

def jql_for_fix_version(version: str) -> str:
    escaped = version.replace("\\", "\\\\").replace('"', '\\"')
    return f'fixVersion = "{escaped}"'

def post_search_jql(session: requests.Session, base_url: str, jql: str, fields: List[str],
                    timeout: int = 120, verbose: bool = False) -> List[Dict[str, Any]]:
    """Query Jira using POST /search/jql and paginate using nextPageToken.

    Raises:
        ReportError: When the search is rejected.
    """
    url = f"{base_url}/rest/api/3/search/jql"
    next_token: Optional[str] = None
    issues_all: List[Dict[str, Any]] = []
    while True:
        body: Dict[str, Any] = {"jql": jql, "fields": fields, "maxResults": 100}
        if next_token:
            body["nextPageToken"] = next_token
        r = http_post_with_retry(session, url, json=body, timeout=timeout, service="Jira")
        if not 200 <= r.status_code < 300:
            raise ReportError(f"{describe_http_error(r, 'Jira')} (JQL: {jql})", r.status_code)
        data = r.json() or {}
        issues = data.get("issues", [])
        issues_all.extend(issues)
        vprint(verbose, f"  {jql}: {len(issues_all)} issue(s)")
        next_token = data.get("nextPageToken")
        if not next_token or not issues:
            break
    return issues_all

def estimate_total_for_version(session: requests.Session, base_url: str, version: str,
                               timeout: int = 120, verbose: bool = False) -> float:
    """Sum of original estimates (hours) over every issue tagged with ``version``."""
    issues = post_search_jql(session, base_url, jql_for_fix_version(version),
                             ["timeoriginalestimate"], timeout=timeout, verbose=verbose)
    total = 0.0
    for issue in issues:
        secs = (issue.get("fields") or {}).get("timeoriginalestimate")
        if secs:
            total += secs / 3600.0
    return total
