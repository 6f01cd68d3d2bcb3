"""
toggl-jira-reporter

Cross-references Toggl Track time entries with Jira issues:
- Report: time per (issue, person) in the period, with Jira type/summary/budget/account
- Version report: Jira estimate vs. hours booked per fix version (period and all time)

Configuration comes from config.ini (sections [toggl], [jira], [report]) with
environment variable fallbacks; CLI flags override both.
"""

import argparse
import configparser
import os
import sys
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import urllib3
from dateutil.relativedelta import relativedelta

from .aggregate import build_report_rows, build_version_rows
from .export import normalize_format, write_report
from .http import ReportError, make_session
from .jira import estimate_total_for_version, resolve_field_ids, resolve_issues
from .keys import collect_issue_keys
from .toggl import EARLIEST_DATE, fetch_all_entries, fetch_time_entries, make_toggl_session
from .util import vprint

DEFAULT_TZ = timezone.utc
DEFAULT_MAX_WORKERS = 8
DEFAULT_PREFIX = "toggl-jira-report"

def month_bounds(dt: datetime) -> Tuple[datetime, datetime]:
    """Return the month bounds in DEFAULT_TZ for the given datetime.

    Returns:
        tuple[datetime, datetime]: (start, end) where start is the first instant
        of the month in DEFAULT_TZ, and end is the first instant of the next
        month (exclusive).
    """
    start = dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0, tzinfo=DEFAULT_TZ)
    end = start + relativedelta(months=1)
    return start, end

def parse_config_date(s: str) -> Optional[datetime]:
    """Parse a config date string (YYYY-MM-DD) into a timezone-aware datetime.

    The returned datetime is set to midnight (00:00:00) in DEFAULT_TZ.
    Returns None for empty strings or when parsing fails.
    """
    if not s:
        return None
    try:
        d = datetime.strptime(s.strip(), "%Y-%m-%d")
        return d.replace(tzinfo=DEFAULT_TZ)
    except ValueError:
        return None

def compute_bounds(now_utc: datetime, start_str: str, end_str: str) -> Tuple[datetime, datetime]:
    """
    Compute the reporting period (start inclusive, end exclusive).

    Logic:
    - Start: start_str at 00:00 if valid, otherwise the first instant of the current month.
    - End: the day after end_str at 00:00 if valid, otherwise the first instant of
      next month, so the default period is the whole current month.
    - Safety: ensures end is strictly after start; if not, sets end = start + 1 day.

    Returns:
        tuple[datetime, datetime]: (start, end) timezone-aware datetimes in DEFAULT_TZ.
    """
    month_start, month_end = month_bounds(now_utc)
    start = parse_config_date(start_str) or month_start
    end_date = parse_config_date(end_str)
    end = end_date + timedelta(days=1) if end_date else month_end
    if start >= end:
        end = start + timedelta(days=1)
    return start, end

def default_out_name(prefix: str = DEFAULT_PREFIX, ext: str = "csv") -> str:
    """Generate a default output filename '<prefix>-YYYY-MM-DD-HHMM.<ext>' (local time)."""
    ts = datetime.now().strftime("%Y-%m-%d-%H%M")
    return f"{prefix}-{ts}.{ext}"

def resolve_out_path(out: str, fmt: str) -> str:
    """Output path with the extension matching fmt."""
    path = out.strip() or default_out_name(ext=fmt)
    if not path.lower().endswith(f".{fmt}"):
        path += f".{fmt}"
    return path

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line options provided via CLI.
    """
    def app_dir() -> str:
        """Return the application directory.

        When running as a PyInstaller-frozen executable, this points to the
        directory of the bundled executable. Otherwise, the current directory.
        """
        if getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS'):
            return os.path.dirname(sys.executable)
        return os.getcwd()

    default_cfg = os.path.join(app_dir(), "config.ini")

    p = argparse.ArgumentParser(description="Cross-reference Toggl time entries with Jira issues and fix versions.")
    p.add_argument("--config", default=default_cfg, help=f"Path to config.ini (default: {default_cfg})")
    p.add_argument("--out", default="", help="Output file; empty uses toggl-jira-report-YYYY-MM-DD-HHMM.<format>")
    p.add_argument("--format", default="", help="csv or xlsx (default: [report] format, else csv)")
    p.add_argument("--start-date", default="", help="First day of the period, YYYY-MM-DD")
    p.add_argument("--end-date", default="", help="Last day of the period, YYYY-MM-DD")
    p.add_argument("--verbose", action="store_true", help="Detailed output")
    p.add_argument("--max-workers", type=int, default=None,
                   help=f"Concurrent Jira requests (default: [jira] max_workers, else {DEFAULT_MAX_WORKERS})")
    p.add_argument("--timeout", type=int, default=120, help="Per-request timeout in seconds (default=120)")
    p.add_argument("--insecure", action="store_true", help="DISABLE SSL verification (NOT RECOMMENDED)")
    return p.parse_args(argv)

def _int_or_zero(s: str) -> int:
    try:
        return int(s)
    except (TypeError, ValueError):
        return 0

def _get(cp: configparser.ConfigParser, section: str, key: str, env: str = "", default: str = "") -> str:
    val = cp.get(section, key, fallback="").strip() if cp.has_section(section) else ""
    if not val and env:
        val = os.environ.get(env, "").strip()
    return val or default

def validate_config(cfg: Dict[str, Any]) -> List[Tuple[str, str]]:
    """Return (problem, remedy) pairs; empty when the config is usable."""
    errors: List[Tuple[str, str]] = []
    if not cfg["toggl_token"]:
        errors.append(("toggl.api_token is missing.",
                       "Set your Toggl API token; it is shown at https://track.toggl.com/profile."))
    if not cfg["workspace_id"]:
        errors.append(("toggl.workspace_id is missing or zero.",
                       "Set your Toggl workspace id (workspace settings)."))
    if not cfg["organization_id"]:
        errors.append(("toggl.organization_id is missing or zero.",
                       "Set your Toggl organization id (organization settings)."))
    if not cfg["project_id"]:
        errors.append(("toggl.project_id is missing or zero.",
                       "Set the Toggl project id you want to report on."))
    if not cfg["base_url"]:
        errors.append(("jira.base_url is missing.",
                       "Set your Jira base URL, e.g. https://yourcompany.atlassian.net"))
    if not cfg["email"]:
        errors.append(("jira.email is missing.",
                       "Set the email address of your Jira account."))
    if not cfg["token"]:
        errors.append(("jira.api_token is missing.",
                       "Create one at https://id.atlassian.com/manage-profile/security/api-tokens"))
    for key, label in (("start_date", "report.start_date"), ("end_date", "report.end_date"),
                       ("history_start", "toggl.history_start")):
        if cfg[key] and parse_config_date(cfg[key]) is None:
            errors.append((f"{label} value '{cfg[key]}' is not a valid date.", "Use the format YYYY-MM-DD."))
    return errors

def read_config(path: str) -> Dict[str, Any]:
    """Read and validate configuration from an INI file.

    Missing values fall back to environment variables. On any problem every
    error is printed with a remedy and the process exits with status 2.

    Args:
        path: Path to config.ini.

    Returns:
        Dict[str, Any]: Normalized configuration values required to run.
    """
    cp = configparser.ConfigParser()
    cp.read(path, encoding="utf-8")

    max_workers = _int_or_zero(_get(cp, "jira", "max_workers"))
    cfg: Dict[str, Any] = {
        "toggl_token": _get(cp, "toggl", "api_token", "TOGGL_API_TOKEN"),
        "workspace_id": _int_or_zero(_get(cp, "toggl", "workspace_id", "TOGGL_WORKSPACE_ID")),
        "organization_id": _int_or_zero(_get(cp, "toggl", "organization_id", "TOGGL_ORGANIZATION_ID")),
        "project_id": _int_or_zero(_get(cp, "toggl", "project_id", "TOGGL_PROJECT_ID")),
        "history_start": _get(cp, "toggl", "history_start"),
        "base_url": _get(cp, "jira", "base_url", "JIRA_BASE_URL").rstrip("/"),
        "email": _get(cp, "jira", "email", "JIRA_EMAIL"),
        "token": _get(cp, "jira", "api_token", "JIRA_API_TOKEN"),
        "verify_ssl": _get(cp, "jira", "verify_ssl", default="true").lower() in ("1", "true", "yes", "on"),
        "ca_bundle": _get(cp, "jira", "ca_bundle"),
        "http_proxy": _get(cp, "jira", "http_proxy"),
        "https_proxy": _get(cp, "jira", "https_proxy"),
        "budget_field": _get(cp, "jira", "budget_field", default="Budget"),
        "account_field": _get(cp, "jira", "account_field", default="Account"),
        "max_workers": max_workers if max_workers > 0 else None,
        "start_date": _get(cp, "report", "start_date", "REPORT_START_DATE"),
        "end_date": _get(cp, "report", "end_date", "REPORT_END_DATE"),
        "output_file": _get(cp, "report", "output_file"),
        "format": _get(cp, "report", "format"),
    }

    errors = validate_config(cfg)
    if errors:
        print(f"ERROR: {path} is incomplete:", file=sys.stderr)
        for problem, remedy in errors:
            print(f"    - {problem}", file=sys.stderr)
            print(f"      Remedy: {remedy}", file=sys.stderr)
        sys.exit(2)
    return cfg

def history_start_for(cfg: Dict[str, Any], period_start: date) -> date:
    """First day of the all-time window: [toggl] history_start, else the first day Toggl can hold."""
    configured = parse_config_date(cfg.get("history_start", ""))
    if configured:
        return min(configured.date(), period_start)
    return min(EARLIEST_DATE, period_start)

def main(argv: Optional[List[str]] = None) -> None:
    """Program entry point to orchestrate fetching, aggregation and export."""
    args = parse_args(argv)
    cfg = read_config(args.config)
    verbose = args.verbose
    timeout = args.timeout
    max_workers = max(1, args.max_workers or cfg.get("max_workers") or DEFAULT_MAX_WORKERS)

    verify_val = False if args.insecure else bool(cfg.get("verify_ssl", True))
    ca_bundle = cfg.get("ca_bundle", "")
    if not verify_val and not ca_bundle:
        sys.stderr.write("WARNING: SSL certificate verification is DISABLED. Use only for testing.\n")
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    net = {"verify": verify_val, "ca_bundle": ca_bundle,
           "http_proxy": cfg.get("http_proxy", ""), "https_proxy": cfg.get("https_proxy", "")}

    now = datetime.now(tz=DEFAULT_TZ)
    start_utc, end_utc = compute_bounds(now, args.start_date or cfg["start_date"], args.end_date or cfg["end_date"])
    first_day = start_utc.date()
    last_day = (end_utc - timedelta(days=1)).date()
    fmt = normalize_format(args.format or cfg.get("format", ""))
    out_path = resolve_out_path(args.out or cfg.get("output_file", ""), fmt)

    print(f"Report period: {first_day.isoformat()} to {last_day.isoformat()}")
    print(f"Toggl workspace: {cfg['workspace_id']}, project: {cfg['project_id']}")
    print(f"Jira base URL: {cfg['base_url']}")

    def jira_session():
        """Factory to create a configured requests.Session for concurrent calls."""
        return make_session(cfg["email"], cfg["token"], **net)

    try:
        with make_toggl_session(cfg["toggl_token"], **net) as toggl:
            print(f"Fetching Toggl entries from {first_day} to {last_day}...")
            period_entries = fetch_time_entries(toggl, cfg["workspace_id"], cfg["project_id"],
                                                first_day, last_day, timeout=timeout, verbose=verbose)
            print(f"Toggl entries in period: {len(period_entries)}")
            if not period_entries:
                print("No Toggl time entries found for the specified period and project.")
                return

            history_start = history_start_for(cfg, first_day)
            all_until = max(last_day, now.date())
            print(f"Fetching all-time Toggl entries ({history_start} to {all_until}) for version totals...")
            all_entries = fetch_all_entries(toggl, cfg["workspace_id"], cfg["project_id"],
                                            history_start, all_until, timeout=timeout, verbose=verbose)
            print(f"Toggl entries all time: {len(all_entries)}")

        keys = collect_issue_keys(period_entries, all_entries)
        print(f"Found {len(keys)} unique Jira issue keys to look up.")
        with jira_session() as jira:
            field_ids = resolve_field_ids(jira, cfg["base_url"], cfg["budget_field"], cfg["account_field"],
                                          timeout=timeout, verbose=verbose)
            issues = resolve_issues(jira_session, cfg["base_url"], keys, field_ids,
                                    max_workers=max_workers, timeout=timeout)

            rows = build_report_rows(period_entries, issues)

            def estimate(version: str) -> float:
                vprint(verbose, f"  Fetching Jira issues for fix version: {version}")
                return estimate_total_for_version(jira, cfg["base_url"], version, timeout=timeout, verbose=verbose)

            version_rows = build_version_rows(issues, period_entries, all_entries, estimate)
    except ReportError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(3)

    print(f"Report contains {len(rows)} rows.")
    print(f"Version report contains {len(version_rows)} rows.")

    try:
        written = write_report(rows, version_rows, out_path, fmt)
    except Exception as e:
        sys.stderr.write(f"ERROR: failed to write report: {e}\n")
        sys.exit(4)

    for path in written:
        print(f"Report written to: {os.path.abspath(path)}")

if __name__ == "__main__":
    main()
