"""
toggl_jira_reporter package

- Re-exports the aggregation entry points so they can be used without the CLI.
- Provides a package-level main() suitable for console_scripts entrypoints.
"""

from .aggregate import build_report_rows, build_version_rows  # noqa: F401
from .keys import collect_issue_keys, extract_issue_key  # noqa: F401
from .models import IssueRecord, ReportRow, TimeEntry, VersionRow, freeze_issues  # noqa: F401

__version__ = "0.1.0"


def main() -> None:
    """Package entrypoint. Delegates to core.main()."""
    from .core import main as _main
    _main()
