"""Jira issue key extraction from Toggl descriptions."""

import re
from typing import Iterable, List, Optional

from .models import TimeEntry

# Leading Jira key: PROJ-123, ab12-7
ISSUE_KEY = re.compile(r"^([A-Z][A-Z0-9]+-\d+)", re.IGNORECASE | re.ASCII)

def extract_issue_key(description: Optional[str]) -> Optional[str]:
    """Return the upper-cased Jira key that starts ``description``, or None."""
    if not description or not description.strip():
        return None
    m = ISSUE_KEY.match(description.strip())
    return m.group(1).upper() if m else None

def collect_issue_keys(*populations: Iterable[TimeEntry]) -> List[str]:
    """Distinct keys referenced by any of the given entry lists, sorted."""
    keys = set()
    for entries in populations:
        for entry in entries:
            key = extract_issue_key(entry.description)
            if key:
                keys.add(key)
    return sorted(keys)
