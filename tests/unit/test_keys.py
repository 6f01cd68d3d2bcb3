import pytest

from toggl_jira_reporter.keys import collect_issue_keys, extract_issue_key
from tests.conftest import entry


@pytest.mark.parametrize(
    "text, expected",
    [
        ("PROJ-123 did work", "PROJ-123"),
        ("  proj-99: fix", "PROJ-99"),
        ("AB12-7", "AB12-7"),
        ("PROJ-1review", "PROJ-1"),
        ("Abc-42 - meeting", "ABC-42"),
        ("\tX1-5\n", "X1-5"),
    ],
)
def test_extract_issue_key_matches_leading_key(text, expected):
    assert extract_issue_key(text) == expected


@pytest.mark.parametrize(
    "text",
    [
        "no key here",
        "",
        "   ",
        None,
        "123-PROJ",
        "A-1 single letter prefix",
        "meeting about PROJ-12",
        "PROJ-",
        "PROJ_12",
        "1PROJ-12",
    ],
)
def test_extract_issue_key_rejects(text):
    assert extract_issue_key(text) is None


def test_collect_issue_keys_dedupes_across_populations_case_insensitively():
    period = [entry("abc-1 x"), entry("no key"), entry("ABC-2")]
    all_time = [entry("ABC-1 again"), entry("Zed-9")]
    assert collect_issue_keys(period, all_time) == ["ABC-1", "ABC-2", "ZED-9"]


def test_collect_issue_keys_empty():
    assert collect_issue_keys([], []) == []
