"""
Write report rows to CSV or XLSX (pandas / openpyxl).
"""

import os
from dataclasses import astuple
from typing import List, Sequence

import pandas as pd

from .models import ReportRow, VersionRow
from .util import warn

COLS = [
    "Issue Type",
    "Key",
    "Summary",
    "Budget",
    "Account",
    "Person",
    "Start Date",
    "Time Used (HH:MM)",
    "Time Used (Decimal)",
]

VERSION_COLS = [
    "Version",
    "Total Estimate Sum",
    "Worked Hours in Period",
    "Total Worked Hours",
    "Difference",
]

FORMATS = ("csv", "xlsx")

def rows_to_frame(rows: Sequence[ReportRow]) -> pd.DataFrame:
    # Every column is text; keeps "01:30" and "1.50" exactly as formatted
    return pd.DataFrame([astuple(r) for r in rows], columns=COLS, dtype=str)

def version_rows_to_frame(rows: Sequence[VersionRow]) -> pd.DataFrame:
    return pd.DataFrame([astuple(r) for r in rows], columns=VERSION_COLS)

def version_output_path(out_path: str) -> str:
    """'out/report.csv' -> 'out/report_versions.csv'."""
    base_dir = os.path.dirname(out_path)
    root, ext = os.path.splitext(os.path.basename(out_path))
    return os.path.join(base_dir, f"{root}_versions{ext}")

def _ensure_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

def write_csv(rows: Sequence[ReportRow], out_path: str) -> str:
    _ensure_dir(out_path)
    rows_to_frame(rows).to_csv(out_path, index=False, encoding="utf-8")
    return out_path

def write_version_csv(rows: Sequence[VersionRow], out_path: str) -> str:
    _ensure_dir(out_path)
    version_rows_to_frame(rows).to_csv(out_path, index=False, encoding="utf-8", float_format="%.2f")
    return out_path

def write_xlsx(rows: Sequence[ReportRow], version_rows: Sequence[VersionRow], out_path: str) -> str:
    """One workbook, 'Report' and 'Version Report' sheets."""
    _ensure_dir(out_path)
    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        rows_to_frame(rows).to_excel(writer, index=False, sheet_name="Report")
        version_rows_to_frame(version_rows).to_excel(writer, index=False, sheet_name="Version Report")
    return out_path

def normalize_format(fmt: str) -> str:
    """Lower-cased output format; anything unknown falls back to csv with a warning."""
    f = (fmt or "").strip().lower()
    if not f:
        return "csv"
    if f not in FORMATS:
        warn(f"unrecognized format '{fmt}'. Defaulting to CSV.")
        return "csv"
    return f

def write_report(rows: Sequence[ReportRow], version_rows: Sequence[VersionRow],
                 out_path: str, fmt: str = "csv") -> List[str]:
    """Write both reports and return the paths written.

    xlsx: a single workbook at out_path.
    csv: out_path plus '<name>_versions.csv' next to it.
    """
    if normalize_format(fmt) == "xlsx":
        return [write_xlsx(rows, version_rows, out_path)]
    return [write_csv(rows, out_path), write_version_csv(version_rows, version_output_path(out_path))]
