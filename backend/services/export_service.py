"""
Spreadsheet export for income and expense lists.

Each export is written to its own uniquely named temporary file, so
concurrent downloads never overwrite each other. The caller owns the file
and removes it once the response has been sent.

Author: Expense Tracker Team
"""

import os
import tempfile
from typing import Iterable

import pandas as pd

from services.observability import logger, timed_block

EXPORT_LAYOUTS = {
    "expense": {"columns": ["category", "amount", "date"], "sheet": "Expense", "filename": "expense_details.xlsx"},
    "income": {"columns": ["source", "amount", "date"], "sheet": "Income", "filename": "income_details.xlsx"},
}


def build_frame(records: Iterable, kind: str) -> pd.DataFrame:
    """Project records onto the export columns for `kind`."""
    columns = EXPORT_LAYOUTS[kind]["columns"]
    rows = [{column: getattr(record, column, None) for column in columns} for record in records]
    return pd.DataFrame(rows, columns=columns)


def write_workbook(records: Iterable, kind: str) -> str:
    """
    Write records to a new temporary .xlsx file.

    Returns:
        Path of the written file. The caller must delete it.
    """
    layout = EXPORT_LAYOUTS[kind]
    frame = build_frame(records, kind)

    fd, path = tempfile.mkstemp(prefix=f"{kind}-export-", suffix=".xlsx")
    os.close(fd)
    try:
        with timed_block(f"export.{kind}"):
            frame.to_excel(path, sheet_name=layout["sheet"], index=False, engine="openpyxl")
    except Exception:
        remove_file(path)
        raise

    logger.info("Export written", kind=kind, rows=len(frame))
    return path


def remove_file(path: str) -> None:
    """Delete an export file; a file that is already gone is not an error."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass

