"""
Test Module: test_export_service.py
Description: Tests for xlsx export of incomes and expenses.

Author: Expense Tracker Team
"""

import os
import pandas as pd
import pytest
from datetime import datetime

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.export_service import build_frame, remove_file, write_workbook
from conftest import MockTransaction


@pytest.fixture
def expense_records():
    return [
        MockTransaction(1200, category="food", date_val=datetime(2025, 3, 15)),
        MockTransaction(300, category="transport", date_val=datetime(2025, 3, 13)),
    ]


class TestBuildFrame:
    def test_expense_columns(self, expense_records):
        frame = build_frame(expense_records, "expense")

        assert list(frame.columns) == ["category", "amount", "date"]
        assert frame["amount"].tolist() == [1200, 300]

    def test_income_columns(self):
        frame = build_frame([MockTransaction(5000, source="Salary", date_val=datetime(2025, 3, 1))], "income")

        assert list(frame.columns) == ["source", "amount", "date"]
        assert frame.iloc[0]["source"] == "Salary"

    def test_empty_list_keeps_header(self):
        frame = build_frame([], "expense")

        assert frame.empty
        assert list(frame.columns) == ["category", "amount", "date"]


class TestWriteWorkbook:
    """Tests for temporary workbook files."""

    def test_writes_named_sheet(self, expense_records):
        path = write_workbook(expense_records, "expense")
        try:
            frame = pd.read_excel(path, sheet_name="Expense", engine="openpyxl")
            assert frame["category"].tolist() == ["food", "transport"]
        finally:
            remove_file(path)

        assert not os.path.exists(path)

    def test_each_export_gets_its_own_file(self, expense_records):
        first = write_workbook(expense_records, "expense")
        second = write_workbook(expense_records, "expense")
        try:
            assert first != second
        finally:
            remove_file(first)
            remove_file(second)

    def test_remove_missing_file_is_silent(self, tmp_path):
        remove_file(str(tmp_path / "gone.xlsx"))
