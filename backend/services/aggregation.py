"""
Module: aggregation.py
Description: Totals, per-category breakdowns and time windows over transactions.

All functions are pure and accept ORM rows, plain objects or mappings.
A single malformed record (missing label, non-numeric amount) is skipped
instead of aborting the whole computation.

Two window policies exist side by side and are deliberately not merged:
    - CalendarMonthWindow: the current calendar month (suggestion and chat)
    - RollingWindow(days): the last N days up to now (dashboard)
They produce different totals for the same data, so callers pick one.

Author: Expense Tracker Team
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from numbers import Real
from typing import Any, Iterable, Optional


@dataclass
class CategoryTotal:
    """Sum of amounts for one category (or income source)."""
    category: str
    total: float
    icon: Optional[str] = None


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def finite_number(value: Any) -> Optional[float]:
    """
    Coerce an int, float or Decimal to float.

    Returns None for bools, non-numeric values, NaN and infinities.
    """
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return None
    if isinstance(value, Decimal) and not value.is_finite():
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return value


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _amount(record: Any) -> Optional[float]:
    """Return a finite numeric amount, or None when the record is malformed."""
    return finite_number(_field(record, "amount"))


def sum_amounts(transactions: Iterable[Any]) -> float:
    """Sum of amount over the input; empty input yields 0."""
    total = 0
    for record in transactions:
        amount = _amount(record)
        if amount is not None:
            total += amount
    return total


def aggregate_by_category(transactions: Iterable[Any], key: str = "category") -> list[CategoryTotal]:
    """
    Group transactions by label and sum their amounts.

    Args:
        transactions: Expense or income records.
        key: Label field, "category" for expenses and "source" for incomes.

    Returns:
        One CategoryTotal per distinct non-blank label, highest total first.
        The icon is taken from the first record seen for the label.
    """
    groups: dict[str, CategoryTotal] = {}

    for record in transactions:
        label = _field(record, key)
        if not isinstance(label, str) or not label.strip():
            continue
        amount = _amount(record)
        if amount is None:
            continue

        entry = groups.get(label)
        if entry is None:
            groups[label] = CategoryTotal(category=label, total=amount, icon=_field(record, "icon"))
        else:
            entry.total += amount

    return sorted(groups.values(), key=lambda entry: entry.total, reverse=True)


def windowed(transactions: Iterable[Any], since: datetime, until: Optional[datetime] = None) -> list:
    """
    Keep records dated at or after `since` (and before `until` when given).

    Aware and naive datetimes are compared as naive UTC.
    """
    since = to_naive_utc(since)
    if until is not None:
        until = to_naive_utc(until)

    result = []
    for record in transactions:
        when = _field(record, "date")
        if not isinstance(when, datetime):
            continue
        when = to_naive_utc(when)
        if when < since:
            continue
        if until is not None and when >= until:
            continue
        result.append(record)
    return result


# =============================================================================
# Window Strategies
# =============================================================================

class CalendarMonthWindow:
    """From the first instant of the month containing `now` up to, not including, the next month."""

    name = "calendar_month"

    def bounds(self, now: Optional[datetime] = None) -> tuple[datetime, Optional[datetime]]:
        now = now or datetime.utcnow()
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return start, end

    def apply(self, transactions: Iterable[Any], now: Optional[datetime] = None) -> list:
        start, end = self.bounds(now)
        return windowed(transactions, start, end)


class RollingWindow:
    """The last `days` days measured back from `now`, open-ended forward."""

    def __init__(self, days: int):
        if days <= 0:
            raise ValueError("days must be positive")
        self.days = days
        self.name = f"last_{days}_days"

    def bounds(self, now: Optional[datetime] = None) -> tuple[datetime, Optional[datetime]]:
        now = now or datetime.utcnow()
        return now - timedelta(days=self.days), None

    def apply(self, transactions: Iterable[Any], now: Optional[datetime] = None) -> list:
        start, _ = self.bounds(now)
        return windowed(transactions, start)


CURRENT_MONTH = CalendarMonthWindow()
LAST_30_DAYS = RollingWindow(30)
LAST_60_DAYS = RollingWindow(60)
