"""
Module: context_builder.py
Description: Shapes aggregation output into a FinancialSnapshot and prompt text.

Everything here is a pure function over already-fetched data. Rendering
never emits empty or "None" tokens: each list has a literal fallback line.

Author: Expense Tracker Team
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from services.aggregation import CategoryTotal, finite_number
from services.errors import InvalidSnapshot


# Average daily spending always divides by 30, whatever the query window.
DAYS_PER_MONTH = 30
TOP_CATEGORY_COUNT = 3
PROMPT_RECENT_LIMIT = 5
CHAT_HISTORY_WINDOW = 4


@dataclass(frozen=True)
class TopCategory:
    category: str
    total: float
    percentage: int
    icon: Optional[str] = None


@dataclass(frozen=True)
class RecentTransaction:
    type: str  # 'income' | 'expense'
    category: str
    amount: float
    date: Optional[datetime] = None


@dataclass(frozen=True)
class FinancialSnapshot:
    """Ephemeral summary of a user's month, consumed by the prompt templates."""
    total_income: float
    total_expenses: float
    savings: float
    savings_rate: int
    daily_average_spending: float
    top_categories: list[TopCategory] = field(default_factory=list)
    recent_transactions: list[RecentTransaction] = field(default_factory=list)
    categories: list[CategoryTotal] = field(default_factory=list)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (0.5 -> 1, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def _require_finite(name: str, value: Any) -> float:
    number = finite_number(value)
    if number is None:
        raise InvalidSnapshot(f"{name} must be a finite number, got {value!r}")
    return number


def _percentage(part: float, whole: float) -> int:
    if whole == 0:
        return 0
    return round_half_up(part / whole * 100)


def _recent_entry(record: Any) -> RecentTransaction:
    if isinstance(record, RecentTransaction):
        return record
    if isinstance(record, dict):
        get = record.get
    else:
        def get(name, default=None):
            return getattr(record, name, default)

    kind = get("type") or ("income" if get("source") and not get("category") else "expense")
    return RecentTransaction(
        type=kind,
        category=get("category") or get("source") or "Uncategorized",
        amount=get("amount") or 0,
        date=get("date"),
    )


def build_snapshot(
    total_income: float,
    total_expenses: float,
    category_totals: Iterable[CategoryTotal],
    recent_transactions: Iterable[Any] = (),
) -> FinancialSnapshot:
    """
    Build the snapshot used by the suggestion and chat prompts.

    Args:
        total_income: Income in the window.
        total_expenses: Expenses in the window.
        category_totals: Expense totals per category (any order).
        recent_transactions: Newest-first records; ORM rows or dicts.

    Returns:
        FinancialSnapshot with savings clamped at 0, savings rate and
        percentages rounded half-up, and the 3 largest categories.

    Raises:
        InvalidSnapshot: If either total is not a finite number.
    """
    income = _require_finite("total_income", total_income)
    expenses = _require_finite("total_expenses", total_expenses)

    savings = max(0.0, income - expenses)
    savings_rate = round_half_up(savings / income * 100) if income > 0 else 0

    ranked = sorted(category_totals, key=lambda entry: entry.total, reverse=True)
    top = [
        TopCategory(
            category=entry.category,
            total=entry.total,
            percentage=_percentage(entry.total, expenses),
            icon=entry.icon,
        )
        for entry in ranked[:TOP_CATEGORY_COUNT]
    ]

    return FinancialSnapshot(
        total_income=income,
        total_expenses=expenses,
        savings=savings,
        savings_rate=savings_rate,
        daily_average_spending=expenses / DAYS_PER_MONTH,
        top_categories=top,
        recent_transactions=[_recent_entry(r) for r in recent_transactions],
        categories=ranked,
    )


# =============================================================================
# Prompt Rendering
# =============================================================================

def format_amount(value: float) -> str:
    """Whole amounts without decimals, everything else with two."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}"


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "unknown date"
    return value.strftime("%Y-%m-%d")


SUGGESTION_PROMPT_TEMPLATE = """You are a friendly and helpful personal finance advisor. Analyze the following financial data and provide a personalized, actionable suggestion to help improve financial health.

Financial Snapshot:
- Monthly Income: {currency}{income}
- Monthly Expenses: {currency}{expenses}
- Monthly Savings: {currency}{savings} ({savings_rate}% of income)
- Daily Average Spending: {currency}{daily_average}

Top Spending Categories:
{top_categories}

Recent Transactions:
{recent_transactions}

Please provide a personalized financial suggestion that:
1. Acknowledges their current financial position
2. Highlights one key area for improvement
3. Provides a specific, actionable tip
4. Is encouraging and positive
5. Is 2-3 sentences maximum

Focus on their top spending categories and suggest practical ways to optimize those expenses while maintaining quality of life."""


CHAT_PROMPT_TEMPLATE = """You are a friendly personal finance assistant helping users manage their money. Be conversational, helpful, and encouraging.

User's Financial Context:
- Monthly Income: {currency}{income}
- Monthly Expenses: {currency}{expenses}
- Current Savings: {currency}{net}

Expense Categories:
{categories}

Previous conversation:
{history}

User's question: {message}

Provide a helpful, friendly response. Keep it concise (3-4 sentences max) and actionable. If the user asks about their finances, use the data provided above."""


def render_suggestion_prompt(snapshot: FinancialSnapshot, currency: str = "₹") -> str:
    """Render the daily-suggestion prompt for a snapshot."""
    if snapshot.top_categories:
        top_lines = "\n".join(
            f"{index}. {cat.category}: {currency}{format_amount(cat.total)} "
            f"({cat.percentage}% of expenses)"
            for index, cat in enumerate(snapshot.top_categories, start=1)
        )
    else:
        top_lines = "- No category data available"

    if snapshot.recent_transactions:
        recent_lines = "\n".join(
            f"- {'🛒' if tx.type == 'expense' else '💰'} {tx.category}: "
            f"{currency}{format_amount(tx.amount)} ({_format_date(tx.date)})"
            for tx in snapshot.recent_transactions[:PROMPT_RECENT_LIMIT]
        )
    else:
        recent_lines = "- No recent transactions"

    return SUGGESTION_PROMPT_TEMPLATE.format(
        currency=currency,
        income=format_amount(snapshot.total_income),
        expenses=format_amount(snapshot.total_expenses),
        savings=format_amount(snapshot.savings),
        savings_rate=snapshot.savings_rate,
        daily_average=f"{snapshot.daily_average_spending:.2f}",
        top_categories=top_lines,
        recent_transactions=recent_lines,
    )


def _history_entry(entry: Any) -> tuple[str, str]:
    if isinstance(entry, dict):
        return str(entry.get("role") or "user"), str(entry.get("content") or "")
    return str(getattr(entry, "role", None) or "user"), str(getattr(entry, "content", None) or "")


def render_chat_prompt(
    user_message: str,
    snapshot: FinancialSnapshot,
    history: Optional[Iterable[Any]] = None,
    currency: str = "₹",
) -> str:
    """
    Render the chat prompt.

    Only the last CHAT_HISTORY_WINDOW history entries are embedded; older
    turns are dropped.
    """
    history = list(history or [])

    if snapshot.categories:
        category_lines = "\n".join(
            f"- {cat.category}: {currency}{format_amount(cat.total)}"
            for cat in snapshot.categories
        )
    else:
        category_lines = "- No expense data yet"

    if history:
        history_lines = "\n".join(
            f"{role}: {content}"
            for role, content in map(_history_entry, history[-CHAT_HISTORY_WINDOW:])
        )
    else:
        history_lines = "This is the start of the conversation"

    return CHAT_PROMPT_TEMPLATE.format(
        currency=currency,
        income=format_amount(snapshot.total_income),
        expenses=format_amount(snapshot.total_expenses),
        net=format_amount(snapshot.total_income - snapshot.total_expenses),
        categories=category_lines,
        history=history_lines,
        message=user_message.strip(),
    )
