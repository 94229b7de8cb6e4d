"""
Module: suggestion_service.py
Description: Orchestrates the daily suggestion and the finance chat.

Flow per request:
    1. Load the month's incomes and expenses concurrently, each on its
       own database session
    2. Aggregate totals and expense categories
    3. Build the FinancialSnapshot and render the prompt
    4. Call the text-generation API once

Usage:
    service = SuggestionService(SessionLocal, ai_service, currency="₹")
    result = await service.daily_suggestion(user_id)

Author: Expense Tracker Team
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy.orm import sessionmaker

from services.aggregation import CURRENT_MONTH, CalendarMonthWindow, aggregate_by_category, sum_amounts
from services.ai_service import AIService
from services.context_builder import (
    FinancialSnapshot,
    build_snapshot,
    render_chat_prompt,
    render_suggestion_prompt,
)
from services.observability import log_chat_request, log_suggestion_request
from services.transaction_store import TransactionStore

RECENT_EXPENSE_LIMIT = 10


@dataclass
class SuggestionResult:
    suggestion: str
    snapshot: FinancialSnapshot


@dataclass
class MonthData:
    incomes: list
    expenses: list


class SuggestionService:
    """Builds financial context for a user and asks the model about it."""

    def __init__(
        self,
        session_factory: sessionmaker,
        ai_service: AIService,
        currency: str = "₹",
        window: CalendarMonthWindow = CURRENT_MONTH,
    ):
        self.session_factory = session_factory
        self.ai_service = ai_service
        self.currency = currency
        self.window = window

    def _load_kind(self, kind: str, user_id: str, start: datetime, end: Optional[datetime]) -> list:
        db = self.session_factory()
        try:
            records = TransactionStore.for_kind(db, kind).list_window(user_id, start, end)
            db.expunge_all()
            return records
        finally:
            db.close()

    async def load_month(self, user_id: str, now: Optional[datetime] = None) -> MonthData:
        """Fetch the window's incomes and expenses in parallel."""
        start, end = self.window.bounds(now)
        incomes, expenses = await asyncio.gather(
            asyncio.to_thread(self._load_kind, "income", user_id, start, end),
            asyncio.to_thread(self._load_kind, "expense", user_id, start, end),
        )
        return MonthData(incomes=incomes, expenses=expenses)

    def snapshot_for(self, data: MonthData) -> FinancialSnapshot:
        return build_snapshot(
            total_income=sum_amounts(data.incomes),
            total_expenses=sum_amounts(data.expenses),
            category_totals=aggregate_by_category(data.expenses, key="category"),
            recent_transactions=[
                _as_recent(expense, "expense") for expense in data.expenses[:RECENT_EXPENSE_LIMIT]
            ],
        )

    async def daily_suggestion(self, user_id: str, now: Optional[datetime] = None) -> SuggestionResult:
        """Generate the personalised tip for the current month."""
        data = await self.load_month(user_id, now)
        log_suggestion_request(user_id, len(data.incomes), len(data.expenses))

        snapshot = self.snapshot_for(data)
        prompt = render_suggestion_prompt(snapshot, currency=self.currency)
        suggestion = await self.ai_service.complete(prompt, purpose="suggestion")
        return SuggestionResult(suggestion=suggestion, snapshot=snapshot)

    async def chat(
        self,
        user_id: str,
        message: str,
        history: Optional[Iterable[Any]] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Answer a free-form question with the month's figures as context."""
        history = list(history or [])
        log_chat_request(user_id, len(message), len(history))

        data = await self.load_month(user_id, now)
        snapshot = self.snapshot_for(data)
        prompt = render_chat_prompt(message, snapshot, history, currency=self.currency)
        return await self.ai_service.complete(prompt, purpose="chat response")


def _as_recent(record: Any, kind: str) -> dict:
    return {
        "type": kind,
        "category": getattr(record, "category", None) or getattr(record, "source", None),
        "amount": record.amount,
        "date": record.date,
    }
