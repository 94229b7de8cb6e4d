"""Backend services for income/expense tracking and AI context."""

from .ai_service import AIService
from .aggregation import (
    CURRENT_MONTH,
    LAST_30_DAYS,
    LAST_60_DAYS,
    CalendarMonthWindow,
    CategoryTotal,
    RollingWindow,
    aggregate_by_category,
    sum_amounts,
    windowed,
)
from .context_builder import (
    FinancialSnapshot,
    build_snapshot,
    render_chat_prompt,
    render_suggestion_prompt,
)
from .object_storage import ObjectStorage
from .suggestion_service import SuggestionService
from .transaction_store import TransactionStore

__all__ = [
    "AIService",
    "CURRENT_MONTH",
    "LAST_30_DAYS",
    "LAST_60_DAYS",
    "CalendarMonthWindow",
    "CategoryTotal",
    "RollingWindow",
    "aggregate_by_category",
    "sum_amounts",
    "windowed",
    "FinancialSnapshot",
    "build_snapshot",
    "render_chat_prompt",
    "render_suggestion_prompt",
    "ObjectStorage",
    "SuggestionService",
    "TransactionStore",
]
