"""Pydantic request/response schemas. JSON fields are camelCase."""

from pydantic import AfterValidator, BaseModel, Field
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError
from datetime import datetime
from typing import Annotated, Optional, Literal


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _required_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise PydanticCustomError("required", "must not be blank")
    return value


RequiredText = Annotated[str, AfterValidator(_required_text)]


# =============================================================================
# Transactions
# =============================================================================

class ExpenseCreate(CamelModel):
    icon: Optional[str] = None
    category: RequiredText
    amount: float = Field(gt=0)
    date: datetime


class IncomeCreate(CamelModel):
    icon: Optional[str] = None
    source: RequiredText
    amount: float = Field(gt=0)
    date: datetime


class ExpenseOut(CamelModel):
    id: int
    owner_id: str
    icon: Optional[str] = None
    category: str
    amount: float
    date: datetime
    created_at: Optional[datetime] = None


class IncomeOut(CamelModel):
    id: int
    owner_id: str
    icon: Optional[str] = None
    source: str
    amount: float
    date: datetime
    created_at: Optional[datetime] = None


class RecentTransactionOut(CamelModel):
    id: int
    type: Literal["income", "expense"]
    icon: Optional[str] = None
    category: Optional[str] = None
    source: Optional[str] = None
    amount: float
    date: datetime


class MessageResponse(CamelModel):
    message: str


# =============================================================================
# Dashboard
# =============================================================================

class ExpenseWindow(CamelModel):
    total: float
    transactions: list[ExpenseOut]


class IncomeWindow(CamelModel):
    total: float
    transactions: list[IncomeOut]


class DashboardResponse(CamelModel):
    total_balance: float
    total_income: float
    total_expenses: float
    last_30_days_expenses: ExpenseWindow = Field(alias="last30DaysExpenses")
    last_60_days_income: IncomeWindow = Field(alias="last60DaysIncome")
    recent_transactions: list[RecentTransactionOut]


# =============================================================================
# AI
# =============================================================================

class CategoryTotalOut(CamelModel):
    category: str
    total: float
    percentage: Optional[int] = None
    icon: Optional[str] = None


class FinancialSummary(CamelModel):
    total_income: float
    total_expenses: float
    savings: float
    top_categories: list[CategoryTotalOut]


class SuggestionResponse(CamelModel):
    success: bool = True
    suggestion: str
    financial_summary: FinancialSummary


class ChatTurn(CamelModel):
    role: str
    content: str


class ChatRequest(CamelModel):
    """Request schema for the chat endpoint."""
    message: RequiredText = Field(..., max_length=2000)
    conversation_history: list[ChatTurn] = Field(default_factory=list)


class ChatResponse(CamelModel):
    success: bool = True
    response: str
    timestamp: datetime


# =============================================================================
# Auth
# =============================================================================

class LoginRequest(CamelModel):
    email: RequiredText
    password: RequiredText


class UserOut(CamelModel):
    id: str
    full_name: str
    email: str
    profile_image_url: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    id: str
    user: UserOut
    token: str


class ImageUploadResponse(CamelModel):
    message: str
    image_url: str


class HealthResponse(CamelModel):
    status: str
    database: str
    openai: str
