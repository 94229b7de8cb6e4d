"""
Module: main.py
Description: FastAPI application entry point with all API routes for the Expense Tracker.

This module provides REST API endpoints for:
    - Account registration, login and profile management
    - Income and expense CRUD plus spreadsheet export
    - Dashboard totals and rolling windows
    - AI-generated financial suggestions and finance chat

Author: Expense Tracker Team

Dependencies:
    - FastAPI for REST API framework
    - SQLAlchemy for database operations
    - OpenAI for AI-powered features
    - Cloudinary for profile images

Usage:
    uvicorn main:app --reload --app-dir backend --host 0.0.0.0 --port 8000
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session as DBSession, sessionmaker
from starlette.background import BackgroundTask

from auth import create_access_token, get_current_user, hash_password, verify_password
from config import get_settings
from database import get_db, get_session_factory, init_db
from models import User
from schemas import (
    AuthResponse, CategoryTotalOut, ChatRequest, ChatResponse, DashboardResponse,
    ExpenseCreate, ExpenseOut, ExpenseWindow, FinancialSummary, HealthResponse,
    ImageUploadResponse, IncomeCreate, IncomeOut, IncomeWindow, LoginRequest,
    MessageResponse, RecentTransactionOut, SuggestionResponse, UserOut,
)
from services import (
    AIService, ObjectStorage, SuggestionService, TransactionStore,
    LAST_30_DAYS, LAST_60_DAYS, sum_amounts,
)
from services.errors import NotFoundError, ValidationError
from services.export_service import EXPORT_LAYOUTS, remove_file, write_workbook
from services.observability import logger, metrics

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
RECENT_PER_KIND = 5


# =============================================================================
# Application Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build process-wide collaborators once.

    On startup:
        - Create database tables
        - Construct the OpenAI client and object storage handle
    """
    settings = get_settings()
    logger.set_level(settings.log_level)
    logger.info("Starting Expense Tracker API")

    init_db()
    app.state.ai_service = AIService.from_settings(settings)
    app.state.storage = ObjectStorage.from_settings(settings)
    logger.info("Database initialized")

    yield

    logger.info("Shutting down Expense Tracker API")


# =============================================================================
# FastAPI Application Configuration
# =============================================================================

app = FastAPI(
    title="Expense Tracker API",
    description="""
    Personal finance tracking backend.

    ## Features
    - Income & expense tracking with spreadsheet export
    - Dashboard with rolling 30/60-day windows
    - AI-generated monthly suggestion
    - Finance chat grounded in the current month's figures
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Scope log context to the request and record per-route timings."""
    logger.clear_context()
    logger.set_context(path=request.url.path)
    start = time.perf_counter()
    response = await call_next(request)
    metrics.increment("http.requests", tags={"status": str(response.status_code)})
    metrics.timing(f"http.{request.method}", (time.perf_counter() - start) * 1000)
    return response


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report body validation failures as 400 naming the offending field."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = loc[-1] if loc else "body"

    if first.get("type") in ("missing", "required"):
        message = f"{field} is required"
    else:
        message = f"{field}: {first.get('msg', 'invalid value')}"

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": message, "field": field},
    )


@app.exception_handler(ValidationError)
async def domain_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": str(exc), "field": exc.field},
    )


def server_error(message: str, error: Exception) -> HTTPException:
    """500 carrying the raw error text back to the client."""
    logger.exception(message, error=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{message}: {error}",
    )


# =============================================================================
# Dependency Injection
# =============================================================================

def get_ai_service(request: Request) -> AIService:
    """Dependency: the AIService built at startup."""
    return request.app.state.ai_service


def get_storage(request: Request) -> ObjectStorage:
    """Dependency: the object storage handle built at startup."""
    return request.app.state.storage


def get_suggestion_service(
    session_factory: sessionmaker = Depends(get_session_factory),
    ai_service: AIService = Depends(get_ai_service),
) -> SuggestionService:
    return SuggestionService(
        session_factory,
        ai_service,
        currency=get_settings().currency_symbol,
    )


# =============================================================================
# System Endpoints
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(
    db: DBSession = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service),
) -> HealthResponse:
    """Check the database and the text-generation API."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {e}"

    openai_status = "connected" if await ai_service.check_connection() else "disconnected"

    return HealthResponse(
        status="healthy" if db_status == "connected" else "degraded",
        database=db_status,
        openai=openai_status,
    )


@app.get("/metrics", tags=["System"])
async def get_metrics():
    """In-memory counters and timings."""
    return metrics.get_summary()


# =============================================================================
# Auth Endpoints
# =============================================================================

def _upload_if_present(storage: ObjectStorage, image: Optional[UploadFile], field: str) -> Optional[str]:
    if image is None or not image.filename:
        return None
    content = image.file.read()
    return storage.upload_image(content, image.filename, image.content_type, field=field)


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        id=user.id,
        user=UserOut.model_validate(user),
        token=create_access_token(user.id),
    )


@app.post(
    "/auth/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Auth"],
    summary="Register a new account",
)
async def register_user(
    full_name: str = Form(None, alias="fullName"),
    email: str = Form(None),
    password: str = Form(None),
    profile_image: Optional[UploadFile] = File(None, alias="profileImage"),
    db: DBSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> AuthResponse:
    """
    Create an account from a multipart form.

    Args:
        full_name: Display name ("fullName").
        email: Login email, stored lower-cased.
        password: Plain password, stored as a bcrypt hash.
        profile_image: Optional jpeg/png ("profileImage").

    Raises:
        ValidationError: Missing field, duplicate email or bad image type.
    """
    for field, value in (("fullName", full_name), ("email", email), ("password", password)):
        if not value or not value.strip():
            raise ValidationError(field)

    email = email.strip().lower()
    try:
        if db.query(User).filter(User.email == email).first():
            raise ValidationError("email", "Email already in use")

        image_url = _upload_if_present(storage, profile_image, "profileImage")
        user = User(
            full_name=full_name.strip(),
            email=email,
            password_hash=hash_password(password),
            profile_image_url=image_url,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except ValidationError:
        raise
    except Exception as e:
        raise server_error("Error registering user", e)

    logger.info("User registered", user=user.id[:8])
    return _auth_response(user)


@app.post("/auth/login", response_model=AuthResponse, tags=["Auth"])
async def login_user(payload: LoginRequest, db: DBSession = Depends(get_db)) -> AuthResponse:
    """Exchange email and password for an access token."""
    try:
        user = db.query(User).filter(User.email == payload.email.lower()).first()
    except Exception as e:
        raise server_error("Error logging in", e)

    if not user or not verify_password(payload.password, user.password_hash):
        raise ValidationError("password", "Invalid credentials")

    return _auth_response(user)


def _load_user(db: DBSession, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


@app.get("/auth/me", response_model=UserOut, tags=["Auth"])
async def get_user_info(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
) -> UserOut:
    try:
        return UserOut.model_validate(_load_user(db, user_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise server_error("Error fetching user", e)


@app.put("/auth/me", response_model=UserOut, tags=["Auth"])
async def update_user_info(
    full_name: Optional[str] = Form(None, alias="fullName"),
    profile_image: Optional[UploadFile] = File(None, alias="profileImage"),
    db: DBSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    user_id: str = Depends(get_current_user),
) -> UserOut:
    """
    Update the display name and/or profile image.

    A replaced image is removed from object storage after the new one is saved.
    """
    try:
        user = _load_user(db, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise server_error("Error updating user", e)

    if full_name is not None and not full_name.strip():
        raise ValidationError("fullName")

    try:
        new_image_url = _upload_if_present(storage, profile_image, "profileImage")
        old_image_url = user.profile_image_url

        if full_name is not None:
            user.full_name = full_name.strip()
        if new_image_url:
            user.profile_image_url = new_image_url
        db.commit()
        db.refresh(user)
    except ValidationError:
        raise
    except Exception as e:
        raise server_error("Error updating user", e)

    if new_image_url and old_image_url:
        storage.delete_image(old_image_url)

    return UserOut.model_validate(user)


@app.post("/auth/upload-image", response_model=ImageUploadResponse, tags=["Auth"])
async def upload_image(
    image: Optional[UploadFile] = File(None),
    storage: ObjectStorage = Depends(get_storage),
) -> ImageUploadResponse:
    if image is None or not image.filename:
        raise ValidationError("image", "No file uploaded")

    try:
        url = _upload_if_present(storage, image, "image")
    except ValidationError:
        raise
    except Exception as e:
        raise server_error("Error uploading image", e)

    return ImageUploadResponse(message="File uploaded successfully", image_url=url)


# =============================================================================
# Transaction Endpoints
# =============================================================================

def _add(kind: str, label: str, payload, db: DBSession, user_id: str):
    try:
        store = TransactionStore.for_kind(db, kind)
        record = store.add(
            user_id,
            label=label,
            amount=payload.amount,
            date=payload.date,
            icon=payload.icon,
        )
    except Exception as e:
        raise server_error(f"Error adding {kind}", e)
    logger.info("Transaction added", kind=kind, id=record.id)
    return record


def _list(kind: str, db: DBSession, user_id: str) -> list:
    try:
        return TransactionStore.for_kind(db, kind).list_all(user_id)
    except Exception as e:
        raise server_error(f"Error fetching {kind}", e)


def _delete(kind: str, record_id: int, db: DBSession, user_id: str) -> MessageResponse:
    """Delete one record; an unknown id is still reported as success."""
    try:
        removed = TransactionStore.for_kind(db, kind).delete(user_id, record_id)
    except Exception as e:
        raise server_error(f"Error deleting {kind}", e)
    if not removed:
        logger.info("Delete matched nothing", kind=kind, id=record_id)
    return MessageResponse(message=f"{kind.capitalize()} deleted successfully")


def _export(kind: str, db: DBSession, user_id: str) -> FileResponse:
    """Stream a fresh workbook, removing the temporary file after sending."""
    records = _list(kind, db, user_id)
    try:
        path = write_workbook(records, kind)
    except Exception as e:
        raise server_error(f"Error downloading {kind}", e)

    return FileResponse(
        path,
        media_type=XLSX_MEDIA_TYPE,
        filename=EXPORT_LAYOUTS[kind]["filename"],
        background=BackgroundTask(remove_file, path),
    )


@app.post("/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED, tags=["Expenses"])
async def add_expense(
    payload: ExpenseCreate,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    return _add("expense", payload.category, payload, db, user_id)


@app.get("/expenses", response_model=list[ExpenseOut], tags=["Expenses"])
async def get_all_expenses(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """All of the user's expenses, newest first."""
    return _list("expense", db, user_id)


@app.get("/expenses/export", tags=["Expenses"], summary="Download expenses as xlsx")
async def download_expense_excel(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
) -> FileResponse:
    return _export("expense", db, user_id)


@app.delete("/expenses/{expense_id}", response_model=MessageResponse, tags=["Expenses"])
async def delete_expense(
    expense_id: int,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
) -> MessageResponse:
    return _delete("expense", expense_id, db, user_id)


@app.post("/incomes", response_model=IncomeOut, status_code=status.HTTP_201_CREATED, tags=["Incomes"])
async def add_income(
    payload: IncomeCreate,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    return _add("income", payload.source, payload, db, user_id)


@app.get("/incomes", response_model=list[IncomeOut], tags=["Incomes"])
async def get_all_incomes(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    """All of the user's incomes, newest first."""
    return _list("income", db, user_id)


@app.get("/incomes/export", tags=["Incomes"], summary="Download incomes as xlsx")
async def download_income_excel(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
) -> FileResponse:
    return _export("income", db, user_id)


@app.delete("/incomes/{income_id}", response_model=MessageResponse, tags=["Incomes"])
async def delete_income(
    income_id: int,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
) -> MessageResponse:
    return _delete("income", income_id, db, user_id)


# =============================================================================
# Dashboard Endpoint
# =============================================================================

def _recent_entry(record, kind: str) -> RecentTransactionOut:
    return RecentTransactionOut(
        id=record.id,
        type=kind,
        icon=record.icon,
        category=getattr(record, "category", None),
        source=getattr(record, "source", None),
        amount=record.amount,
        date=record.date,
    )


def build_dashboard(db: DBSession, user_id: str, now: Optional[datetime] = None) -> DashboardResponse:
    """
    Assemble dashboard figures.

    Lifetime totals come from aggregate sums; the windows are rolling
    (last 30 days of expenses, last 60 days of income), independent of
    the calendar month used by the AI endpoints.
    """
    now = now or datetime.utcnow()
    incomes = TransactionStore.for_kind(db, "income")
    expenses = TransactionStore.for_kind(db, "expense")

    total_income = incomes.total(user_id)
    total_expenses = expenses.total(user_id)

    income_60 = incomes.list_window(user_id, *LAST_60_DAYS.bounds(now))
    expense_30 = expenses.list_window(user_id, *LAST_30_DAYS.bounds(now))

    recent = [_recent_entry(r, "income") for r in incomes.recent(user_id, RECENT_PER_KIND)]
    recent += [_recent_entry(r, "expense") for r in expenses.recent(user_id, RECENT_PER_KIND)]
    recent.sort(key=lambda entry: entry.date, reverse=True)

    return DashboardResponse(
        total_balance=total_income - total_expenses,
        total_income=total_income,
        total_expenses=total_expenses,
        last_30_days_expenses=ExpenseWindow(
            total=sum_amounts(expense_30),
            transactions=[ExpenseOut.model_validate(r) for r in expense_30],
        ),
        last_60_days_income=IncomeWindow(
            total=sum_amounts(income_60),
            transactions=[IncomeOut.model_validate(r) for r in income_60],
        ),
        recent_transactions=recent,
    )


@app.get("/dashboard", response_model=DashboardResponse, tags=["Dashboard"])
async def get_dashboard_data(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
) -> DashboardResponse:
    try:
        return build_dashboard(db, user_id)
    except Exception as e:
        raise server_error("Error fetching dashboard data", e)


# =============================================================================
# AI Endpoints
# =============================================================================

@app.get(
    "/ai/suggestion",
    response_model=SuggestionResponse,
    tags=["AI"],
    summary="AI-powered suggestion for the current month",
)
async def get_daily_suggestion(
    service: SuggestionService = Depends(get_suggestion_service),
    user_id: str = Depends(get_current_user),
) -> SuggestionResponse:
    """
    Generate a personalised tip from this month's income and spending.

    The summary's `savings` is the raw difference and may be negative;
    the prompt itself uses savings clamped at zero.
    """
    try:
        result = await service.daily_suggestion(user_id)
    except Exception as e:
        raise server_error("Failed to generate suggestion", e)

    snapshot = result.snapshot
    return SuggestionResponse(
        suggestion=result.suggestion,
        financial_summary=FinancialSummary(
            total_income=snapshot.total_income,
            total_expenses=snapshot.total_expenses,
            savings=snapshot.total_income - snapshot.total_expenses,
            top_categories=[
                CategoryTotalOut(
                    category=cat.category,
                    total=cat.total,
                    percentage=cat.percentage,
                    icon=cat.icon,
                )
                for cat in snapshot.top_categories
            ],
        ),
    )


@app.post("/ai/chat", response_model=ChatResponse, tags=["AI"], summary="Chat with the finance assistant")
async def chat_with_bot(
    payload: ChatRequest,
    service: SuggestionService = Depends(get_suggestion_service),
    user_id: str = Depends(get_current_user),
) -> ChatResponse:
    """
    Answer a question using the current month's figures as context.

    Only the last four turns of `conversationHistory` reach the model.
    """
    try:
        reply = await service.chat(user_id, payload.message, payload.conversation_history)
    except Exception as e:
        raise server_error("Failed to get chatbot response", e)

    return ChatResponse(response=reply, timestamp=datetime.utcnow())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
