"""
Test Module: test_api.py
Description: End-to-end tests for the HTTP API with a temporary database.

Tests:
    - Auth: register, login, profile
    - Income/expense CRUD and export
    - Dashboard windows
    - AI suggestion and chat endpoints
    - Validation errors surface as 400

Author: Expense Tracker Team
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.exc import OperationalError

from database import get_db
from main import app
from models import User


def _iso(days_ago=0):
    return (datetime.utcnow() - timedelta(days=days_ago)).isoformat()


def _add_expense(client, headers, category="food", amount=100, days_ago=0):
    response = client.post(
        "/expenses",
        json={"category": category, "amount": amount, "date": _iso(days_ago)},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def _add_income(client, headers, source="Salary", amount=5000, days_ago=0):
    response = client.post(
        "/incomes",
        json={"source": source, "amount": amount, "date": _iso(days_ago)},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


# =============================================================================
# System
# =============================================================================

class TestSystem:
    def test_health(self, client):
        body = client.get("/health").json()

        assert body["database"] == "connected"
        assert body["openai"] == "connected"

    def test_metrics(self, client):
        assert "counters" in client.get("/metrics").json()


# =============================================================================
# Auth
# =============================================================================

class TestAuthEndpoints:
    """Tests for account endpoints."""

    def test_register_then_login(self, client):
        response = client.post(
            "/auth/register",
            data={"fullName": "Ravi K", "email": "Ravi@Example.com", "password": "pw123456"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["token"]
        assert body["user"]["email"] == "ravi@example.com"
        assert body["user"]["fullName"] == "Ravi K"

        login = client.post("/auth/login", json={"email": "ravi@example.com", "password": "pw123456"})
        assert login.status_code == 200
        assert login.json()["id"] == body["id"]

    def test_register_with_profile_image(self, client, storage):
        response = client.post(
            "/auth/register",
            data={"fullName": "Ravi K", "email": "ravi@example.com", "password": "pw"},
            files={"profileImage": ("me.png", b"\x89PNG", "image/png")},
        )

        assert response.status_code == 201
        assert response.json()["user"]["profileImageUrl"].endswith("new.png")
        storage.upload_image.assert_called_once()

    def test_register_missing_password(self, client):
        response = client.post("/auth/register", data={"fullName": "Ravi", "email": "r@example.com"})

        assert response.status_code == 400
        assert response.json()["message"] == "password is required"

    def test_register_duplicate_email(self, client, user):
        response = client.post(
            "/auth/register",
            data={"fullName": "Other", "email": user.email, "password": "pw"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Email already in use"

    def test_login_bad_credentials(self, client, user):
        response = client.post("/auth/login", json={"email": user.email, "password": "nope"})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid credentials"

    def test_me(self, client, user, auth_headers):
        body = client.get("/auth/me", headers=auth_headers).json()

        assert body["id"] == user.id
        assert "passwordHash" not in body

    def test_update_me_replaces_image(self, client, user, auth_headers, storage, db_session):
        user.profile_image_url = "https://res.cloudinary.com/demo/image/upload/v1/uploads/old.png"
        db_session.commit()

        response = client.put(
            "/auth/me",
            data={"fullName": "Asha R"},
            files={"profileImage": ("new.png", b"\x89PNG", "image/png")},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["fullName"] == "Asha R"
        storage.delete_image.assert_called_once_with(
            "https://res.cloudinary.com/demo/image/upload/v1/uploads/old.png"
        )

    def test_me_database_failure_is_500_with_reason(self, client, auth_headers):
        broken = MagicMock()
        broken.query.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
        app.dependency_overrides[get_db] = lambda: broken

        response = client.get("/auth/me", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"].startswith("Error fetching user:")
        assert "disk I/O error" in response.json()["detail"]

    def test_upload_image_requires_file(self, client, auth_headers):
        response = client.post("/auth/upload-image", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "No file uploaded"

    def test_requires_token(self, client):
        assert client.get("/expenses").status_code == 401


# =============================================================================
# Transactions
# =============================================================================

class TestTransactionEndpoints:
    """Tests for income and expense CRUD."""

    def test_add_and_list_expense(self, client, auth_headers, user):
        created = _add_expense(client, auth_headers, category="food", amount=250)

        assert created["icon"] == "Other"
        assert created["ownerId"] == user.id

        listed = client.get("/expenses", headers=auth_headers).json()
        assert [e["category"] for e in listed] == ["food"]

    def test_expense_list_is_newest_first(self, client, auth_headers):
        _add_expense(client, auth_headers, category="old", days_ago=3)
        _add_expense(client, auth_headers, category="new", days_ago=0)

        listed = client.get("/expenses", headers=auth_headers).json()
        assert [e["category"] for e in listed] == ["new", "old"]

    def test_missing_category_is_400(self, client, auth_headers):
        response = client.post("/expenses", json={"amount": 10, "date": _iso()}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "category is required"

    def test_non_positive_amount_is_400(self, client, auth_headers):
        response = client.post(
            "/incomes",
            json={"source": "Gift", "amount": 0, "date": _iso()},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["field"] == "amount"

    def test_delete_income(self, client, auth_headers):
        income = _add_income(client, auth_headers)

        response = client.delete(f"/incomes/{income['id']}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Income deleted successfully"
        assert client.get("/incomes", headers=auth_headers).json() == []

    def test_delete_unknown_id_still_succeeds(self, client, auth_headers):
        response = client.delete("/expenses/999999", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Expense deleted successfully"

    def test_export_expenses(self, client, auth_headers):
        _add_expense(client, auth_headers)

        response = client.get("/expenses/export", headers=auth_headers)

        assert response.status_code == 200
        assert "spreadsheetml" in response.headers["content-type"]
        assert "expense_details.xlsx" in response.headers["content-disposition"]
        assert response.content[:2] == b"PK"

    def test_export_incomes(self, client, auth_headers):
        response = client.get("/incomes/export", headers=auth_headers)

        assert response.status_code == 200
        assert "income_details.xlsx" in response.headers["content-disposition"]


# =============================================================================
# Dashboard
# =============================================================================

class TestDashboard:
    """Tests for dashboard totals and rolling windows."""

    def test_totals_and_windows(self, client, auth_headers):
        _add_income(client, auth_headers, amount=5000, days_ago=1)
        _add_income(client, auth_headers, source="Bonus", amount=1000, days_ago=45)
        _add_income(client, auth_headers, source="Old", amount=200, days_ago=90)
        _add_expense(client, auth_headers, category="food", amount=1200, days_ago=2)
        _add_expense(client, auth_headers, category="travel", amount=800, days_ago=40)

        body = client.get("/dashboard", headers=auth_headers).json()

        assert body["totalIncome"] == 6200
        assert body["totalExpenses"] == 2000
        assert body["totalBalance"] == 4200
        assert body["last30DaysExpenses"]["total"] == 1200
        assert [t["category"] for t in body["last30DaysExpenses"]["transactions"]] == ["food"]
        assert body["last60DaysIncome"]["total"] == 6000

        recent = body["recentTransactions"]
        assert len(recent) == 5
        assert [t["type"] for t in recent[:2]] == ["income", "expense"]

    def test_empty_dashboard(self, client, auth_headers):
        body = client.get("/dashboard", headers=auth_headers).json()

        assert body["totalBalance"] == 0
        assert body["recentTransactions"] == []


# =============================================================================
# AI
# =============================================================================

class TestAIEndpoints:
    """Tests for suggestion and chat endpoints."""

    def test_suggestion(self, client, auth_headers):
        _add_income(client, auth_headers, amount=1000)
        _add_expense(client, auth_headers, category="food", amount=1200)

        response = client.get("/ai/suggestion", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["suggestion"] == "Cut food spending by cooking at home."
        assert body["financialSummary"]["savings"] == -200
        assert body["financialSummary"]["topCategories"][0]["category"] == "food"

    def test_suggestion_model_failure_is_500(self, client, auth_headers, fake_openai):
        fake_openai.chat.completions.create.side_effect = RuntimeError("rate limited")

        response = client.get("/ai/suggestion", headers=auth_headers)

        assert response.status_code == 500
        assert "rate limited" in response.json()["detail"]

    def test_chat(self, client, auth_headers, fake_openai):
        response = client.post(
            "/ai/chat",
            json={
                "message": "How much did I spend?",
                "conversationHistory": [{"role": "user", "content": "hi"}],
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Cut food spending by cooking at home."
        assert body["timestamp"]
        prompt = fake_openai.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "user: hi" in prompt

    def test_chat_empty_message_is_400(self, client, auth_headers, fake_openai):
        response = client.post("/ai/chat", json={"message": "   "}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "message is required"
        fake_openai.chat.completions.create.assert_not_called()


def test_user_row_created_on_register(client, db_session):
    client.post(
        "/auth/register",
        data={"fullName": "Mira", "email": "mira@example.com", "password": "pw"},
    )

    stored = db_session.query(User).filter(User.email == "mira@example.com").first()
    assert stored is not None
    assert stored.password_hash != "pw"
