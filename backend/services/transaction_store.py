"""
Module: transaction_store.py
Description: Persistence for income and expense records, keyed by owner.

One TransactionStore wraps one database session and one transaction kind.
Connectivity failures surface as StoreUnavailable; every other database
error propagates unchanged.

Usage:
    store = TransactionStore.for_kind(db, "expense")
    store.add(user_id, label="food", amount=12.5, date=datetime.utcnow())
    recent = store.recent(user_id, limit=5)

Author: Expense Tracker Team
"""

import functools
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session as DBSession

from models import DEFAULT_ICON, Expense, Income
from services.aggregation import to_naive_utc
from services.errors import StoreUnavailable
from services.observability import log_store_failure, timed


KINDS = {
    "income": (Income, "source"),
    "expense": (Expense, "category"),
}


def _store_operation(name: str):
    """Translate connectivity errors into StoreUnavailable and roll back."""
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except (OperationalError, InterfaceError) as e:
                self.db.rollback()
                log_store_failure(f"{self.kind}.{name}", e)
                raise StoreUnavailable(f"Database unavailable during {name}: {e}") from e
        return timed(f"store.{name}")(wrapper)
    return decorator


class TransactionStore:
    """Query-by-owner, aggregate-sum, insert and delete-by-id for one kind."""

    def __init__(self, db: DBSession, kind: str):
        if kind not in KINDS:
            raise ValueError(f"Unknown transaction kind: {kind}")
        self.db = db
        self.kind = kind
        self.model, self.label_field = KINDS[kind]

    @classmethod
    def for_kind(cls, db: DBSession, kind: str) -> "TransactionStore":
        return cls(db, kind)

    @_store_operation("add")
    def add(
        self,
        owner_id: str,
        label: str,
        amount: float,
        date: Optional[datetime] = None,
        icon: Optional[str] = None,
    ):
        record = self.model(
            owner_id=owner_id,
            amount=amount,
            icon=icon or DEFAULT_ICON,
            date=to_naive_utc(date) if date else datetime.utcnow(),
            **{self.label_field: label},
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    @_store_operation("list")
    def list_all(self, owner_id: str) -> list:
        """All of the owner's records, newest first."""
        return (
            self.db.query(self.model)
            .filter(self.model.owner_id == owner_id)
            .order_by(self.model.date.desc())
            .all()
        )

    @_store_operation("list_window")
    def list_window(self, owner_id: str, start: datetime, end: Optional[datetime] = None) -> list:
        """Records with start <= date (< end when given), newest first."""
        query = (
            self.db.query(self.model)
            .filter(self.model.owner_id == owner_id)
            .filter(self.model.date >= to_naive_utc(start))
        )
        if end is not None:
            query = query.filter(self.model.date < to_naive_utc(end))
        return query.order_by(self.model.date.desc()).all()

    @_store_operation("recent")
    def recent(self, owner_id: str, limit: int = 5) -> list:
        return (
            self.db.query(self.model)
            .filter(self.model.owner_id == owner_id)
            .order_by(self.model.date.desc())
            .limit(limit)
            .all()
        )

    @_store_operation("total")
    def total(self, owner_id: str) -> float:
        """Lifetime sum of amounts, 0 when the owner has no records."""
        result = (
            self.db.query(func.sum(self.model.amount))
            .filter(self.model.owner_id == owner_id)
            .scalar()
        )
        return result or 0

    @_store_operation("delete")
    def delete(self, owner_id: str, record_id: int) -> bool:
        """
        Delete one of the owner's records.

        Returns:
            True if a record was removed, False if none matched.
        """
        removed = (
            self.db.query(self.model)
            .filter(self.model.id == record_id)
            .filter(self.model.owner_id == owner_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return removed > 0
