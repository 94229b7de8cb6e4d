"""
SQLAlchemy ORM models for the Expense Tracker.

Includes:
    - User (account with optional profile image)
    - Income, Expense (transactions owned by exactly one user)

Transactions are append/delete only; there is no in-place edit.

Author: Expense Tracker Team
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from database import Base

DEFAULT_ICON = "Other"


class User(Base):
    """Registered account. All transactions are scoped by user id."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    profile_image_url = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)

    incomes = relationship("Income", back_populates="owner", cascade="all, delete-orphan")
    expenses = relationship("Expense", back_populates="owner", cascade="all, delete-orphan")


class Income(Base):
    """Money received, labelled by source."""
    __tablename__ = "incomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)
    source = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    icon = Column(String, default=DEFAULT_ICON)
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User", back_populates="incomes")

    __table_args__ = (
        Index("ix_incomes_owner_date", "owner_id", "date"),
    )


class Expense(Base):
    """Money spent, labelled by category."""
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)
    category = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    icon = Column(String, default=DEFAULT_ICON)
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User", back_populates="expenses")

    __table_args__ = (
        Index("ix_expenses_owner_date", "owner_id", "date"),
    )
