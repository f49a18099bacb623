"""
Expense model for shared trip spending.
"""
from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text
)
from sqlalchemy.orm import relationship
from tripsplit.db.base import BaseModel


class Expense(BaseModel):
    """A single spending event paid by one user and shared between participants."""
    __tablename__ = "expenses"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    exchange_rate = Column(Numeric(18, 8), nullable=False, default=1)  # 1 unit = rate trip currency
    category = Column(String(30), nullable=False, index=True)
    subcategory = Column(String(50), nullable=True)
    date = Column(Date, nullable=False, index=True)
    payment_method = Column(String(20), nullable=False, default="cash")
    split_type = Column(String(20), nullable=False, default="equal")
    paid_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="confirmed")
    location_name = Column(String(200), nullable=True)
    vendor_name = Column(String(200), nullable=True)
    receipt_url = Column(String(500), nullable=True)
    receipt_filename = Column(String(255), nullable=True)
    receipt_uploaded_at = Column(DateTime(timezone=True), nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_frequency = Column(String(10), nullable=True)  # daily, weekly, monthly
    recurring_end_date = Column(Date, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    last_modified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    # Every UPDATE is conditional on the version that was read
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    trip = relationship("Trip", back_populates="expenses")
    participants = relationship(
        "ExpenseParticipant",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseParticipant.position",
    )


class ExpenseParticipant(BaseModel):
    """One participant's share of an expense."""
    __tablename__ = "expense_participants"

    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)  # entry order; first gets rounding remainder
    amount = Column(Numeric(15, 2), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=True)
    settled = Column(Boolean, nullable=False, default=False)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    expense = relationship("Expense", back_populates="participants")
