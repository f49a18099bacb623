"""
Expense management routes.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date
from tripsplit.core.config import settings
from tripsplit.core.exceptions import AccessDenied
from tripsplit.core.utils import format_response
from tripsplit.db.session import get_db
from tripsplit.models.user import User
from tripsplit.schemas.expense import (
    ExpenseCreate, ExpenseUpdate, ExpenseResponse, ExpenseListResponse,
    SplitUpsert, SettleRequest, TripExpenseSummaryResponse, UserExpenseSummaryResponse
)
from tripsplit.api.dependencies import get_current_user
from tripsplit.services import expense_service
from tripsplit.services.access import check_trip_access
from tripsplit.services.summary_service import get_user_summary, trip_summary

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("", response_model=ExpenseListResponse)
async def list_expenses(
    trip_id: Optional[int] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List expenses, newest first, filtered by trip, category and date range."""
    limit = min(limit, settings.MAX_PAGE_SIZE)
    records, pagination = expense_service.list_expenses(
        db, current_user,
        trip_id=trip_id,
        category=category,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return ExpenseListResponse(
        expenses=[ExpenseResponse.from_record(record) for record in records],
        pagination=pagination,
    )


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense_data: ExpenseCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a new expense."""
    record = expense_service.create_expense(db, current_user, expense_data)
    return ExpenseResponse.from_record(record)


@router.get("/trip/{trip_id}/summary", response_model=TripExpenseSummaryResponse)
async def get_trip_summary(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Totals by category, who owes whom, and the transfer plan of a trip."""
    trip = check_trip_access(trip_id, current_user, db)
    return trip_summary(trip, db)


@router.get("/users/{user_id}/summary", response_model=UserExpenseSummaryResponse)
async def get_user_expense_summary(
    user_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Monthly totals per category of what a user paid."""
    if user_id != current_user.id and not current_user.is_admin:
        raise AccessDenied("You can only view your own expense summary")

    return UserExpenseSummaryResponse(
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        items=get_user_summary(user_id, db, start_date, end_date),
    )


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get a single expense."""
    return ExpenseResponse.from_record(expense_service.get_expense(db, current_user, expense_id))


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    expense_data: ExpenseUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update an expense."""
    record = expense_service.update_expense(db, current_user, expense_id, expense_data)
    return ExpenseResponse.from_record(record)


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete an expense."""
    expense_service.delete_expense(db, current_user, expense_id)
    return format_response(message="Expense deleted successfully")


@router.post("/{expense_id}/split", response_model=ExpenseResponse)
async def add_or_replace_split(
    expense_id: int,
    split_data: SplitUpsert,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Add a participant's share, or replace it if they already have one."""
    record = expense_service.add_or_replace_split(db, current_user, expense_id, split_data)
    return ExpenseResponse.from_record(record)


@router.post("/{expense_id}/finalize", response_model=ExpenseResponse)
async def finalize_splits(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Confirm the shares add up to the amount."""
    record = expense_service.finalize_splits(db, current_user, expense_id)
    return ExpenseResponse.from_record(record)


@router.post("/{expense_id}/settle", response_model=ExpenseResponse)
async def settle_split(
    expense_id: int,
    settle_data: SettleRequest = SettleRequest(),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Mark a share as paid back."""
    record = expense_service.settle_split(
        db, current_user, expense_id,
        user_id=settle_data.user_id,
        version=settle_data.version,
    )
    return ExpenseResponse.from_record(record)
