"""
Expense service for expense-related business logic.

Each operation loads the trip and the expense, checks access, computes the
new expense state with the domain functions and saves it through the
repository.
"""
import logging
import math
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from tripsplit.core.config import settings
from tripsplit.core.exceptions import ConcurrencyConflict
from tripsplit.domain.expense import ExpenseRecord, create_expense_record
from tripsplit.domain.money import parse_currency
from tripsplit.models.user import User
from tripsplit.repositories import ExpenseRepository
from tripsplit.schemas.expense import ExpenseCreate, ExpenseUpdate, SplitUpsert
from tripsplit.services.access import (
    accessible_trip_ids,
    check_expense_modify,
    check_members,
    check_trip_access,
)

logger = logging.getLogger(__name__)

# Plain attributes an update may overwrite as-is
_SIMPLE_FIELDS = (
    "title", "description", "category", "subcategory", "date", "payment_method",
    "tags", "notes", "status", "exchange_rate", "location_name", "vendor_name",
)
# Optional attributes an update may set back to null
_CLEARABLE_FIELDS = ("description", "subcategory", "notes", "location_name", "vendor_name")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_version(record: ExpenseRecord, version: Optional[int]) -> None:
    if version is not None and version != record.version:
        raise ConcurrencyConflict(
            f"Expense {record.id} is at version {record.version}, not {version}"
        )


def _receipt_fields(receipt) -> dict:
    if receipt is None:
        return {"receipt_url": None, "receipt_filename": None, "receipt_uploaded_at": None}
    return {
        "receipt_url": receipt.url,
        "receipt_filename": receipt.filename,
        "receipt_uploaded_at": receipt.uploaded_at or _now(),
    }


def _recurring_fields(is_recurring: bool, pattern) -> dict:
    return {
        "is_recurring": is_recurring,
        "recurring_frequency": pattern.frequency if pattern else None,
        "recurring_end_date": pattern.end_date if pattern else None,
    }


def _load_for_change(db: Session, user: User, expense_id: int, message: str):
    repo = ExpenseRepository(db)
    record = repo.get(expense_id)
    trip = check_trip_access(record.trip_id, user, db)
    check_expense_modify(record, trip, user, message)
    return repo, trip, record


def create_expense(db: Session, user: User, data: ExpenseCreate) -> ExpenseRecord:
    """Create an expense on a trip the user can access, splitting it if participants are given."""
    trip = check_trip_access(data.trip_id, user, db)

    paid_by = data.paid_by if data.paid_by is not None else user.id
    check_members(trip, [paid_by], field="paid_by")
    entries = [entry.to_entry() for entry in data.split_between or []]
    check_members(trip, [entry.user_id for entry in entries], field="split_between")

    record = create_expense_record(
        trip_id=trip.id,
        paid_by=paid_by,
        created_by=user.id,
        title=data.title,
        amount=data.amount,
        category=data.category,
        expense_date=data.date or date.today(),
        currency=data.currency or parse_currency(trip.base_currency),
        split_type=data.split_type,
        split_entries=entries,
        tolerance=settings.SPLIT_TOLERANCE,
        percentage_tolerance=settings.PERCENTAGE_TOLERANCE,
        description=data.description,
        subcategory=data.subcategory,
        payment_method=data.payment_method,
        tags=data.tags,
        notes=data.notes,
        status=data.status,
        exchange_rate=data.exchange_rate,
        location_name=data.location_name,
        vendor_name=data.vendor_name,
        **_receipt_fields(data.receipt),
        **_recurring_fields(data.is_recurring, data.recurring_pattern),
    )
    return ExpenseRepository(db).add(record)


def get_expense(db: Session, user: User, expense_id: int) -> ExpenseRecord:
    record = ExpenseRepository(db).get(expense_id)
    check_trip_access(record.trip_id, user, db)
    return record


def list_expenses(
    db: Session,
    user: User,
    trip_id: Optional[int] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[ExpenseRecord], dict]:
    """Expenses of one trip, or of every trip the user belongs to."""
    if trip_id is not None:
        trip_ids = [check_trip_access(trip_id, user, db).id]
    else:
        trip_ids = accessible_trip_ids(user, db)

    records, total = ExpenseRepository(db).search(
        trip_ids,
        category=category,
        start_date=start_date,
        end_date=end_date,
        offset=(page - 1) * limit,
        limit=limit,
    )
    pagination = {
        "current_page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
        "total_items": total,
        "items_per_page": limit,
    }
    return records, pagination


def update_expense(db: Session, user: User, expense_id: int, data: ExpenseUpdate) -> ExpenseRecord:
    """
    Apply a partial update. Changing the amount re-derives equal and
    percentage splits; new ``split_between`` entries replace every share.
    Either way the shares must still add up to the amount.
    """
    repo, trip, record = _load_for_change(
        db, user, expense_id, "You can only edit expenses you created"
    )
    _check_version(record, data.version)
    changes = data.model_dump(exclude_unset=True)

    simple = {
        name: changes[name]
        for name in _SIMPLE_FIELDS
        if name in changes and (changes[name] is not None or name in _CLEARABLE_FIELDS)
    }
    updated = replace(record, **simple)

    if changes.get("paid_by") is not None:
        check_members(trip, [changes["paid_by"]], field="paid_by")
        updated = replace(updated, paid_by=changes["paid_by"])

    if changes.get("amount") is not None or changes.get("currency") is not None:
        amount = updated.amount if changes.get("amount") is None else changes["amount"]
        if data.split_between is not None:
            # the new shares are checked against the new total below
            updated = updated.retotal(amount, changes.get("currency"))
        else:
            updated = updated.with_amount(
                amount,
                changes.get("currency"),
                tolerance=settings.SPLIT_TOLERANCE,
                percentage_tolerance=settings.PERCENTAGE_TOLERANCE,
            )

    if data.split_between is not None:
        entries = [entry.to_entry() for entry in data.split_between]
        check_members(trip, [entry.user_id for entry in entries], field="split_between")
        if entries:
            updated = updated.resplit(
                data.split_type or updated.split_type,
                entries,
                tolerance=settings.SPLIT_TOLERANCE,
                percentage_tolerance=settings.PERCENTAGE_TOLERANCE,
            )
        else:
            updated = replace(updated, shares=[])

    if "receipt" in changes:
        updated = replace(updated, **_receipt_fields(data.receipt))

    if "is_recurring" in changes or "recurring_pattern" in changes:
        is_recurring = updated.is_recurring if data.is_recurring is None else data.is_recurring
        if "recurring_pattern" in changes:
            pattern_fields = _recurring_fields(is_recurring, data.recurring_pattern)
        elif is_recurring:
            pattern_fields = {"is_recurring": True}
        else:
            pattern_fields = _recurring_fields(False, None)
        updated = replace(updated, **pattern_fields)

    updated = replace(updated, last_modified_by=user.id)
    if {"amount", "currency", "split_between"} & changes.keys():
        updated.validate(settings.SPLIT_TOLERANCE)
    else:
        updated.validate_fields()
    saved = repo.save(updated)
    logger.info("expense %s updated by user %s", saved.id, user.id)
    return saved


def delete_expense(db: Session, user: User, expense_id: int) -> None:
    """Soft delete; the row stays for history but leaves every summary."""
    repo, trip, record = _load_for_change(
        db, user, expense_id, "You can only delete expenses you created"
    )
    deleted = replace(record.soft_delete(_now()), last_modified_by=user.id)
    repo.save(deleted)
    logger.info("expense %s deleted by user %s", record.id, user.id)


def add_or_replace_split(db: Session, user: User, expense_id: int, data: SplitUpsert) -> ExpenseRecord:
    repo, trip, record = _load_for_change(
        db, user, expense_id, "You cannot modify splits for this expense"
    )
    _check_version(record, data.version)
    check_members(trip, [data.user_id], field="user_id")
    updated = record.add_or_replace_split(data.user_id, data.amount, data.percentage)
    return repo.save(replace(updated, last_modified_by=user.id))


def finalize_splits(db: Session, user: User, expense_id: int) -> ExpenseRecord:
    """Check the shares add up to the amount so the expense can be settled."""
    repo, trip, record = _load_for_change(
        db, user, expense_id, "You cannot modify splits for this expense"
    )
    finalized = record.finalize_splits(settings.SPLIT_TOLERANCE)
    if finalized is record:
        return record
    return repo.save(replace(finalized, last_modified_by=user.id))


def settle_split(
    db: Session,
    user: User,
    expense_id: int,
    user_id: Optional[int] = None,
    version: Optional[int] = None,
) -> ExpenseRecord:
    """
    Mark a share as paid back.

    Participants settle their own share. Settling someone else's share is
    reserved for the payer, the expense creator, the trip owner and admins.
    """
    repo = ExpenseRepository(db)
    record = repo.get(expense_id)
    trip = check_trip_access(record.trip_id, user, db)
    target = user_id if user_id is not None else user.id
    if target != user.id and user.id != record.paid_by:
        check_expense_modify(record, trip, user, "You can only settle your own share")
    _check_version(record, version)

    settled = record.settle_split(target, _now(), settings.SPLIT_TOLERANCE)
    saved = repo.save(replace(settled, last_modified_by=user.id))
    logger.info("share of user %s on expense %s settled by user %s", target, expense_id, user.id)
    return saved
