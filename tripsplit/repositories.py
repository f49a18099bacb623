"""
Persistence for expenses.

Maps ``Expense`` rows to ``ExpenseRecord`` values and back. Saving is a
compare-and-swap on the ``version`` column: a record that was read at
version N can only be written while the row is still at version N.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError
from tripsplit.core.exceptions import ConcurrencyConflict, NotFoundError
from tripsplit.db.base import utcnow
from tripsplit.domain.expense import Category, ExpenseRecord, ExpenseStatus, PaymentMethod, RecurringFrequency
from tripsplit.domain.money import Currency
from tripsplit.domain.splits import Share, SplitType
from tripsplit.models.expense import Expense, ExpenseParticipant

logger = logging.getLogger(__name__)


def _as_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def to_record(row: Expense) -> ExpenseRecord:
    """Convert an ORM row into a domain record."""
    return ExpenseRecord(
        id=row.id,
        trip_id=row.trip_id,
        title=row.title,
        description=row.description,
        amount=_as_decimal(row.amount).quantize(Decimal("0.01")),
        currency=Currency(row.currency),
        exchange_rate=_as_decimal(row.exchange_rate),
        category=Category(row.category),
        subcategory=row.subcategory,
        date=row.date,
        payment_method=PaymentMethod(row.payment_method),
        split_type=SplitType(row.split_type),
        paid_by=row.paid_by,
        shares=[
            Share(
                user_id=p.user_id,
                amount=_as_decimal(p.amount).quantize(Decimal("0.01")),
                percentage=_as_decimal(p.percentage),
                settled=p.settled,
                settled_at=p.settled_at,
            )
            for p in row.participants
        ],
        tags=list(row.tags or []),
        notes=row.notes,
        status=ExpenseStatus(row.status),
        location_name=row.location_name,
        vendor_name=row.vendor_name,
        receipt_url=row.receipt_url,
        receipt_filename=row.receipt_filename,
        receipt_uploaded_at=row.receipt_uploaded_at,
        is_recurring=bool(row.is_recurring),
        recurring_frequency=(
            RecurringFrequency(row.recurring_frequency) if row.recurring_frequency else None
        ),
        recurring_end_date=row.recurring_end_date,
        created_by=row.created_by,
        last_modified_by=row.last_modified_by,
        is_deleted=row.is_deleted,
        deleted_at=row.deleted_at,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply_record(row: Expense, record: ExpenseRecord) -> None:
    row.trip_id = record.trip_id
    row.title = record.title
    row.description = record.description
    row.amount = record.amount
    row.currency = record.currency.value
    row.exchange_rate = record.exchange_rate
    row.category = record.category.value
    row.subcategory = record.subcategory
    row.date = record.date
    row.payment_method = record.payment_method.value
    row.split_type = record.split_type.value
    row.paid_by = record.paid_by
    row.tags = list(record.tags)
    row.notes = record.notes
    row.status = record.status.value
    row.location_name = record.location_name
    row.vendor_name = record.vendor_name
    row.receipt_url = record.receipt_url
    row.receipt_filename = record.receipt_filename
    row.receipt_uploaded_at = record.receipt_uploaded_at
    row.is_recurring = record.is_recurring
    row.recurring_frequency = record.recurring_frequency.value if record.recurring_frequency else None
    row.recurring_end_date = record.recurring_end_date
    row.created_by = record.created_by
    row.last_modified_by = record.last_modified_by
    row.is_deleted = record.is_deleted
    row.deleted_at = record.deleted_at
    # Always dirty the parent row so share-only changes still go through the version check
    row.updated_at = utcnow()
    _sync_participants(row, record.shares)


def _sync_participants(row: Expense, shares: List[Share]) -> None:
    """Update share rows in place, keyed by user id."""
    existing = {p.user_id: p for p in row.participants}
    synced = []
    for position, share in enumerate(shares):
        participant = existing.pop(share.user_id, None)
        if participant is None:
            participant = ExpenseParticipant(user_id=share.user_id)
        participant.position = position
        participant.amount = share.amount
        participant.percentage = share.percentage
        participant.settled = share.settled
        participant.settled_at = share.settled_at
        synced.append(participant)
    row.participants = synced


class ExpenseRepository:
    """Expense storage bound to one request-scoped session."""

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Expense).options(selectinload(Expense.participants))

    def get(self, expense_id: int, include_deleted: bool = False) -> ExpenseRecord:
        row = self._query().filter(Expense.id == expense_id).first()
        if row is None or (row.is_deleted and not include_deleted):
            raise NotFoundError("Expense not found")
        return to_record(row)

    def add(self, record: ExpenseRecord) -> ExpenseRecord:
        row = Expense()
        _apply_record(row, record)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info("expense %s created on trip %s", row.id, row.trip_id)
        return to_record(row)

    def save(self, record: ExpenseRecord) -> ExpenseRecord:
        """
        Persist a modified record.

        Raises ConcurrencyConflict when the row is no longer at
        ``record.version``, either because this session already sees a newer
        version or because another transaction committed first.
        """
        row = self.db.get(Expense, record.id)
        if row is None:
            raise NotFoundError("Expense not found")
        if row.version != record.version:
            raise ConcurrencyConflict(
                f"Expense {record.id} was modified (version {row.version}, expected {record.version})"
            )
        _apply_record(row, record)
        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning("lost update prevented on expense %s at version %s", record.id, record.version)
            raise ConcurrencyConflict(f"Expense {record.id} was modified by another request")
        self.db.refresh(row)
        return to_record(row)

    def list_for_trip(self, trip_id: int) -> List[ExpenseRecord]:
        """Every non-deleted expense of a trip, oldest first."""
        rows = self._query().filter(
            Expense.trip_id == trip_id,
            Expense.is_deleted.is_(False),
        ).order_by(Expense.date, Expense.id).all()
        return [to_record(row) for row in rows]

    def search(
        self,
        trip_ids: List[int],
        category: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[ExpenseRecord], int]:
        """Paginated non-deleted expenses of the given trips, newest first."""
        query = self.db.query(Expense).filter(
            Expense.trip_id.in_(trip_ids),
            Expense.is_deleted.is_(False),
        )
        if category:
            query = query.filter(Expense.category == category)
        if start_date:
            query = query.filter(Expense.date >= start_date)
        if end_date:
            query = query.filter(Expense.date <= end_date)

        total = query.with_entities(func.count(Expense.id)).scalar() or 0
        rows = query.options(selectinload(Expense.participants)).order_by(
            Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc()
        ).offset(offset).limit(limit).all()
        return [to_record(row) for row in rows], total

    def list_paid_by(
        self,
        user_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[ExpenseRecord]:
        query = self._query().filter(
            Expense.paid_by == user_id,
            Expense.is_deleted.is_(False),
        )
        if start_date and end_date:
            query = query.filter(Expense.date >= start_date, Expense.date <= end_date)
        return [to_record(row) for row in query.order_by(Expense.date).all()]
