"""
Expense entity.

``ExpenseRecord`` is a plain dataclass; the operations on it return a new
record and leave persisting it to ``tripsplit.repositories``.
"""
import enum
from dataclasses import dataclass, field, replace
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from tripsplit.core.exceptions import AlreadySettled, NotFoundError, ShareNotFound, ValidationError
from tripsplit.domain.money import (
    PERCENTAGE_TOLERANCE,
    SPLIT_TOLERANCE,
    Currency,
    Money,
    from_cents,
    parse_currency,
    to_cents,
    to_decimal,
)
from tripsplit.domain.splits import (
    Share,
    SplitEntry,
    SplitType,
    build_split,
    compute_equal_split,
    compute_percentage_split,
    validate_custom_split,
)


class Category(str, enum.Enum):
    FLIGHTS = "flights"
    ACCOMMODATION = "accommodation"
    FOOD = "food"
    ACTIVITIES = "activities"
    TRANSPORT = "transport"
    SHOPPING = "shopping"
    MISCELLANEOUS = "miscellaneous"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class ExpenseStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISPUTED = "disputed"
    REFUNDED = "refunded"


class RecurringFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class ExpenseRecord:
    trip_id: int
    title: str
    amount: Decimal
    category: Category
    paid_by: int
    created_by: int
    date: date_type
    currency: Currency = Currency.USD
    shares: List[Share] = field(default_factory=list)
    split_type: SplitType = SplitType.CUSTOM
    id: Optional[int] = None
    description: Optional[str] = None
    subcategory: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    status: ExpenseStatus = ExpenseStatus.CONFIRMED
    exchange_rate: Decimal = Decimal(1)
    location_name: Optional[str] = None
    vendor_name: Optional[str] = None
    receipt_url: Optional[str] = None
    receipt_filename: Optional[str] = None
    receipt_uploaded_at: Optional[datetime] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    recurring_end_date: Optional[date_type] = None
    last_modified_by: Optional[int] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    version: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Derived values

    @property
    def money(self) -> Money:
        return Money.of(self.amount, self.currency)

    @property
    def is_split(self) -> bool:
        return len(self.shares) > 1

    @property
    def total_split_amount(self) -> Decimal:
        return from_cents(sum(share.cents for share in self.shares))

    @property
    def unsettled_amount(self) -> Decimal:
        return from_cents(sum(share.cents for share in self.shares if not share.settled))

    @property
    def is_fully_settled(self) -> bool:
        return bool(self.shares) and all(share.settled for share in self.shares)

    @property
    def participant_ids(self) -> List[int]:
        return [share.user_id for share in self.shares]

    def find_share(self, user_id: int) -> Optional[Share]:
        for share in self.shares:
            if share.user_id == user_id:
                return share
        return None

    # Validation

    def check_split_invariant(self, tolerance: Decimal = SPLIT_TOLERANCE) -> None:
        if self.shares:
            validate_custom_split(self.money, self.shares, tolerance)

    def validate_fields(self) -> None:
        """Rules on the expense itself, leaving the shares aside."""
        Money.of(self.amount, self.currency)
        if not self.title or not self.title.strip():
            raise ValidationError("Expense title is required", field="title")
        if self.exchange_rate <= 0:
            raise ValidationError("Exchange rate must be positive", field="exchange_rate")
        if self.is_recurring:
            if self.recurring_frequency is None:
                raise ValidationError(
                    "Frequency is required for a recurring expense",
                    field="recurring_pattern.frequency",
                )
            if self.recurring_end_date is None:
                raise ValidationError(
                    "End date is required for a recurring expense",
                    field="recurring_pattern.end_date",
                )
            if self.recurring_end_date < self.date:
                raise ValidationError(
                    "Recurring end date cannot be before the expense date",
                    field="recurring_pattern.end_date",
                )

    def validate(self, tolerance: Decimal = SPLIT_TOLERANCE) -> None:
        """Run every record-level rule; raises ValidationError subclasses."""
        self.validate_fields()
        self.check_split_invariant(tolerance)

    # Operations

    def add_or_replace_split(
        self, user_id: int, amount, percentage: Optional[Decimal] = None
    ) -> "ExpenseRecord":
        """
        Drop any share ``user_id`` already has and append a new one.

        Shares may be entered one at a time, so the sum-to-total rule is not
        checked here; ``finalize_splits`` and ``settle_split`` check it.
        """
        cents = to_cents(amount, field="amount")
        if cents < 0:
            raise ValidationError("Split amount cannot be negative", field="amount")
        if percentage is not None:
            percentage = to_decimal(percentage, field="percentage")
            if percentage < 0 or percentage > 100:
                raise ValidationError("Percentage must be between 0 and 100", field="percentage")
        shares = [share for share in self.shares if share.user_id != user_id]
        shares.append(Share(user_id=user_id, amount=from_cents(cents), percentage=percentage))
        return replace(self, shares=shares, split_type=SplitType.CUSTOM)

    def finalize_splits(self, tolerance: Decimal = SPLIT_TOLERANCE) -> "ExpenseRecord":
        self.check_split_invariant(tolerance)
        if self.status == ExpenseStatus.PENDING:
            return replace(self, status=ExpenseStatus.CONFIRMED)
        return self

    def settle_split(
        self, user_id: int, now: datetime, tolerance: Decimal = SPLIT_TOLERANCE
    ) -> "ExpenseRecord":
        share = self.find_share(user_id)
        if share is None:
            raise ShareNotFound(f"No share for user {user_id} in this expense", field="user_id")
        if share.settled:
            raise AlreadySettled("This split is already settled")
        self.check_split_invariant(tolerance)
        shares = [
            replace(s, settled=True, settled_at=now) if s.user_id == user_id else s
            for s in self.shares
        ]
        return replace(self, shares=shares)

    def soft_delete(self, now: datetime) -> "ExpenseRecord":
        if self.is_deleted:
            raise NotFoundError("Expense not found")
        return replace(self, is_deleted=True, deleted_at=now)

    def resplit(
        self,
        split_type: SplitType,
        entries: Sequence[SplitEntry],
        tolerance: Decimal = SPLIT_TOLERANCE,
        percentage_tolerance: Decimal = PERCENTAGE_TOLERANCE,
    ) -> "ExpenseRecord":
        """Replace all shares; settled flags survive for unchanged shares."""
        shares = build_split(split_type, self.money, entries, tolerance, percentage_tolerance)
        return replace(
            self,
            shares=self._carry_settlement(shares),
            split_type=SplitType(split_type),
        )

    def with_amount(
        self,
        amount,
        currency=None,
        tolerance: Decimal = SPLIT_TOLERANCE,
        percentage_tolerance: Decimal = PERCENTAGE_TOLERANCE,
    ) -> "ExpenseRecord":
        """
        Change the total. Equal and percentage splits are recomputed for the
        same participants; custom splits must still add up.
        """
        updated = self.retotal(amount, currency)
        if not self.shares:
            return updated
        if self.split_type == SplitType.EQUAL:
            shares = compute_equal_split(updated.money, self.participant_ids)
        elif self.split_type == SplitType.PERCENTAGE:
            entries = [SplitEntry(s.user_id, percentage=s.percentage) for s in self.shares]
            shares = compute_percentage_split(updated.money, entries, percentage_tolerance)
        else:
            updated.check_split_invariant(tolerance)
            return updated
        return replace(updated, shares=self._carry_settlement(shares))

    def retotal(self, amount, currency=None) -> "ExpenseRecord":
        """Change amount and currency only; the caller replaces or checks the shares."""
        return replace(
            self,
            amount=Money.of(amount).amount,
            currency=parse_currency(currency) if currency is not None else self.currency,
        )

    def _carry_settlement(self, shares: Sequence[Share]) -> List[Share]:
        """
        Keep a settled flag only where the share amount is unchanged. A share
        that grew or shrank is open again, since the repayment covered the
        old amount.
        """
        previous = {share.user_id: share for share in self.shares}
        carried = []
        for share in shares:
            old = previous.get(share.user_id)
            if old is not None and old.settled and old.cents == share.cents:
                share = replace(share, settled=True, settled_at=old.settled_at)
            carried.append(share)
        return carried


def parse_category(value) -> Category:
    try:
        return Category(value)
    except ValueError:
        raise ValidationError(f"Unsupported category '{value}'", field="category")


def create_expense_record(
    trip_id: int,
    paid_by: int,
    created_by: int,
    title: str,
    amount,
    category,
    expense_date: date_type,
    currency=Currency.USD,
    split_type=SplitType.EQUAL,
    split_entries: Optional[Sequence[SplitEntry]] = None,
    tolerance: Decimal = SPLIT_TOLERANCE,
    percentage_tolerance: Decimal = PERCENTAGE_TOLERANCE,
    **attributes,
) -> ExpenseRecord:
    """Build and validate a new, unsaved expense."""
    total = Money.of(amount, currency)
    shares: List[Share] = []
    if split_entries:
        shares = build_split(split_type, total, split_entries, tolerance, percentage_tolerance)
    record = ExpenseRecord(
        trip_id=trip_id,
        title=title.strip() if title else title,
        amount=total.amount,
        currency=total.currency,
        category=parse_category(category),
        paid_by=paid_by,
        created_by=created_by,
        date=expense_date,
        shares=shares,
        split_type=SplitType(split_type),
        **attributes,
    )
    record.validate(tolerance)
    return record
