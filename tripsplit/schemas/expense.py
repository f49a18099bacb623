"""
Pydantic schemas for Expense entity.
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import date as date_type, datetime
from decimal import Decimal
from tripsplit.domain.expense import Category, ExpenseRecord, ExpenseStatus, PaymentMethod, RecurringFrequency
from tripsplit.domain.money import Currency
from tripsplit.domain.splits import SplitEntry, SplitType
from tripsplit.schemas.settlement import BalanceItem, TransferItem


def _strip_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if not v:
        raise ValueError("Title must be between 1 and 100 characters")
    return v


def _strip_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    cleaned = [tag.strip() for tag in tags if tag and tag.strip()]
    for tag in cleaned:
        if len(tag) > 30:
            raise ValueError("Tag cannot exceed 30 characters")
    return cleaned


class SplitEntryIn(BaseModel):
    """One requested share; which fields are needed depends on the split type."""
    user_id: int
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2)
    percentage: Optional[Decimal] = None

    def to_entry(self) -> SplitEntry:
        return SplitEntry(user_id=self.user_id, amount=self.amount, percentage=self.percentage)


class Receipt(BaseModel):
    """Uploaded receipt file; the upload itself happens elsewhere."""
    url: str = Field(..., min_length=1, max_length=500)
    filename: Optional[str] = Field(None, max_length=255)
    uploaded_at: Optional[datetime] = None  # defaults to now


class RecurringPattern(BaseModel):
    """Both fields are required once the expense is recurring."""
    frequency: Optional[RecurringFrequency] = None
    end_date: Optional[date_type] = None


class ExpenseCreate(BaseModel):
    """Schema for expense creation."""
    trip_id: int
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    amount: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)
    currency: Optional[Currency] = None  # defaults to the trip currency
    category: Category
    subcategory: Optional[str] = Field(None, max_length=50)
    date: Optional[date_type] = None  # defaults to today
    payment_method: PaymentMethod = PaymentMethod.CASH
    paid_by: Optional[int] = None  # defaults to the current user
    split_type: SplitType = SplitType.EQUAL
    split_between: Optional[List[SplitEntryIn]] = None
    tags: List[str] = []
    notes: Optional[str] = Field(None, max_length=1000)
    status: ExpenseStatus = ExpenseStatus.CONFIRMED
    exchange_rate: Decimal = Field(Decimal(1), gt=0)
    location_name: Optional[str] = Field(None, max_length=200)
    vendor_name: Optional[str] = Field(None, max_length=200)
    receipt: Optional[Receipt] = None
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return _strip_title(v)

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v):
        return _strip_tags(v)


class ExpenseUpdate(BaseModel):
    """Schema for expense update. Only the fields sent are changed."""
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2)
    currency: Optional[Currency] = None
    category: Optional[Category] = None
    subcategory: Optional[str] = Field(None, max_length=50)
    date: Optional[date_type] = None
    payment_method: Optional[PaymentMethod] = None
    paid_by: Optional[int] = None
    split_type: Optional[SplitType] = None
    split_between: Optional[List[SplitEntryIn]] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=1000)
    status: Optional[ExpenseStatus] = None
    exchange_rate: Optional[Decimal] = Field(None, gt=0)
    location_name: Optional[str] = Field(None, max_length=200)
    vendor_name: Optional[str] = Field(None, max_length=200)
    receipt: Optional[Receipt] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurringPattern] = None
    version: Optional[int] = None  # last version the client saw

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        return _strip_title(v)

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v):
        return _strip_tags(v)


class SplitUpsert(BaseModel):
    """Schema for adding or replacing one participant's share."""
    user_id: int
    amount: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)
    percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    version: Optional[int] = None


class SettleRequest(BaseModel):
    """Settle a share; defaults to the current user's own share."""
    user_id: Optional[int] = None
    version: Optional[int] = None


class ShareResponse(BaseModel):
    user_id: int
    amount: Decimal
    percentage: Optional[Decimal] = None
    settled: bool
    settled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExpenseResponse(BaseModel):
    """Schema for expense response."""
    id: int
    trip_id: int
    title: str
    description: Optional[str] = None
    amount: Decimal
    currency: Currency
    exchange_rate: Decimal
    category: Category
    subcategory: Optional[str] = None
    date: date_type
    payment_method: PaymentMethod
    paid_by: int
    split_type: SplitType
    split_between: List[ShareResponse] = []
    tags: List[str] = []
    notes: Optional[str] = None
    status: ExpenseStatus
    location_name: Optional[str] = None
    vendor_name: Optional[str] = None
    receipt: Optional[Receipt] = None
    is_recurring: bool
    recurring_pattern: Optional[RecurringPattern] = None
    created_by: int
    last_modified_by: Optional[int] = None
    version: int
    is_split: bool
    total_split_amount: Decimal
    unsettled_amount: Decimal
    is_fully_settled: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: ExpenseRecord) -> "ExpenseResponse":
        return cls(
            id=record.id,
            trip_id=record.trip_id,
            title=record.title,
            description=record.description,
            amount=record.amount,
            currency=record.currency,
            exchange_rate=record.exchange_rate,
            category=record.category,
            subcategory=record.subcategory,
            date=record.date,
            payment_method=record.payment_method,
            paid_by=record.paid_by,
            split_type=record.split_type,
            split_between=[ShareResponse.model_validate(share) for share in record.shares],
            tags=record.tags,
            notes=record.notes,
            status=record.status,
            location_name=record.location_name,
            vendor_name=record.vendor_name,
            receipt=Receipt(
                url=record.receipt_url,
                filename=record.receipt_filename,
                uploaded_at=record.receipt_uploaded_at,
            ) if record.receipt_url else None,
            is_recurring=record.is_recurring,
            recurring_pattern=RecurringPattern(
                frequency=record.recurring_frequency,
                end_date=record.recurring_end_date,
            ) if record.is_recurring else None,
            created_by=record.created_by,
            last_modified_by=record.last_modified_by,
            version=record.version,
            is_split=record.is_split,
            total_split_amount=record.total_split_amount,
            unsettled_amount=record.unsettled_amount,
            is_fully_settled=record.is_fully_settled,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    pagination: Pagination


class CategoryExpenseItem(BaseModel):
    """Schema for category expense item in summary."""
    category: Category
    total_amount: Decimal
    count: int
    average_amount: Decimal
    percentage: float  # share of the trip total (0-100)


class PairwiseSettlementItem(BaseModel):
    """What ``owed_by`` owes ``paid_by`` across a trip."""
    paid_by: int
    owed_by: int
    total_owed: Decimal
    settled_amount: Decimal
    unsettled_amount: Decimal


class TripExpenseSummaryResponse(BaseModel):
    trip_id: int
    currency: Currency
    total_amount: Decimal
    total_count: int
    unsettled_amount: Decimal
    by_category: List[CategoryExpenseItem]
    settlements: List[PairwiseSettlementItem]
    balances: List[BalanceItem]
    transfers: List[TransferItem]


class UserSummaryItem(BaseModel):
    category: Category
    year: int
    month: int
    currency: Currency
    total_amount: Decimal
    count: int


class UserExpenseSummaryResponse(BaseModel):
    user_id: int
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    items: List[UserSummaryItem]
