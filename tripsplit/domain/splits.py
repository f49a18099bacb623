"""
Split calculator: turns an expense total and a list of participants into
per-participant shares, or checks shares someone else entered.

All functions here are pure; they never touch the database.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from tripsplit.core.exceptions import (
    PercentageOutOfRange,
    PercentageSumMismatch,
    SplitMismatch,
    ValidationError,
)
from tripsplit.domain.money import (
    PERCENTAGE_TOLERANCE,
    SPLIT_TOLERANCE,
    Money,
    from_cents,
    to_cents,
    to_decimal,
    within_tolerance,
)

HUNDRED = Decimal(100)


class SplitType(str, enum.Enum):
    EQUAL = "equal"
    CUSTOM = "custom"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class Share:
    """One participant's portion of an expense."""
    user_id: int
    amount: Decimal
    percentage: Optional[Decimal] = None
    settled: bool = False
    settled_at: Optional[datetime] = None

    @property
    def cents(self) -> int:
        return to_cents(self.amount, field="split_between.amount")


@dataclass(frozen=True)
class SplitEntry:
    """A requested share before the calculator has filled in the amount."""
    user_id: int
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None


def _ensure_unique(user_ids: Sequence[int]) -> None:
    seen = set()
    for user_id in user_ids:
        if user_id in seen:
            raise ValidationError(
                f"User {user_id} appears more than once in the split",
                field="split_between",
            )
        seen.add(user_id)


def share_total_cents(shares: Sequence[Share]) -> int:
    return sum(share.cents for share in shares)


def compute_equal_split(total: Money, participants: Sequence[int]) -> List[Share]:
    """
    Divide ``total`` evenly between ``participants``.

    When the cents do not divide exactly, the leftover cents all go to the
    first participant, so the shares always add up to the total exactly.
    """
    if not participants:
        raise ValidationError("At least one participant is required", field="split_between")
    _ensure_unique(participants)

    base, remainder = divmod(total.cents, len(participants))
    shares = []
    for index, user_id in enumerate(participants):
        cents = base + remainder if index == 0 else base
        shares.append(Share(user_id=user_id, amount=from_cents(cents)))
    return shares


def validate_custom_split(total: Money, shares: Sequence[Share], tolerance: Decimal = SPLIT_TOLERANCE) -> None:
    """Raise SplitMismatch unless the shares add up to ``total``."""
    for share in shares:
        if share.cents < 0:
            raise ValidationError("Split amount cannot be negative", field="split_between.amount")
    difference = share_total_cents(shares) - total.cents
    if not within_tolerance(difference, tolerance):
        raise SplitMismatch(
            f"Split amounts must equal the total expense amount "
            f"(shares sum to {from_cents(share_total_cents(shares))}, expense is {total.amount})",
            field="split_between",
        )


def _check_percentage(percentage: Optional[Decimal]) -> Decimal:
    if percentage is None:
        raise ValidationError(
            "Percentage is required for every participant of a percentage split",
            field="split_between.percentage",
        )
    value = to_decimal(percentage, field="split_between.percentage")
    if value < 0 or value > HUNDRED:
        raise PercentageOutOfRange(
            f"Percentage {value} must be between 0 and 100",
            field="split_between.percentage",
        )
    return value


def validate_percentage_split(shares: Sequence, tolerance: Decimal = PERCENTAGE_TOLERANCE) -> None:
    """Check every percentage is in range and that together they make ~100."""
    total = sum((_check_percentage(share.percentage) for share in shares), Decimal(0))
    if abs(total - HUNDRED) > tolerance:
        raise PercentageSumMismatch(
            f"Percentages must add up to 100 (got {total})",
            field="split_between.percentage",
        )


def compute_percentage_split(
    total: Money,
    entries: Sequence[SplitEntry],
    tolerance: Decimal = PERCENTAGE_TOLERANCE,
) -> List[Share]:
    """
    Turn percentages into amounts.

    Each amount is rounded down to the cent; the cents left over go to the
    participant with the largest percentage (the earliest one on ties), which
    keeps the shares summing to the total even when the percentages only add
    up to 100 within ``tolerance``.
    """
    if not entries:
        raise ValidationError("At least one participant is required", field="split_between")
    _ensure_unique([entry.user_id for entry in entries])
    validate_percentage_split(entries, tolerance)

    percentages = [to_decimal(entry.percentage) for entry in entries]
    cents = [int(total.cents * pct // HUNDRED) for pct in percentages]
    leftover = total.cents - sum(cents)
    largest = max(range(len(entries)), key=lambda i: (percentages[i], -i))
    cents[largest] += leftover

    return [
        Share(user_id=entry.user_id, amount=from_cents(amount), percentage=pct)
        for entry, amount, pct in zip(entries, cents, percentages)
    ]


def build_split(
    split_type: SplitType,
    total: Money,
    entries: Sequence[SplitEntry],
    tolerance: Decimal = SPLIT_TOLERANCE,
    percentage_tolerance: Decimal = PERCENTAGE_TOLERANCE,
) -> List[Share]:
    """Compute (equal, percentage) or validate (custom) the shares of an expense."""
    split_type = SplitType(split_type)
    if split_type == SplitType.EQUAL:
        return compute_equal_split(total, [entry.user_id for entry in entries])
    if split_type == SplitType.PERCENTAGE:
        return compute_percentage_split(total, entries, percentage_tolerance)

    _ensure_unique([entry.user_id for entry in entries])
    shares = []
    for entry in entries:
        if entry.amount is None:
            raise ValidationError(
                "Amount is required for every participant of a custom split",
                field="split_between.amount",
            )
        percentage = None
        if entry.percentage is not None:
            percentage = _check_percentage(entry.percentage)
        shares.append(Share(
            user_id=entry.user_id,
            amount=from_cents(to_cents(entry.amount, field="split_between.amount")),
            percentage=percentage,
        ))
    validate_custom_split(total, shares, tolerance)
    return shares
