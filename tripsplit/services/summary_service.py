"""
Expense summaries for trips and users.
"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy.orm import Session
from tripsplit.domain.expense import ExpenseRecord
from tripsplit.domain.money import CENT, convert_cents, from_cents, parse_currency, to_cents
from tripsplit.models.trip import Trip
from tripsplit.repositories import ExpenseRepository
from tripsplit.services.settlement_service import (
    build_settlement_plan,
    get_usernames,
    pairwise_settlements,
    plan_to_dict,
    rate_into,
)


def _average(total_cents: int, count: int) -> Decimal:
    if not count:
        return Decimal("0.00")
    return (from_cents(total_cents) / count).quantize(CENT, rounding=ROUND_HALF_UP)


def category_summary(expenses: Iterable[ExpenseRecord], currency) -> List[dict]:
    """Total, count and average per category, largest total first."""
    currency = parse_currency(currency)
    totals: Dict[str, int] = {}
    counts: Dict[str, int] = {}
    for expense in expenses:
        if expense.is_deleted:
            continue
        category = expense.category.value
        totals[category] = totals.get(category, 0) + convert_cents(
            expense.money.cents, rate_into(expense, currency)
        )
        counts[category] = counts.get(category, 0) + 1

    grand_total = sum(totals.values())
    items = [
        {
            "category": category,
            "total_amount": from_cents(total),
            "count": counts[category],
            "average_amount": _average(total, counts[category]),
            "percentage": round(total / grand_total * 100, 2) if grand_total else 0.0,
        }
        for category, total in totals.items()
    ]
    items.sort(key=lambda item: (-item["total_amount"], item["category"]))
    return items


def trip_summary(trip: Trip, db: Session) -> dict:
    """Totals, category breakdown, pairwise debts and the transfer plan of a trip."""
    expenses = ExpenseRepository(db).list_for_trip(trip.id)
    currency = parse_currency(trip.base_currency)
    plan = build_settlement_plan(expenses, currency)
    usernames = get_usernames(plan.user_ids(), db)
    plan_data = plan_to_dict(plan, usernames)

    unsettled = sum(
        convert_cents(to_cents(expense.unsettled_amount), rate_into(expense, currency))
        for expense in expenses
    )
    return {
        "trip_id": trip.id,
        "currency": currency.value,
        "total_amount": plan.total_amount,
        "total_count": plan.expense_count,
        "unsettled_amount": from_cents(unsettled),
        "by_category": category_summary(expenses, currency),
        "settlements": pairwise_settlements(expenses, currency),
        "balances": plan_data["balances"],
        "transfers": plan_data["transfers"],
    }


def user_summary(
    expenses: Iterable[ExpenseRecord],
) -> List[dict]:
    """
    Spending of one payer grouped by category, month and year.

    Amounts stay in their own currency, so the currency is part of the key.
    Sorted newest month first, then largest total.
    """
    groups: Dict[Tuple[str, int, int, str], Dict[str, int]] = {}
    for expense in expenses:
        if expense.is_deleted:
            continue
        key = (expense.category.value, expense.date.year, expense.date.month, expense.currency.value)
        group = groups.setdefault(key, {"total": 0, "count": 0})
        group["total"] += expense.money.cents
        group["count"] += 1

    items = [
        {
            "category": category,
            "year": year,
            "month": month,
            "currency": currency,
            "total_amount": from_cents(group["total"]),
            "count": group["count"],
        }
        for (category, year, month, currency), group in groups.items()
    ]
    items.sort(key=lambda item: (-item["year"], -item["month"], -item["total_amount"], item["category"]))
    return items


def get_user_summary(
    user_id: int,
    db: Session,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[dict]:
    """The date range only applies when both ends are given."""
    return user_summary(ExpenseRepository(db).list_paid_by(user_id, start_date, end_date))
