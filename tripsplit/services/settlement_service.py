"""
Settlement service for automated fair settlement calculation.

Balances are accumulated in integer cents of the trip currency. Positive
means the user is owed money, negative means the user owes money.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple
from sqlalchemy.orm import Session
from tripsplit.domain.expense import ExpenseRecord
from tripsplit.domain.money import Currency, convert_cents, from_cents, parse_currency
from tripsplit.models.settlement import SettlementResult
from tripsplit.models.trip import Trip, TripStatus
from tripsplit.models.user import User
from tripsplit.repositories import ExpenseRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transfer:
    """Represents a single transfer between users."""
    from_user_id: int
    to_user_id: int
    cents: int

    @property
    def amount(self) -> Decimal:
        return from_cents(self.cents)


@dataclass
class SettlementPlan:
    currency: Currency
    balances: Dict[int, int] = field(default_factory=dict)
    transfers: List[Transfer] = field(default_factory=list)
    total_cents: int = 0
    expense_count: int = 0

    @property
    def total_amount(self) -> Decimal:
        return from_cents(self.total_cents)

    def user_ids(self) -> List[int]:
        return sorted(self.balances)


def rate_into(expense: ExpenseRecord, currency: Currency) -> Decimal:
    """Exchange rate from the expense currency into ``currency``."""
    if expense.currency == currency:
        return Decimal(1)
    return expense.exchange_rate


def compute_net_balances(expenses: Iterable[ExpenseRecord], currency: Currency) -> Dict[int, int]:
    """
    Signed balance per user across ``expenses``.

    The payer is credited the expense amount minus their own share; every
    other participant is debited their share. A settled share has already
    been paid back, so it is removed from both sides. Expenses without
    shares are the payer's own cost and move no balance.
    """
    balances: Dict[int, int] = {}
    for expense in expenses:
        if expense.is_deleted:
            continue
        payer = expense.paid_by
        balances.setdefault(payer, 0)
        if not expense.shares:
            continue

        rate = rate_into(expense, currency)
        credit = convert_cents(expense.money.cents, rate)
        for share in expense.shares:
            share_cents = convert_cents(share.cents, rate)
            balances.setdefault(share.user_id, 0)
            if share.user_id == payer or share.settled:
                credit -= share_cents
            else:
                balances[share.user_id] -= share_cents
        balances[payer] += credit
    return balances


def assign_residual(balances: Dict[int, int]) -> Tuple[Dict[int, int], int]:
    """
    Make balances sum to zero.

    Shares may differ from their expense by the split tolerance and currency
    conversion rounds per amount, so the balances can be off by a few
    cents. The difference is charged to the largest creditor (lowest user
    id on ties), or to the largest debtor when nobody is owed anything.
    """
    adjusted = dict(balances)
    drift = sum(adjusted.values())
    if drift == 0:
        return adjusted, 0

    creditors = [uid for uid, bal in adjusted.items() if bal > 0]
    if creditors:
        target = max(creditors, key=lambda uid: (adjusted[uid], -uid))
    else:
        target = min(adjusted, key=lambda uid: (adjusted[uid], uid))
    adjusted[target] -= drift
    logger.debug("assigned residual of %s cents to user %s", drift, target)
    return adjusted, drift


def minimize_transfers(balances: Dict[int, int]) -> List[Transfer]:
    """
    Minimize the number of transfers needed to settle debts.
    Uses a greedy algorithm: largest creditor against largest debtor,
    ties broken by ascending user id so the plan is reproducible.
    """
    # Separate creditors (positive balance) and debtors (negative balance)
    creditors = [(uid, bal) for uid, bal in balances.items() if bal > 0]
    debtors = [(uid, -bal) for uid, bal in balances.items() if bal < 0]  # Store as positive for easier calculation

    creditors.sort(key=lambda x: (-x[1], x[0]))
    debtors.sort(key=lambda x: (-x[1], x[0]))

    transfers = []
    cred_idx = 0
    debt_idx = 0

    while cred_idx < len(creditors) and debt_idx < len(debtors):
        creditor_id, cred_amount = creditors[cred_idx]
        debtor_id, debt_amount = debtors[debt_idx]

        # Transfer the minimum of what's owed and what's needed
        transfer_amount = min(cred_amount, debt_amount)
        transfers.append(Transfer(debtor_id, creditor_id, transfer_amount))

        creditors[cred_idx] = (creditor_id, cred_amount - transfer_amount)
        debtors[debt_idx] = (debtor_id, debt_amount - transfer_amount)

        if creditors[cred_idx][1] == 0:
            cred_idx += 1
        if debtors[debt_idx][1] == 0:
            debt_idx += 1

    return transfers


def build_settlement_plan(expenses: Iterable[ExpenseRecord], currency) -> SettlementPlan:
    """Balances plus the transfer plan for a set of expenses."""
    currency = parse_currency(currency)
    active = [e for e in expenses if not e.is_deleted]
    balances, _ = assign_residual(compute_net_balances(active, currency))
    total = sum(convert_cents(e.money.cents, rate_into(e, currency)) for e in active)
    return SettlementPlan(
        currency=currency,
        balances=balances,
        transfers=minimize_transfers(balances),
        total_cents=total,
        expense_count=len(active),
    )


def pairwise_settlements(expenses: Iterable[ExpenseRecord], currency) -> List[dict]:
    """
    What each participant owes each payer, split into settled and
    unsettled amounts. A payer's own share is not a debt and is skipped.
    """
    currency = parse_currency(currency)
    pairs: Dict[Tuple[int, int], Dict[str, int]] = {}
    for expense in expenses:
        if expense.is_deleted:
            continue
        rate = rate_into(expense, currency)
        for share in expense.shares:
            if share.user_id == expense.paid_by:
                continue
            key = (expense.paid_by, share.user_id)
            totals = pairs.setdefault(key, {"total": 0, "settled": 0})
            cents = convert_cents(share.cents, rate)
            totals["total"] += cents
            if share.settled:
                totals["settled"] += cents

    return [
        {
            "paid_by": paid_by,
            "owed_by": owed_by,
            "total_owed": from_cents(totals["total"]),
            "settled_amount": from_cents(totals["settled"]),
            "unsettled_amount": from_cents(totals["total"] - totals["settled"]),
        }
        for (paid_by, owed_by), totals in sorted(pairs.items())
    ]


def get_usernames(user_ids: Iterable[int], db: Session) -> Dict[int, str]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    return {u.id: u.username for u in db.query(User).filter(User.id.in_(ids))}


def get_trip_settlement(trip: Trip, db: Session) -> SettlementPlan:
    """Plan over every non-deleted expense of ``trip`` in its budget currency."""
    expenses = ExpenseRepository(db).list_for_trip(trip.id)
    plan = build_settlement_plan(expenses, trip.base_currency)
    logger.debug(
        "trip %s settlement: %s users, %s transfers",
        trip.id, len(plan.balances), len(plan.transfers),
    )
    return plan


def plan_to_dict(plan: SettlementPlan, usernames: Dict[int, str]) -> dict:
    """JSON-ready representation; amounts are decimal strings."""
    return {
        "currency": plan.currency.value,
        "balances": [
            {
                "user_id": uid,
                "username": usernames.get(uid, ""),
                "net_balance": str(from_cents(plan.balances[uid])),
            }
            for uid in plan.user_ids()
        ],
        "transfers": [
            {
                "from_user_id": t.from_user_id,
                "from_username": usernames.get(t.from_user_id, ""),
                "to_user_id": t.to_user_id,
                "to_username": usernames.get(t.to_user_id, ""),
                "amount": str(t.amount),
                "currency": plan.currency.value,
            }
            for t in plan.transfers
        ],
        "total_expenses": str(plan.total_amount),
        "expense_count": plan.expense_count,
        "participant_count": len(plan.balances),
    }


def render_summary(plan: SettlementPlan, usernames: Dict[int, str]) -> str:
    currency = plan.currency.value
    summary_lines = [
        f"Total expenses: {plan.total_amount} {currency}",
        f"Participants: {len(plan.balances)}",
        "\nNet balances:",
    ]
    for uid in plan.user_ids():
        summary_lines.append(f"  {usernames.get(uid, uid)}: {from_cents(plan.balances[uid]):+} {currency}")
    summary_lines.append("\nTransfers:")
    for transfer in plan.transfers:
        summary_lines.append(
            f"  {usernames.get(transfer.from_user_id, transfer.from_user_id)} -> "
            f"{usernames.get(transfer.to_user_id, transfer.to_user_id)}: {transfer.amount} {currency}"
        )
    return "\n".join(summary_lines)


def calculate_settlement(trip: Trip, db: Session) -> SettlementResult:
    """
    Compute the trip's plan and store it as the trip's only snapshot.
    The trip is marked settled.
    """
    plan = get_trip_settlement(trip, db)
    usernames = get_usernames(plan.user_ids(), db)

    # Delete old settlement results for this trip (we only need the latest)
    db.query(SettlementResult).filter(SettlementResult.trip_id == trip.id).delete()

    settlement = SettlementResult(
        trip_id=trip.id,
        calculation_data=plan_to_dict(plan, usernames),
        summary=render_summary(plan, usernames),
    )
    db.add(settlement)

    trip.is_settled = True
    trip.status = TripStatus.SETTLED

    db.commit()
    db.refresh(settlement)
    logger.info("settlement %s stored for trip %s", settlement.id, trip.id)
    return settlement
