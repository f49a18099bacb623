"""
Pydantic schemas for Settlement entity.
"""
from pydantic import BaseModel
from typing import List, Dict, Any
from datetime import datetime
from decimal import Decimal
from tripsplit.domain.money import Currency


class BalanceItem(BaseModel):
    """Net balance of one user: positive is owed money, negative owes money."""
    user_id: int
    username: str
    net_balance: Decimal


class TransferItem(BaseModel):
    """Schema for a single transfer in settlement."""
    from_user_id: int
    from_username: str
    to_user_id: int
    to_username: str
    amount: Decimal
    currency: Currency


class SettlementPlanResponse(BaseModel):
    """Schema for the computed settlement of a trip."""
    trip_id: int
    currency: Currency
    balances: List[BalanceItem]
    transfers: List[TransferItem]
    total_expenses: Decimal
    expense_count: int
    participant_count: int


class SettlementResultResponse(BaseModel):
    """Schema for a stored settlement snapshot."""
    id: int
    trip_id: int
    calculation_data: Dict[str, Any]
    summary: str
    created_at: datetime

    class Config:
        from_attributes = True
