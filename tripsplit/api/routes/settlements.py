"""
Settlement management routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from tripsplit.core.exceptions import NotFoundError
from tripsplit.core.utils import format_response
from tripsplit.db.session import get_db
from tripsplit.models.user import User
from tripsplit.models.settlement import SettlementResult
from tripsplit.schemas.settlement import SettlementPlanResponse, SettlementResultResponse
from tripsplit.api.dependencies import get_current_user
from tripsplit.services.access import check_trip_access
from tripsplit.services.settlement_service import (
    calculate_settlement, get_trip_settlement, get_usernames, plan_to_dict
)

router = APIRouter(prefix="/settlement", tags=["settlement"])


@router.get("/{trip_id}", response_model=SettlementPlanResponse)
async def get_settlement(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Compute who pays whom to settle the trip, without storing it."""
    trip = check_trip_access(trip_id, current_user, db)
    plan = get_trip_settlement(trip, db)
    return {"trip_id": trip.id, **plan_to_dict(plan, get_usernames(plan.user_ids(), db))}


@router.post("/{trip_id}/trigger")
async def trigger_settlement(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Trigger settlement calculation for a trip."""
    trip = check_trip_access(trip_id, current_user, db)
    result = calculate_settlement(trip, db)

    return format_response(
        data={"settlement_id": result.id},
        message="Settlement calculated successfully",
    )


@router.get("/{trip_id}/result", response_model=SettlementResultResponse)
async def get_settlement_result(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get settlement result for a trip."""
    check_trip_access(trip_id, current_user, db)

    # Only the latest settlement is kept
    settlement = db.query(SettlementResult).filter(
        SettlementResult.trip_id == trip_id
    ).first()

    if not settlement:
        raise NotFoundError("Settlement result not found")

    return settlement
