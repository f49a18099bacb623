"""
Trip management routes.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from datetime import date, datetime, timezone
from tripsplit.core.exceptions import AccessDenied, NotFoundError
from tripsplit.db.session import get_db
from tripsplit.models.user import User
from tripsplit.models.trip import CollaboratorRole, InvitationStatus, Trip, TripParticipant, TripStatus
from tripsplit.schemas.trip import (
    TripCreate, TripResponse, TripDetailResponse,
    ParticipantInvite, TripParticipantResponse, InvitationResponse
)
from tripsplit.api.dependencies import get_current_user
from tripsplit.services.access import accessible_trip_ids, check_trip_access, get_trip

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])


def _initial_status(start_date: date, end_date: date) -> TripStatus:
    today = date.today()
    if start_date > today:
        return TripStatus.UPCOMING
    if end_date < today:
        return TripStatus.FINISHED
    return TripStatus.ONGOING


def _participant_responses(trip: Trip) -> List[TripParticipantResponse]:
    return [
        TripParticipantResponse(
            user_id=p.user_id,
            username=p.user.username,
            role=p.role,
            status=p.status,
            responded_at=p.responded_at,
        )
        for p in sorted(trip.participants, key=lambda p: p.id)
    ]


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a new trip owned by the current user."""
    new_trip = Trip(
        name=trip_data.name,
        start_date=trip_data.start_date,
        end_date=trip_data.end_date,
        status=_initial_status(trip_data.start_date, trip_data.end_date),
        base_currency=trip_data.base_currency.value,
        owner_id=current_user.id,
    )
    db.add(new_trip)
    db.commit()
    db.refresh(new_trip)
    logger.info("trip %s created by user %s", new_trip.id, current_user.id)
    return new_trip


@router.get("", response_model=List[TripResponse])
async def list_trips(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List trips the current user owns or has joined."""
    trip_ids = accessible_trip_ids(current_user, db)
    if not trip_ids:
        return []
    return db.query(Trip).filter(Trip.id.in_(trip_ids)).order_by(Trip.start_date.desc(), Trip.id).all()


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip_detail(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get trip details with its collaborators."""
    trip = check_trip_access(trip_id, current_user, db)
    detail = TripResponse.model_validate(trip).model_dump()
    return TripDetailResponse(**detail, participants=_participant_responses(trip))


@router.post("/{trip_id}/participants", status_code=status.HTTP_201_CREATED)
async def invite_participant(
    trip_id: int,
    invite: ParticipantInvite,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Invite a user to the trip; they join once they accept."""
    trip = check_trip_access(trip_id, current_user, db)
    managers = {
        p.user_id for p in trip.participants
        if p.role == CollaboratorRole.ADMIN and p.status == InvitationStatus.ACCEPTED
    }
    if not (current_user.id == trip.owner_id or current_user.id in managers or current_user.is_admin):
        raise AccessDenied("Only the trip owner can invite participants")

    user = db.query(User).filter(User.username == invite.username).first()
    if not user:
        raise NotFoundError("User not found")

    existing = db.query(TripParticipant).filter(
        TripParticipant.trip_id == trip_id,
        TripParticipant.user_id == user.id
    ).first()
    if user.id == trip.owner_id or (existing and existing.status != InvitationStatus.DECLINED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a participant"
        )

    if existing:
        # A declined invitation can be sent again
        existing.role = invite.role
        existing.status = InvitationStatus.PENDING
        existing.responded_at = None
    else:
        db.add(TripParticipant(
            trip_id=trip_id,
            user_id=user.id,
            role=invite.role,
            status=InvitationStatus.PENDING,
        ))
    db.commit()
    logger.info("user %s invited to trip %s", user.id, trip_id)

    return {"message": "Participant invited successfully"}


@router.post("/{trip_id}/participants/accept", response_model=TripParticipantResponse)
async def respond_to_invitation(
    trip_id: int,
    answer: InvitationResponse = InvitationResponse(),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Accept or decline the current user's pending invitation."""
    get_trip(trip_id, db)
    participant = db.query(TripParticipant).filter(
        TripParticipant.trip_id == trip_id,
        TripParticipant.user_id == current_user.id,
        TripParticipant.status == InvitationStatus.PENDING
    ).first()
    if not participant:
        raise NotFoundError("No pending invitation for this trip")

    participant.status = InvitationStatus.ACCEPTED if answer.accept else InvitationStatus.DECLINED
    participant.responded_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(participant)

    return TripParticipantResponse(
        user_id=participant.user_id,
        username=current_user.username,
        role=participant.role,
        status=participant.status,
        responded_at=participant.responded_at,
    )
