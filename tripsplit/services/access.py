"""
Trip-scoped access guard.

A trip's expenses are visible to its owner, to collaborators who accepted
their invitation and to admins. Editing an expense is narrower: only its
creator, the trip owner or an admin may do it.
"""
from sqlalchemy.orm import Session
from tripsplit.core.exceptions import AccessDenied, NotFoundError, ValidationError
from tripsplit.domain.expense import ExpenseRecord
from tripsplit.models.trip import InvitationStatus, Trip, TripParticipant
from tripsplit.models.user import User


def get_trip(trip_id: int, db: Session) -> Trip:
    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if not trip:
        raise NotFoundError("Trip not found")
    return trip


def has_trip_access(trip: Trip, user: User) -> bool:
    return user.is_admin or user.id in trip.accepted_member_ids()


def check_trip_access(trip_id: int, user: User, db: Session) -> Trip:
    """Return the trip if ``user`` may read and add to its expenses."""
    trip = get_trip(trip_id, db)
    if not has_trip_access(trip, user):
        raise AccessDenied("Access denied to this trip")
    return trip


def can_modify_expense(record: ExpenseRecord, trip: Trip, user: User) -> bool:
    return record.created_by == user.id or trip.owner_id == user.id or user.is_admin


def check_expense_modify(record: ExpenseRecord, trip: Trip, user: User, message: str) -> None:
    if not can_modify_expense(record, trip, user):
        raise AccessDenied(message)


def check_members(trip: Trip, user_ids, field: str) -> None:
    """Payers and share holders must belong to the trip."""
    members = trip.accepted_member_ids()
    for user_id in user_ids:
        if user_id not in members:
            raise ValidationError(f"User {user_id} is not a member of this trip", field=field)


def accessible_trip_ids(user: User, db: Session) -> list:
    """Ids of every trip ``user`` owns or has accepted to join."""
    owned = [t.id for t in db.query(Trip.id).filter(Trip.owner_id == user.id)]
    joined = [
        p.trip_id for p in db.query(TripParticipant.trip_id).filter(
            TripParticipant.user_id == user.id,
            TripParticipant.status == InvitationStatus.ACCEPTED,
        )
    ]
    return sorted(set(owned) | set(joined))
