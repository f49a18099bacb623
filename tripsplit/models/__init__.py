"""Models package - Import all models for SQLAlchemy registration."""
from tripsplit.models.user import User, UserRole
from tripsplit.models.trip import Trip, TripParticipant, TripStatus, CollaboratorRole, InvitationStatus
from tripsplit.models.expense import Expense, ExpenseParticipant
from tripsplit.models.settlement import SettlementResult

__all__ = [
    "User",
    "UserRole",
    "Trip",
    "TripParticipant",
    "TripStatus",
    "CollaboratorRole",
    "InvitationStatus",
    "Expense",
    "ExpenseParticipant",
    "SettlementResult",
]
