"""
Trip model: the aggregate that owns expenses for access control.
"""
from sqlalchemy import Column, String, Date, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer
from sqlalchemy.orm import relationship
from tripsplit.db.base import BaseModel
import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    UPCOMING = "Upcoming"
    ONGOING = "Ongoing"
    FINISHED = "Finished"
    SETTLED = "Settled"


class CollaboratorRole(str, enum.Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class Trip(BaseModel):
    """Trip model representing a group travel event."""
    __tablename__ = "trips"

    name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    status = Column(SQLEnum(TripStatus), default=TripStatus.UPCOMING, nullable=False)
    is_settled = Column(Boolean, default=False, nullable=False)
    base_currency = Column(String(3), nullable=False, default="USD")  # budget currency; settlements are in it
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Relationships
    owner = relationship("User", back_populates="owned_trips")
    participants = relationship("TripParticipant", back_populates="trip", cascade="all, delete-orphan")
    expenses = relationship("Expense", back_populates="trip", cascade="all, delete-orphan")
    settlement_results = relationship("SettlementResult", back_populates="trip", cascade="all, delete-orphan")

    def accepted_member_ids(self) -> set:
        """Owner plus every collaborator who accepted the invitation."""
        members = {self.owner_id}
        members.update(
            p.user_id for p in self.participants if p.status == InvitationStatus.ACCEPTED
        )
        return members


class TripParticipant(BaseModel):
    """Collaborator invited to a trip, with role and acceptance status."""
    __tablename__ = "trip_participants"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(SQLEnum(CollaboratorRole), default=CollaboratorRole.VIEWER, nullable=False)
    status = Column(SQLEnum(InvitationStatus), default=InvitationStatus.PENDING, nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    trip = relationship("Trip", back_populates="participants")
    user = relationship("User", back_populates="trips")
