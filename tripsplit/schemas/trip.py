"""
Pydantic schemas for Trip entity.
"""
from pydantic import BaseModel, model_validator
from typing import List, Optional
from datetime import date, datetime
from tripsplit.core.config import settings
from tripsplit.domain.money import Currency
from tripsplit.models.trip import CollaboratorRole, InvitationStatus, TripStatus


class TripBase(BaseModel):
    """Base trip schema."""
    name: str
    start_date: date
    end_date: date
    base_currency: Currency = Currency(settings.DEFAULT_CURRENCY)  # settlements are expressed in it


class TripCreate(TripBase):
    """Schema for trip creation."""

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class TripResponse(TripBase):
    """Schema for trip response."""
    id: int
    owner_id: int
    status: TripStatus
    is_settled: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TripParticipantResponse(BaseModel):
    """Schema for trip collaborator response."""
    user_id: int
    username: str
    role: CollaboratorRole
    status: InvitationStatus
    responded_at: Optional[datetime] = None


class TripDetailResponse(TripResponse):
    """Schema for detailed trip response with participants."""
    participants: List[TripParticipantResponse] = []


class ParticipantInvite(BaseModel):
    """Schema for participant invitation."""
    username: str
    role: CollaboratorRole = CollaboratorRole.VIEWER


class InvitationResponse(BaseModel):
    """Accept or decline a pending invitation."""
    accept: bool = True
