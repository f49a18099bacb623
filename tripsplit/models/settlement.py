"""
Settlement snapshot model.
"""
from sqlalchemy import Column, Text, ForeignKey, Integer, JSON
from sqlalchemy.orm import relationship
from tripsplit.db.base import BaseModel


class SettlementResult(BaseModel):
    """Latest computed transfer plan of a trip."""
    __tablename__ = "settlement_results"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    calculation_data = Column(JSON, nullable=False)  # balances, transfers, totals
    summary = Column(Text, nullable=True)

    # Relationships
    trip = relationship("Trip", back_populates="settlement_results")
