"""
Staff trip database model.

Mirror of the engine's Trip records. Written after each trip transition.
"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime, Enum, JSON
from sqlalchemy.sql import func
from fieldtrack.app.db.session import Base
from fieldtrack.app.domain.tracking.models import TripStatus


class StaffTrip(Base):
    """
    Staff trip model.

    route_points is the ordered list of accepted fixes:
    [{"lat": .., "lng": .., "timestamp": .., "speed": ..}, ...]
    """
    __tablename__ = "staff_trips"

    id = Column(String(64), primary_key=True)
    staff_id = Column(String(64), nullable=False, index=True)

    status = Column(Enum(TripStatus), default=TripStatus.ACTIVE, nullable=False, index=True)

    # Timing
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    total_drive_time = Column(Integer, nullable=True)  # Minutes

    # Locations
    start_location = Column(JSON, nullable=True)
    end_location = Column(JSON, nullable=True)
    route_points = Column(JSON, nullable=False, default=list)

    # Totals (rounded to cents/hundredths only here)
    total_distance = Column(Numeric(10, 2), nullable=False, default=0)
    total_cost = Column(Numeric(10, 2), nullable=False, default=0)
    cost_per_mile = Column(Numeric(6, 3), nullable=False)

    degraded_accuracy = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<StaffTrip(id={self.id}, staff_id={self.staff_id}, status='{self.status.value}')>"
