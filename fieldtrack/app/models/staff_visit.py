"""
Staff visit database model.

Mirror of the engine's Visit records.
"""

from sqlalchemy import Column, String, Integer, Float, DateTime, Enum, JSON, Text
from sqlalchemy.sql import func
from fieldtrack.app.db.session import Base
from fieldtrack.app.domain.tracking.models import VisitStatus


class StaffVisit(Base):
    """
    Staff visit model.

    trip_id is a plain column, not a foreign key: a visit only remembers
    which trip preceded it.
    """
    __tablename__ = "staff_visits"

    id = Column(String(64), primary_key=True)
    staff_id = Column(String(64), nullable=False, index=True)
    trip_id = Column(String(64), nullable=True, index=True)

    # Patient
    patient_name = Column(String(255), nullable=False)
    patient_address = Column(String(500), nullable=False)
    visit_type = Column(String(100), nullable=False)
    visit_location = Column(JSON, nullable=True)

    status = Column(Enum(VisitStatus), default=VisitStatus.IN_PROGRESS, nullable=False, index=True)

    # Timing
    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Integer, nullable=True)  # Minutes
    drive_time_to_visit = Column(Integer, nullable=True)  # Minutes
    distance_to_visit = Column(Float, nullable=True)  # Miles

    notes = Column(Text, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<StaffVisit(id={self.id}, staff_id={self.staff_id}, status='{self.status.value}')>"
