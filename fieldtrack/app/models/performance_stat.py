"""
Staff performance stats database model.

Daily roll-up of drive and visit time per staff member.
"""

from sqlalchemy import Column, Integer, String, Float, Numeric, Date, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from fieldtrack.app.db.session import Base


class StaffPerformanceStat(Base):
    """
    Staff performance stat model.

    One row per staff member per day.
    """
    __tablename__ = "staff_performance_stats"
    __table_args__ = (
        UniqueConstraint("staff_id", "date", name="uq_performance_staff_date"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    staff_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False)

    # Driving
    total_drive_time = Column(Integer, default=0, nullable=False)  # Minutes
    total_miles = Column(Numeric(10, 2), default=0, nullable=False)
    total_cost = Column(Numeric(10, 2), default=0, nullable=False)
    cost_per_mile = Column(Numeric(6, 3), nullable=True)

    # Visits
    total_visits = Column(Integer, default=0, nullable=False)
    total_visit_time = Column(Integer, default=0, nullable=False)  # Minutes
    avg_visit_duration = Column(Float, nullable=True)
    efficiency_score = Column(Integer, nullable=True)  # 0-100, share of time spent on visits

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<StaffPerformanceStat(staff_id={self.staff_id}, date={self.date})>"
