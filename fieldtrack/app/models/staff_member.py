"""
Staff member database model.

Holds the per-staff reimbursement rate used when a trip starts.
"""

from sqlalchemy import Column, String, Numeric, DateTime
from sqlalchemy.sql import func
from fieldtrack.app.db.session import Base


class StaffMember(Base):
    """
    Staff member model.

    cost_per_mile is optional; trips for staff without a rate use the
    configured default.
    """
    __tablename__ = "staff_members"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    department = Column(String(100), nullable=True)

    # Reimbursement rate in USD per mile
    cost_per_mile = Column(Numeric(6, 3), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<StaffMember(id={self.id}, name='{self.name}', cost_per_mile={self.cost_per_mile})>"
