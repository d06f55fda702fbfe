"""
Visit schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from fieldtrack.app.domain.tracking.models import Visit


class VisitStartRequest(BaseModel):
    """Schema for starting a visit."""
    staff_id: str = Field(..., min_length=1)
    patient_name: str = Field(..., min_length=1, max_length=255)
    patient_address: str = Field(..., min_length=1, max_length=500)
    visit_type: str = Field(..., min_length=1, max_length=100)
    prior_trip_duration_minutes: Optional[int] = Field(None, ge=0)
    trip_id: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class VisitCompleteRequest(BaseModel):
    notes: Optional[str] = None


class VisitCancelRequest(BaseModel):
    # Blank reasons are rejected by the engine with ERR_VISIT_003, not by validation
    reason: str = ""


class VisitNotesRequest(BaseModel):
    notes: Optional[str] = None


class VisitResponse(BaseModel):
    """Visit response."""
    id: str
    staff_id: str
    trip_id: Optional[str]
    patient_name: str
    patient_address: str
    visit_type: str
    status: str
    started_at: datetime
    ended_at: Optional[datetime]
    duration_minutes: Optional[int]
    drive_time_minutes: Optional[int]
    distance_to_visit_miles: Optional[float]
    notes: Optional[str]
    cancel_reason: Optional[str]

    @classmethod
    def from_visit(cls, visit: Visit) -> "VisitResponse":
        return cls(
            id=visit.id,
            staff_id=visit.staff_id,
            trip_id=visit.trip_id,
            patient_name=visit.patient_name,
            patient_address=visit.patient_address,
            visit_type=visit.visit_type,
            status=visit.status.value,
            started_at=visit.started_at,
            ended_at=visit.ended_at,
            duration_minutes=visit.duration_minutes,
            drive_time_minutes=visit.drive_time_minutes,
            distance_to_visit_miles=(
                round(visit.distance_to_visit_miles, 2)
                if visit.distance_to_visit_miles is not None else None
            ),
            notes=visit.notes,
            cancel_reason=visit.cancel_reason,
        )


class VisitCompleteResponse(BaseModel):
    """Response after completing a visit."""
    visit_id: str
    status: str
    duration_minutes: int
    ended_at: datetime
