"""
Visit API Endpoints.

Staff start, complete and cancel patient visits. Visits are independent of
trips: none of these endpoints touches a trip.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Body, status

from fieldtrack.app.core.dependencies import get_engine
from fieldtrack.app.domain.tracking.engine import TrackingEngine
from fieldtrack.app.domain.tracking.models import GeoPoint
from fieldtrack.app.schemas.visit import (
    VisitStartRequest, VisitCompleteRequest, VisitCancelRequest,
    VisitNotesRequest, VisitResponse, VisitCompleteResponse
)

router = APIRouter(prefix="/visits", tags=["Visits"])


@router.post("/start", status_code=status.HTTP_201_CREATED)
async def start_visit(
    payload: VisitStartRequest = Body(...),
    engine: TrackingEngine = Depends(get_engine)
):
    """
    Start a patient visit.

    Validates:
    - Staff member has no visit IN_PROGRESS (409 otherwise)

    No trip is required.
    """
    location = None
    if payload.latitude is not None and payload.longitude is not None:
        location = GeoPoint(payload.latitude, payload.longitude, payload.patient_address)

    visit = await engine.start_visit(
        staff_id=payload.staff_id,
        patient_name=payload.patient_name,
        patient_address=payload.patient_address,
        visit_type=payload.visit_type,
        prior_trip_duration_minutes=payload.prior_trip_duration_minutes,
        trip_id=payload.trip_id,
        location=location,
        scheduled_time=payload.scheduled_time
    )
    return VisitResponse.from_visit(visit)


@router.get("/{visit_id}")
async def get_visit(
    visit_id: str = Path(..., description="Visit ID"),
    engine: TrackingEngine = Depends(get_engine)
):
    return VisitResponse.from_visit(engine.get_visit(visit_id))


@router.post("/{visit_id}/complete")
async def complete_visit(
    visit_id: str = Path(..., description="Visit ID"),
    payload: Optional[VisitCompleteRequest] = Body(None),
    engine: TrackingEngine = Depends(get_engine)
):
    """Complete a visit IN_PROGRESS and report its duration."""
    notes = payload.notes if payload else None
    closure = await engine.complete_visit(visit_id, notes)

    return VisitCompleteResponse(
        visit_id=closure.visit.id,
        status=closure.visit.status.value,
        duration_minutes=closure.duration_minutes,
        ended_at=closure.visit.ended_at
    )


@router.post("/{visit_id}/cancel")
async def cancel_visit(
    visit_id: str = Path(..., description="Visit ID"),
    payload: VisitCancelRequest = Body(...),
    engine: TrackingEngine = Depends(get_engine)
):
    """Cancel a visit IN_PROGRESS. A non-blank reason is required."""
    visit = await engine.cancel_visit(visit_id, payload.reason)
    return VisitResponse.from_visit(visit)


@router.patch("/{visit_id}/notes")
async def update_visit_notes(
    visit_id: str = Path(..., description="Visit ID"),
    payload: VisitNotesRequest = Body(...),
    engine: TrackingEngine = Depends(get_engine)
):
    """Replace the notes of a visit IN_PROGRESS."""
    visit = await engine.update_visit_notes(visit_id, payload.notes)
    return VisitResponse.from_visit(visit)
