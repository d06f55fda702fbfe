"""
GPS Trip Tracking API Endpoints.

Staff devices start trips, stream location samples and end trips. Trip
endpoints accept either a trip ID or a staff ID.
"""

from fastapi import APIRouter, Depends, Path, Body, status

from fieldtrack.app.core.dependencies import get_engine, get_location_cache
from fieldtrack.app.domain.tracking.cost import round_currency
from fieldtrack.app.domain.tracking.engine import TrackingEngine
from fieldtrack.app.services.location_cache import RedisLocationCache
from fieldtrack.app.schemas.tracking import (
    TripStartRequest, TripStartResponse, TripLocationRequest, LocationRecordResponse,
    TripEndRequest, TripEndResponse, TripResponse, TripMetricsResponse,
    StaffLocationResponse, CurrentLocationResponse
)

router = APIRouter(prefix="/gps", tags=["GPS - Trip Tracking"])


@router.post("/trips/start", status_code=status.HTTP_201_CREATED)
async def start_trip(
    payload: TripStartRequest = Body(...),
    engine: TrackingEngine = Depends(get_engine)
):
    """
    Start a driving session.

    Validates:
    - Staff member has no ACTIVE trip (409 otherwise)

    A poor first fix does not block the trip; it is reported through
    degraded_accuracy / requires_device_gps.
    """
    result = await engine.start_trip(payload.staff_id, payload.location.to_sample())

    return TripStartResponse(
        trip=TripResponse.from_trip(result.trip),
        degraded_accuracy=result.degraded_accuracy,
        requires_device_gps=result.requires_device_gps
    )


@router.post("/trips/location")
async def record_location(
    payload: TripLocationRequest = Body(...),
    engine: TrackingEngine = Depends(get_engine)
):
    """
    Record a GPS sample for an ACTIVE trip.

    Samples too inaccurate to use are not an error: the response has
    accepted=false and requires_device_gps=true.
    """
    trip_id = engine.resolve_trip_id(payload.trip_id, payload.staff_id)
    result = await engine.ingest_sample(payload.location.to_sample(), trip_id=trip_id)

    return LocationRecordResponse(
        trip_id=trip_id,
        accepted=result.accepted,
        reason=result.reason.value,
        coarse=result.coarse,
        requires_device_gps=result.requires_device_gps,
        metrics=TripMetricsResponse.from_snapshot(result.metrics)
    )


@router.post("/trips/end")
async def end_trip(
    payload: TripEndRequest = Body(...),
    engine: TrackingEngine = Depends(get_engine)
):
    """
    End a trip (by trip ID, or by staff ID for the staff member's ACTIVE trip).

    Actions:
    - Freeze distance and cost
    - Set ended_at
    """
    end_sample = payload.location.to_sample() if payload.location else None
    closure = await engine.end_trip(
        trip_id=payload.trip_id,
        staff_id=payload.staff_id,
        end_sample=end_sample
    )
    trip = closure.trip

    return TripEndResponse(
        trip_id=trip.id,
        status=trip.status.value,
        distance_miles=float(round_currency(closure.distance_miles)),
        cost_per_mile=trip.cost_per_mile_usd,
        cost_usd=float(round_currency(closure.cost_usd)),
        duration_minutes=closure.duration_minutes,
        ended_at=trip.ended_at
    )


@router.get("/trips/{trip_id}")
async def get_trip(
    trip_id: str = Path(..., description="Trip ID"),
    engine: TrackingEngine = Depends(get_engine)
):
    """Get a trip with its route."""
    return TripResponse.from_trip(engine.get_trip(trip_id))


@router.get("/trips/{trip_id}/metrics")
async def get_live_metrics(
    trip_id: str = Path(..., description="Trip ID"),
    engine: TrackingEngine = Depends(get_engine)
):
    """Live distance, speed and duration, recomputed from the route."""
    return TripMetricsResponse.from_snapshot(engine.get_live_metrics(trip_id))


@router.get("/staff-location/{staff_id}")
async def get_staff_location(
    staff_id: str = Path(..., description="Staff ID"),
    engine: TrackingEngine = Depends(get_engine),
    cache: RedisLocationCache = Depends(get_location_cache)
):
    """
    Current location and status of a staff member.

    Status is one of on_visit, driving, active or offline.
    """
    fallback = None
    if engine.last_sample_for(staff_id) is None:
        fallback = await cache.get(staff_id)

    staff_status = engine.staff_status(staff_id, fallback_sample=fallback)
    location = staff_status.location

    return StaffLocationResponse(
        staff_id=staff_id,
        status=staff_status.activity.value,
        current_location=CurrentLocationResponse(
            latitude=location.latitude,
            longitude=location.longitude,
            accuracy_meters=location.accuracy_meters,
            speed_mph=location.speed_mph,
            heading_deg=location.heading_deg,
            timestamp=location.captured_at,
            is_recent=location.is_recent,
            age_minutes=location.age_minutes,
            is_ip_geolocation=location.is_ip_geolocation,
            source=location.source.value
        ) if location else None,
        active_trip_id=staff_status.active_trip.id if staff_status.active_trip else None,
        current_visit_id=staff_status.current_visit.id if staff_status.current_visit else None,
        has_active_trip=staff_status.active_trip is not None
    )
