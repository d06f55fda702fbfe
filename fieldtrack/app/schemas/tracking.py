"""
GPS trip tracking schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional, List

from fieldtrack.app.domain.tracking.cost import round_currency
from fieldtrack.app.domain.tracking.models import (
    LocationSample, Trip, TripMetricsSnapshot
)


class LocationRecord(BaseModel):
    """Schema for a device GPS sample."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_meters: float = Field(..., ge=0)
    speed_mps: Optional[float] = Field(None, ge=0)
    heading_deg: Optional[float] = Field(None, ge=0, lt=360)
    recorded_at: Optional[datetime] = None  # Defaults to receipt time

    def to_sample(self) -> LocationSample:
        recorded_at = self.recorded_at or datetime.now(timezone.utc)
        # Device clocks without an offset are taken as UTC
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=timezone.utc)
        else:
            recorded_at = recorded_at.astimezone(timezone.utc)
        return LocationSample(
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy_meters=self.accuracy_meters,
            speed_mps=self.speed_mps,
            heading_deg=self.heading_deg,
            captured_at=recorded_at,
        )


class TripReference(BaseModel):
    """Either a trip ID or a staff ID (resolves to that staff member's active trip)."""
    trip_id: Optional[str] = None
    staff_id: Optional[str] = None


class TripStartRequest(BaseModel):
    staff_id: str = Field(..., min_length=1)
    location: LocationRecord


class TripLocationRequest(TripReference):
    location: LocationRecord


class TripEndRequest(TripReference):
    location: Optional[LocationRecord] = None


class TripMetricsResponse(BaseModel):
    """Live trip metrics."""
    distance_miles: float
    avg_speed_mph: float
    max_speed_mph: float
    duration_minutes: int

    @classmethod
    def from_snapshot(cls, snapshot: TripMetricsSnapshot) -> "TripMetricsResponse":
        return cls(
            distance_miles=float(round_currency(snapshot.distance_miles)),
            avg_speed_mph=round(snapshot.avg_speed_mph, 1),
            max_speed_mph=round(snapshot.max_speed_mph, 1),
            duration_minutes=snapshot.duration_minutes,
        )


class RoutePointResponse(BaseModel):
    latitude: float
    longitude: float
    captured_at: datetime
    speed_mph: Optional[float]


class TripResponse(BaseModel):
    """Trip response."""
    id: str
    staff_id: str
    status: str
    started_at: datetime
    ended_at: Optional[datetime]
    cost_per_mile: float
    total_distance_miles: float
    total_cost_usd: float
    degraded_accuracy: bool
    route: List[RoutePointResponse]

    @classmethod
    def from_trip(cls, trip: Trip) -> "TripResponse":
        return cls(
            id=trip.id,
            staff_id=trip.staff_id,
            status=trip.status.value,
            started_at=trip.started_at,
            ended_at=trip.ended_at,
            cost_per_mile=trip.cost_per_mile_usd,
            total_distance_miles=float(round_currency(trip.total_distance_miles)),
            total_cost_usd=float(round_currency(trip.total_cost_usd)),
            degraded_accuracy=trip.degraded_accuracy,
            route=[
                RoutePointResponse(
                    latitude=p.latitude,
                    longitude=p.longitude,
                    captured_at=p.captured_at,
                    speed_mph=p.speed_mph,
                )
                for p in trip.route
            ],
        )


class TripStartResponse(BaseModel):
    """Response after starting a trip."""
    trip: TripResponse
    degraded_accuracy: bool
    requires_device_gps: bool


class LocationRecordResponse(BaseModel):
    """Response after ingesting a sample."""
    trip_id: str
    accepted: bool
    reason: str
    coarse: bool
    requires_device_gps: bool
    metrics: TripMetricsResponse


class TripEndResponse(BaseModel):
    """Response after ending a trip."""
    trip_id: str
    status: str
    distance_miles: float
    cost_per_mile: float
    cost_usd: float
    duration_minutes: int
    ended_at: datetime


class CurrentLocationResponse(BaseModel):
    latitude: float
    longitude: float
    accuracy_meters: Optional[float]
    speed_mph: Optional[float]
    heading_deg: Optional[float]
    timestamp: datetime
    is_recent: bool
    age_minutes: int
    is_ip_geolocation: bool
    source: str


class StaffLocationResponse(BaseModel):
    """Live status of a staff member."""
    staff_id: str
    status: str
    current_location: Optional[CurrentLocationResponse]
    active_trip_id: Optional[str]
    current_visit_id: Optional[str]
    has_active_trip: bool
