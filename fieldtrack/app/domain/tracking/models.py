"""
Domain records for trip and visit tracking.

All records are immutable. State transitions build a new record with
dataclasses.replace, so a reader holding an old Trip or Visit never sees it
change underneath them.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from fieldtrack.app.domain.tracking.geo import mps_to_mph


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    ACTIVE = "ACTIVE"  # Driving session in progress
    ENDED = "ENDED"  # Totals frozen, terminal


class VisitStatus(str, enum.Enum):
    """Visit status enumeration."""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SampleReason(str, enum.Enum):
    """Why a sample was kept or dropped."""
    MOVING = "MOVING"
    IDLE = "IDLE"
    LOW_ACCURACY = "LOW_ACCURACY"  # IP-geolocation grade fix


@dataclass(frozen=True)
class LocationSample:
    """A raw position fix as delivered by the device."""

    latitude: float
    longitude: float
    accuracy_meters: float
    captured_at: datetime
    speed_mps: Optional[float] = None
    heading_deg: Optional[float] = None

    def __post_init__(self):
        if self.accuracy_meters < 0:
            raise ValueError(f"accuracy_meters must be >= 0, got {self.accuracy_meters}")

    @property
    def speed_mph(self) -> Optional[float]:
        if self.speed_mps is None:
            return None
        return mps_to_mph(self.speed_mps)


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    address: Optional[str] = None
    accuracy_meters: Optional[float] = None  # None when not from a device fix

    @classmethod
    def from_sample(cls, sample: LocationSample) -> "GeoPoint":
        return cls(sample.latitude, sample.longitude, accuracy_meters=sample.accuracy_meters)


@dataclass(frozen=True)
class RoutePoint:
    """An accepted sample retained on a trip's route."""

    latitude: float
    longitude: float
    captured_at: datetime
    speed_mph: Optional[float] = None

    @classmethod
    def from_sample(cls, sample: LocationSample) -> "RoutePoint":
        return cls(
            latitude=sample.latitude,
            longitude=sample.longitude,
            captured_at=sample.captured_at,
            speed_mph=sample.speed_mph,
        )


@dataclass(frozen=True)
class SampleDecision:
    keep: bool
    reason: SampleReason
    coarse: bool = False

    @property
    def moving(self) -> bool:
        return self.reason == SampleReason.MOVING


@dataclass(frozen=True)
class TripMetricsSnapshot:
    """Live trip figures, derived from the route on every request."""

    distance_miles: float
    avg_speed_mph: float
    max_speed_mph: float
    duration_minutes: int


@dataclass(frozen=True)
class Trip:
    """
    A driving session for one staff member.

    total_distance_miles and total_cost_usd stay at zero while the trip is
    ACTIVE and are written once when it ends.
    """

    id: str
    staff_id: str
    started_at: datetime
    cost_per_mile_usd: float
    status: TripStatus = TripStatus.ACTIVE
    route: Tuple[RoutePoint, ...] = ()
    ended_at: Optional[datetime] = None
    total_distance_miles: float = 0.0
    total_cost_usd: float = 0.0
    total_drive_time_minutes: Optional[int] = None
    start_location: Optional[GeoPoint] = None
    end_location: Optional[GeoPoint] = None
    degraded_accuracy: bool = False

    @property
    def is_active(self) -> bool:
        return self.status == TripStatus.ACTIVE

    @property
    def last_point(self) -> Optional[RoutePoint]:
        return self.route[-1] if self.route else None


@dataclass(frozen=True)
class Visit:
    """
    A patient encounter.

    trip_id only records which trip preceded the visit, for drive time
    attribution. The visit never owns or waits on that trip.
    """

    id: str
    staff_id: str
    patient_name: str
    patient_address: str
    visit_type: str
    started_at: datetime
    status: VisitStatus = VisitStatus.IN_PROGRESS
    trip_id: Optional[str] = None
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    drive_time_minutes: Optional[int] = None
    distance_to_visit_miles: Optional[float] = None
    scheduled_time: Optional[datetime] = None
    visit_location: Optional[GeoPoint] = None
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None

    @property
    def is_in_progress(self) -> bool:
        return self.status == VisitStatus.IN_PROGRESS


# Operation results

@dataclass(frozen=True)
class TripStartResult:
    trip: Trip
    degraded_accuracy: bool
    requires_device_gps: bool


@dataclass(frozen=True)
class IngestResult:
    accepted: bool
    reason: SampleReason
    metrics: TripMetricsSnapshot
    requires_device_gps: bool = False
    coarse: bool = False


@dataclass(frozen=True)
class TripClosure:
    trip: Trip
    metrics: TripMetricsSnapshot

    @property
    def distance_miles(self) -> float:
        return self.trip.total_distance_miles

    @property
    def cost_usd(self) -> float:
        return self.trip.total_cost_usd

    @property
    def duration_minutes(self) -> int:
        return self.metrics.duration_minutes


@dataclass(frozen=True)
class VisitClosure:
    visit: Visit
    duration_minutes: int
