"""
Staff live status.

Derives what a staff member is doing right now from their active trip, their
current visit and the last sample the device reported.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fieldtrack.app.domain.tracking.metrics import elapsed_minutes
from fieldtrack.app.domain.tracking.models import LocationSample, Trip, Visit
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds


class StaffActivity(str, enum.Enum):
    OFFLINE = "offline"
    ACTIVE = "active"  # Reachable but not necessarily moving
    DRIVING = "driving"
    ON_VISIT = "on_visit"


class LocationSource(str, enum.Enum):
    ACTIVE_TRIP_ROUTE = "active_trip_route"
    LOCATION_UPDATES = "location_updates"


@dataclass(frozen=True)
class CurrentLocation:
    latitude: float
    longitude: float
    captured_at: datetime
    source: LocationSource
    accuracy_meters: Optional[float] = None
    speed_mph: Optional[float] = None
    heading_deg: Optional[float] = None
    age_minutes: int = 0
    is_recent: bool = False
    is_ip_geolocation: bool = False


@dataclass(frozen=True)
class StaffStatus:
    staff_id: str
    activity: StaffActivity
    location: Optional[CurrentLocation] = None
    active_trip: Optional[Trip] = None
    current_visit: Optional[Visit] = None


def _locate(
    active_trip: Optional[Trip],
    last_sample: Optional[LocationSample],
    now: datetime,
    thresholds: TrackingThresholds,
) -> Optional[CurrentLocation]:
    # The newest route point of an active trip beats the raw last sample
    if active_trip and active_trip.last_point:
        point = active_trip.last_point
        age = elapsed_minutes(point.captured_at, now)
        return CurrentLocation(
            latitude=point.latitude,
            longitude=point.longitude,
            captured_at=point.captured_at,
            source=LocationSource.ACTIVE_TRIP_ROUTE,
            speed_mph=point.speed_mph,
            age_minutes=age,
            is_recent=age <= thresholds.location_recent_minutes,
        )

    if last_sample is None:
        return None

    is_ip = last_sample.accuracy_meters > thresholds.coarse_accuracy_threshold_m
    if is_ip and active_trip is None:
        return None

    age = elapsed_minutes(last_sample.captured_at, now)
    return CurrentLocation(
        latitude=last_sample.latitude,
        longitude=last_sample.longitude,
        captured_at=last_sample.captured_at,
        source=LocationSource.LOCATION_UPDATES,
        accuracy_meters=last_sample.accuracy_meters,
        speed_mph=last_sample.speed_mph,
        heading_deg=last_sample.heading_deg,
        age_minutes=age,
        is_recent=age <= thresholds.location_recent_minutes,
        is_ip_geolocation=is_ip,
    )


def derive_staff_status(
    staff_id: str,
    active_trip: Optional[Trip],
    current_visit: Optional[Visit],
    last_sample: Optional[LocationSample],
    now: datetime,
    thresholds: Optional[TrackingThresholds] = None,
) -> StaffStatus:
    """
    Work out a staff member's live status.

    Precedence: on_visit, then driving (active trip with speed above the
    moving threshold), then active (recent fix, or an active trip that is not
    stale), otherwise offline.
    """
    thresholds = thresholds or TrackingThresholds()
    location = _locate(active_trip, last_sample, now, thresholds)

    if current_visit is not None:
        activity = StaffActivity.ON_VISIT
    elif active_trip is not None:
        if location and location.speed_mph and location.speed_mph > thresholds.moving_speed_mph:
            activity = StaffActivity.DRIVING
        elif location and location.is_recent:
            activity = StaffActivity.ACTIVE
        elif elapsed_minutes(active_trip.started_at, now) > thresholds.stale_trip_minutes:
            activity = StaffActivity.OFFLINE
        else:
            activity = StaffActivity.ACTIVE
    elif location and location.is_recent:
        activity = StaffActivity.ACTIVE
    else:
        activity = StaffActivity.OFFLINE

    return StaffStatus(
        staff_id=staff_id,
        activity=activity,
        location=location,
        active_trip=active_trip,
        current_visit=current_visit,
    )
