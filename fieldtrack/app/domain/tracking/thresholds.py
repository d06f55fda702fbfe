"""
Tunable thresholds for sample filtering and trip/visit accounting.

The values are product decisions rather than structural ones, so they live in
settings and are passed to the domain as one frozen object.
"""

from dataclasses import dataclass
from typing import Optional

from fieldtrack.app.core.config import Settings, settings as app_settings


@dataclass(frozen=True)
class TrackingThresholds:
    ip_accuracy_threshold_m: float = 2000.0
    coarse_accuracy_threshold_m: float = 1000.0
    gps_required_accuracy_m: float = 100.0
    moving_speed_mph: float = 5.0
    min_movement_miles: float = 0.01
    default_cost_per_mile: float = 0.67
    debounce_meters: float = 10.0
    interval_seconds: float = 15.0
    estimated_city_speed_mph: float = 25.0
    location_recent_minutes: int = 30
    stale_trip_minutes: int = 480
    closed_record_retention_minutes: int = 60

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "TrackingThresholds":
        source = source or app_settings
        return cls(
            ip_accuracy_threshold_m=source.ip_accuracy_threshold_m,
            coarse_accuracy_threshold_m=source.coarse_accuracy_threshold_m,
            gps_required_accuracy_m=source.gps_required_accuracy_m,
            moving_speed_mph=source.moving_speed_mph,
            min_movement_miles=source.min_movement_miles,
            default_cost_per_mile=source.default_cost_per_mile,
            debounce_meters=source.debounce_meters,
            interval_seconds=source.interval_seconds,
            estimated_city_speed_mph=source.estimated_city_speed_mph,
            location_recent_minutes=source.location_recent_minutes,
            stale_trip_minutes=source.stale_trip_minutes,
            closed_record_retention_minutes=source.closed_record_retention_minutes,
        )
