"""
Visit lifecycle: IN_PROGRESS -> COMPLETED | CANCELLED.

Visits do not depend on trips. A visit can start with no trip at all (staff
already on site), and ending a trip never touches a visit.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Optional

from fieldtrack.app.core.exceptions import (
    CancelReasonRequiredError, VisitNotInProgressError
)
from fieldtrack.app.domain.tracking.geo import haversine_miles
from fieldtrack.app.domain.tracking.metrics import elapsed_minutes
from fieldtrack.app.domain.tracking.models import (
    GeoPoint, Trip, Visit, VisitClosure, VisitStatus
)
from fieldtrack.app.domain.tracking.sample_filter import SampleFilter
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds

logger = logging.getLogger(__name__)


class VisitStateMachine:

    def __init__(self, thresholds: Optional[TrackingThresholds] = None):
        self.thresholds = thresholds or TrackingThresholds()
        self.filter = SampleFilter(self.thresholds)

    def start(
        self,
        visit_id: str,
        staff_id: str,
        patient_name: str,
        patient_address: str,
        visit_type: str,
        now: datetime,
        prior_trip_duration_minutes: Optional[int] = None,
        prior_trip: Optional[Trip] = None,
        visit_location: Optional[GeoPoint] = None,
        scheduled_time: Optional[datetime] = None,
    ) -> Visit:
        """
        Open a visit.

        Drive time comes from the prior trip's duration when the caller has it.
        Otherwise, if both the preceding trip and the visit coordinates are
        known, it is estimated from the straight-line distance at city speed. An
        IP-grade trip start gives no estimate.
        """
        drive_time = prior_trip_duration_minutes
        distance_to_visit = None

        if prior_trip and self.filter.is_trusted_fix(prior_trip.start_location) and visit_location:
            distance_to_visit = haversine_miles(
                prior_trip.start_location.latitude, prior_trip.start_location.longitude,
                visit_location.latitude, visit_location.longitude
            )
            if drive_time is None:
                hours = distance_to_visit / self.thresholds.estimated_city_speed_mph
                drive_time = int(math.floor(hours * 60 + 0.5))

        return Visit(
            id=visit_id,
            staff_id=staff_id,
            trip_id=prior_trip.id if prior_trip else None,
            patient_name=patient_name,
            patient_address=patient_address,
            visit_type=visit_type,
            started_at=now,
            drive_time_minutes=drive_time,
            distance_to_visit_miles=distance_to_visit,
            scheduled_time=scheduled_time,
            visit_location=visit_location,
        )

    def complete(self, visit: Visit, now: datetime, notes: Optional[str] = None) -> VisitClosure:
        if not visit.is_in_progress:
            raise VisitNotInProgressError(visit.id, visit.status.value)

        duration = elapsed_minutes(visit.started_at, now)
        completed = replace(
            visit,
            status=VisitStatus.COMPLETED,
            ended_at=now,
            duration_minutes=duration,
            notes=notes if notes is not None else visit.notes,
        )
        logger.info("Visit completed", extra={"visit_id": visit.id, "duration_minutes": duration})
        return VisitClosure(visit=completed, duration_minutes=duration)

    def cancel(self, visit: Visit, reason: Optional[str], now: datetime) -> Visit:
        """Cancel a visit. The reason is stored verbatim; no duration is computed."""
        if not reason or not reason.strip():
            raise CancelReasonRequiredError(visit.id)
        if not visit.is_in_progress:
            raise VisitNotInProgressError(visit.id, visit.status.value)

        logger.info("Visit cancelled", extra={"visit_id": visit.id})
        return replace(
            visit,
            status=VisitStatus.CANCELLED,
            ended_at=now,
            cancel_reason=reason,
        )

    def update_notes(self, visit: Visit, notes: Optional[str]) -> Visit:
        if not visit.is_in_progress:
            raise VisitNotInProgressError(visit.id, visit.status.value)
        return replace(visit, notes=notes)
