"""
Trip lifecycle: ACTIVE -> ENDED.

The state machine works on a single Trip record and returns new records; the
engine owns the "one active trip per staff member" bookkeeping.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional, Tuple

from fieldtrack.app.core.exceptions import TripNotActiveError
from fieldtrack.app.domain.tracking.cost import compute_cost
from fieldtrack.app.domain.tracking.geo import haversine_miles
from fieldtrack.app.domain.tracking.metrics import MetricsAggregator
from fieldtrack.app.domain.tracking.models import (
    GeoPoint, IngestResult, LocationSample, RoutePoint, SampleReason,
    Trip, TripClosure, TripStartResult, TripStatus
)
from fieldtrack.app.domain.tracking.sample_filter import SampleFilter
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds

logger = logging.getLogger(__name__)


class TripStateMachine:

    def __init__(self, thresholds: Optional[TrackingThresholds] = None):
        self.thresholds = thresholds or TrackingThresholds()
        self.filter = SampleFilter(self.thresholds)
        self.metrics = MetricsAggregator(self.thresholds)

    def start(
        self,
        trip_id: str,
        staff_id: str,
        initial_sample: LocationSample,
        cost_per_mile: float,
        now: datetime,
    ) -> TripStartResult:
        """
        Open a trip from its first sample.

        A poor initial fix never blocks the trip. Accuracy worse than the GPS
        threshold is flagged as degraded; an IP-grade fix is kept only as the
        start location, never counts towards distance, and the route begins
        empty.
        """
        degraded = initial_sample.accuracy_meters > self.thresholds.gps_required_accuracy_m
        decision = self.filter.accept(initial_sample)

        route: Tuple[RoutePoint, ...] = ()
        if decision.keep:
            route = (RoutePoint.from_sample(initial_sample),)

        trip = Trip(
            id=trip_id,
            staff_id=staff_id,
            started_at=now,
            cost_per_mile_usd=cost_per_mile,
            route=route,
            start_location=GeoPoint.from_sample(initial_sample),
            degraded_accuracy=degraded,
        )
        return TripStartResult(
            trip=trip,
            degraded_accuracy=degraded,
            requires_device_gps=not decision.keep,
        )

    def ingest(
        self,
        trip: Trip,
        sample: LocationSample,
        now: datetime,
    ) -> Tuple[Trip, IngestResult]:
        """
        Run a sample through the filter and append it when kept.

        Returns:
            (updated trip, ingest result). The trip is returned unchanged when
            the sample is dropped.

        Raises:
            TripNotActiveError: If the trip has ended
        """
        if not trip.is_active:
            raise TripNotActiveError(trip.id, trip.status.value)

        decision = self.filter.accept(sample, trip.last_point)

        if decision.keep:
            trip = replace(trip, route=trip.route + (RoutePoint.from_sample(sample),))

        result = IngestResult(
            accepted=decision.keep,
            reason=decision.reason,
            metrics=self.metrics.snapshot(trip.route, trip.started_at, now),
            requires_device_gps=decision.reason == SampleReason.LOW_ACCURACY,
            coarse=decision.coarse,
        )
        return trip, result

    def end(
        self,
        trip: Trip,
        now: datetime,
        end_sample: Optional[LocationSample] = None,
    ) -> TripClosure:
        """
        Freeze the trip totals.

        An end sample is ingested like any other sample first, and its raw
        coordinates are recorded as the end location. This is the only place
        total_distance_miles and total_cost_usd are written.

        Raises:
            TripNotActiveError: If the trip has already ended
        """
        if not trip.is_active:
            raise TripNotActiveError(trip.id, trip.status.value)

        end_location = None
        if end_sample is not None:
            trip, _ = self.ingest(trip, end_sample, now)
            end_location = GeoPoint.from_sample(end_sample)

        snapshot = self.metrics.snapshot(trip.route, trip.started_at, now)
        distance = snapshot.distance_miles

        # Too few fixes to trace a route: fall back to start -> end as the crow
        # flies. IP-grade endpoints never count.
        if (
            len(trip.route) < 2
            and self.filter.is_trusted_fix(trip.start_location)
            and self.filter.is_trusted_fix(end_location)
        ):
            straight_line = haversine_miles(
                trip.start_location.latitude, trip.start_location.longitude,
                end_location.latitude, end_location.longitude
            )
            if straight_line > self.thresholds.min_movement_miles:
                distance = straight_line
                snapshot = replace(snapshot, distance_miles=distance)

        ended = replace(
            trip,
            status=TripStatus.ENDED,
            ended_at=now,
            end_location=end_location,
            total_distance_miles=distance,
            total_cost_usd=compute_cost(distance, trip.cost_per_mile_usd),
            total_drive_time_minutes=snapshot.duration_minutes,
        )

        logger.info(
            "Trip ended",
            extra={
                "trip_id": ended.id,
                "staff_id": ended.staff_id,
                "distance_miles": ended.total_distance_miles,
                "route_points": len(ended.route),
            }
        )
        return TripClosure(trip=ended, metrics=snapshot)
