"""
Live trip metrics.

Snapshots are recomputed from the route on every call; nothing is cached, so
a snapshot can never disagree with the route it describes.
"""

import math
from datetime import datetime
from typing import Optional, Sequence

from fieldtrack.app.domain.tracking.distance import DistanceAccumulator
from fieldtrack.app.domain.tracking.models import RoutePoint, TripMetricsSnapshot
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, rounded half up and never negative."""
    seconds = (end - start).total_seconds()
    return max(0, int(math.floor(seconds / 60.0 + 0.5)))


class MetricsAggregator:

    def __init__(self, thresholds: Optional[TrackingThresholds] = None):
        self.accumulator = DistanceAccumulator(thresholds)

    def snapshot(
        self,
        route: Sequence[RoutePoint],
        started_at: datetime,
        now: datetime,
    ) -> TripMetricsSnapshot:
        # Samples without a recorded speed are left out of the average, not counted as zero
        speeds = [p.speed_mph for p in route if p.speed_mph is not None and p.speed_mph > 0]

        return TripMetricsSnapshot(
            distance_miles=self.accumulator.total(route),
            avg_speed_mph=sum(speeds) / len(speeds) if speeds else 0.0,
            max_speed_mph=max(speeds) if speeds else 0.0,
            duration_minutes=elapsed_minutes(started_at, now),
        )
