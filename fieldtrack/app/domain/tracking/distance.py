"""
Distance accumulation over a trip route.

Each increment depends on the immediately preceding accepted point, so the
route must be folded in insertion order.
"""

from typing import Iterable, Optional

from fieldtrack.app.domain.tracking.geo import haversine_miles
from fieldtrack.app.domain.tracking.models import RoutePoint
from fieldtrack.app.domain.tracking.sample_filter import SampleFilter
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds


class DistanceAccumulator:
    """Sums haversine increments between consecutive route points, skipping idle ones."""

    def __init__(self, thresholds: Optional[TrackingThresholds] = None):
        self.filter = SampleFilter(thresholds)

    def add(self, prev_point: RoutePoint, next_point: RoutePoint) -> float:
        """
        Distance contributed by the segment prev_point -> next_point.

        Returns:
            Segment length in miles if the segment counts as movement, else 0.0
        """
        if not self.filter.is_moving(
            next_point.latitude, next_point.longitude, next_point.speed_mph, prev_point
        ):
            return 0.0
        return haversine_miles(
            prev_point.latitude, prev_point.longitude,
            next_point.latitude, next_point.longitude
        )

    def total(self, route: Iterable[RoutePoint]) -> float:
        total = 0.0
        previous = None
        for point in route:
            if previous is not None:
                total += self.add(previous, point)
            previous = point
        return total
