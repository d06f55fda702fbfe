"""
Sample filtering.

Classifies each incoming location sample as trustworthy or IP-grade noise,
and as moving or idle relative to the last accepted point.
"""

import logging
from typing import Optional

from fieldtrack.app.domain.tracking.geo import haversine_miles
from fieldtrack.app.domain.tracking.models import (
    GeoPoint, LocationSample, RoutePoint, SampleDecision, SampleReason
)
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds

logger = logging.getLogger(__name__)


class SampleFilter:
    """
    Pure classifier for location samples.

    Rules:
    - accuracy above the IP threshold: dropped (LOW_ACCURACY)
    - accuracy in (coarse, IP]: kept but flagged coarse
    - moving: reported speed above the moving threshold, or no speed and
      the fix is further than min_movement_miles from the previous point
    - anything else is IDLE: kept, but adds no distance
    """

    def __init__(self, thresholds: Optional[TrackingThresholds] = None):
        self.thresholds = thresholds or TrackingThresholds()

    def is_low_accuracy(self, accuracy_meters: float) -> bool:
        return accuracy_meters > self.thresholds.ip_accuracy_threshold_m

    def is_trusted_fix(self, point: Optional[GeoPoint]) -> bool:
        """True when the point may be used for distance: present and not IP-grade."""
        if point is None:
            return False
        return point.accuracy_meters is None or not self.is_low_accuracy(point.accuracy_meters)

    def is_coarse(self, accuracy_meters: float) -> bool:
        return (
            self.thresholds.coarse_accuracy_threshold_m
            < accuracy_meters
            <= self.thresholds.ip_accuracy_threshold_m
        )

    def is_moving(
        self,
        latitude: float,
        longitude: float,
        speed_mph: Optional[float],
        previous: Optional[RoutePoint],
    ) -> bool:
        if speed_mph is not None:
            return speed_mph > self.thresholds.moving_speed_mph
        if previous is None:
            return False
        distance = haversine_miles(previous.latitude, previous.longitude, latitude, longitude)
        return distance > self.thresholds.min_movement_miles

    def accept(
        self,
        sample: LocationSample,
        previous_accepted: Optional[RoutePoint] = None,
    ) -> SampleDecision:
        if self.is_low_accuracy(sample.accuracy_meters):
            logger.debug(
                "Dropping low accuracy sample",
                extra={"accuracy_meters": sample.accuracy_meters},
            )
            return SampleDecision(keep=False, reason=SampleReason.LOW_ACCURACY)

        moving = self.is_moving(
            sample.latitude, sample.longitude, sample.speed_mph, previous_accepted
        )
        return SampleDecision(
            keep=True,
            reason=SampleReason.MOVING if moving else SampleReason.IDLE,
            coarse=self.is_coarse(sample.accuracy_meters),
        )
