"""
Shared test helpers.
"""

from datetime import datetime, timedelta, timezone

from fieldtrack.app.domain.tracking.models import LocationSample

START = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.current += timedelta(minutes=minutes, seconds=seconds)
        return self.current


def make_sample(
    latitude: float,
    longitude: float,
    accuracy: float = 5.0,
    speed_mps: float = None,
    at: datetime = START,
) -> LocationSample:
    return LocationSample(
        latitude=latitude,
        longitude=longitude,
        accuracy_meters=accuracy,
        speed_mps=speed_mps,
        captured_at=at,
    )
