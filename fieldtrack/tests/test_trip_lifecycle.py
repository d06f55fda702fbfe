"""
Trip lifecycle tests.

Covers start/ingest/end transitions, trip addressing and the frozen totals.
"""

import pytest

from fieldtrack.app.core.exceptions import (
    TripAlreadyActiveError, TripNotActiveError, TripNotFoundError,
    TripReferenceRequiredError
)
from fieldtrack.app.domain.tracking.engine import TrackingEngine
from fieldtrack.app.domain.tracking.models import GeoPoint, SampleReason, Trip, TripStatus
from fieldtrack.app.domain.tracking.trip_machine import TripStateMachine
from fieldtrack.tests.helpers import START, make_sample


class FixedRates:
    def __init__(self, rate):
        self.rate = rate
        self.calls = []

    async def get_cost_per_mile(self, staff_id):
        self.calls.append(staff_id)
        return self.rate


@pytest.mark.asyncio
async def test_one_minute_drive_metrics(tracking_engine, clock):
    """A 0.01 degree hop at 10 m/s over one minute."""
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    trip_id = started.trip.id

    clock.advance(minutes=1)
    result = await tracking_engine.ingest_sample(
        make_sample(0, 0.01, speed_mps=10, at=clock.now()), trip_id=trip_id
    )

    assert result.accepted is True
    assert result.reason == SampleReason.MOVING
    assert result.metrics.distance_miles == pytest.approx(0.69, abs=0.01)
    assert result.metrics.avg_speed_mph == pytest.approx(22.4, abs=0.05)
    assert result.metrics.duration_minutes == 1


@pytest.mark.asyncio
async def test_low_accuracy_sample_is_rejected(tracking_engine):
    """An IP-grade sample is dropped and leaves the distance at zero."""
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))

    result = await tracking_engine.ingest_sample(
        make_sample(0, 0.05, accuracy=5000), trip_id=started.trip.id
    )

    assert result.accepted is False
    assert result.requires_device_gps is True
    assert result.metrics.distance_miles == 0
    assert len(tracking_engine.get_trip(started.trip.id).route) == 1

    closure = await tracking_engine.end_trip(trip_id=started.trip.id)
    assert closure.trip.total_distance_miles == 0
    assert closure.trip.total_cost_usd == 0


@pytest.mark.asyncio
async def test_second_start_for_same_staff_fails(tracking_engine):
    first = await tracking_engine.start_trip("staff-x", make_sample(0, 0))

    with pytest.raises(TripAlreadyActiveError) as exc_info:
        await tracking_engine.start_trip("staff-x", make_sample(1, 1))
    assert exc_info.value.details["trip_id"] == first.trip.id

    # Another staff member is unaffected
    other = await tracking_engine.start_trip("staff-y", make_sample(1, 1))
    assert other.trip.staff_id == "staff-y"
    assert tracking_engine.active_trip_for("staff-x").id == first.trip.id


@pytest.mark.asyncio
async def test_new_trip_allowed_after_end(tracking_engine):
    first = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    await tracking_engine.end_trip(staff_id="staff-1")

    second = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    assert second.trip.id != first.trip.id
    assert tracking_engine.get_trip(first.trip.id).status == TripStatus.ENDED


@pytest.mark.asyncio
async def test_end_freezes_distance_and_cost(tracking_engine, clock):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    trip_id = started.trip.id
    clock.advance(minutes=1)
    await tracking_engine.ingest_sample(make_sample(0, 0.01, speed_mps=10), trip_id=trip_id)

    clock.advance(minutes=2)
    closure = await tracking_engine.end_trip(trip_id=trip_id)

    assert closure.trip.status == TripStatus.ENDED
    assert closure.trip.ended_at == clock.now()
    assert closure.distance_miles == pytest.approx(0.691, abs=0.001)
    assert closure.cost_usd == pytest.approx(closure.distance_miles * 0.67)
    assert closure.duration_minutes == 3


@pytest.mark.asyncio
async def test_ended_trip_rejects_samples_and_second_end(tracking_engine):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    trip_id = started.trip.id
    closure = await tracking_engine.end_trip(trip_id=trip_id)

    with pytest.raises(TripNotActiveError):
        await tracking_engine.ingest_sample(make_sample(0, 0.01, speed_mps=10), trip_id=trip_id)
    with pytest.raises(TripNotActiveError):
        await tracking_engine.end_trip(trip_id=trip_id)

    # Totals are written once
    assert tracking_engine.get_trip(trip_id) == closure.trip


@pytest.mark.asyncio
async def test_staff_id_resolves_to_active_trip(tracking_engine):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))

    result = await tracking_engine.ingest_sample(
        make_sample(0, 0.01, speed_mps=10), staff_id="staff-1"
    )
    assert result.accepted is True
    assert len(tracking_engine.get_trip(started.trip.id).route) == 2

    closure = await tracking_engine.end_trip(staff_id="staff-1")
    assert closure.trip.id == started.trip.id

    # No active trip left to resolve to
    with pytest.raises(TripNotFoundError):
        await tracking_engine.ingest_sample(make_sample(0, 0), staff_id="staff-1")


@pytest.mark.asyncio
async def test_trip_id_wins_over_staff_id(tracking_engine):
    mine = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    await tracking_engine.start_trip("staff-2", make_sample(0, 0))

    assert tracking_engine.resolve_trip_id(mine.trip.id, "staff-2") == mine.trip.id


@pytest.mark.asyncio
async def test_reference_is_required(tracking_engine):
    with pytest.raises(TripReferenceRequiredError):
        await tracking_engine.ingest_sample(make_sample(0, 0))
    with pytest.raises(TripReferenceRequiredError):
        await tracking_engine.end_trip()


@pytest.mark.asyncio
async def test_unknown_trip_id(tracking_engine):
    with pytest.raises(TripNotFoundError):
        await tracking_engine.end_trip(trip_id="missing")


@pytest.mark.asyncio
async def test_poor_initial_fix_never_blocks_start(tracking_engine):
    """An IP-grade first fix opens the trip with an empty route."""
    result = await tracking_engine.start_trip("staff-1", make_sample(40.7, -74.0, accuracy=3000))

    assert result.trip.is_active
    assert result.degraded_accuracy is True
    assert result.requires_device_gps is True
    assert result.trip.route == ()
    assert result.trip.start_location.latitude == 40.7


@pytest.mark.asyncio
async def test_wifi_grade_initial_fix_is_degraded_but_kept(tracking_engine):
    result = await tracking_engine.start_trip("staff-1", make_sample(0, 0, accuracy=500))

    assert result.degraded_accuracy is True
    assert result.requires_device_gps is False
    assert len(result.trip.route) == 1


def test_end_falls_back_to_straight_line():
    """With under two route points the start and end fixes give the distance."""
    trip = Trip(
        id="t-1",
        staff_id="staff-1",
        started_at=START,
        cost_per_mile_usd=0.67,
        start_location=GeoPoint(0, 0, accuracy_meters=5),
    )

    closure = TripStateMachine().end(trip, START, end_sample=make_sample(0, 0.01))

    # The end sample has no speed and is the first route point, so the route is one point long
    assert len(closure.trip.route) == 1
    assert closure.distance_miles == pytest.approx(0.691, abs=0.001)
    assert closure.cost_usd == pytest.approx(0.691 * 0.67, abs=0.001)
    assert closure.trip.end_location.longitude == 0.01


def test_end_without_fallback_when_barely_moved():
    trip = Trip(
        id="t-1",
        staff_id="staff-1",
        started_at=START,
        cost_per_mile_usd=0.67,
        start_location=GeoPoint(0, 0, accuracy_meters=5),
    )

    closure = TripStateMachine().end(trip, START, end_sample=make_sample(0, 0.0001))

    assert closure.distance_miles == 0


@pytest.mark.asyncio
async def test_ip_grade_start_never_counts_towards_distance(tracking_engine):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0, accuracy=3000))

    closure = await tracking_engine.end_trip(
        trip_id=started.trip.id, end_sample=make_sample(0, 0.05, accuracy=5)
    )

    assert closure.distance_miles == 0
    assert closure.cost_usd == 0
    # Still recorded for reference
    assert closure.trip.start_location.latitude == 0


@pytest.mark.asyncio
async def test_ip_grade_end_never_counts_towards_distance(tracking_engine):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))

    closure = await tracking_engine.end_trip(
        trip_id=started.trip.id, end_sample=make_sample(0, 0.05, accuracy=5000)
    )

    assert len(closure.trip.route) == 1
    assert closure.distance_miles == 0
    assert closure.cost_usd == 0
    assert closure.trip.end_location.longitude == 0.05


@pytest.mark.asyncio
async def test_distance_never_decreases(tracking_engine, clock):
    """Moving, idle, jittery, coarse and rejected samples mixed in one stream."""
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    trip_id = started.trip.id
    stream = [
        make_sample(0, 0.01, speed_mps=10),
        make_sample(0, 0.0101, speed_mps=0),
        make_sample(0, 0.5, accuracy=3000),
        make_sample(0, 0.0102),
        make_sample(0, 0.02, accuracy=800, speed_mps=12),
        make_sample(0, 0.0, accuracy=2500, speed_mps=30),
        make_sample(0, 0.019, speed_mps=1),
        make_sample(0, 0.03),
        make_sample(0, 0.04, speed_mps=15),
    ]

    readings = [tracking_engine.get_live_metrics(trip_id).distance_miles]
    for sample in stream:
        clock.advance(seconds=30)
        await tracking_engine.ingest_sample(sample, trip_id=trip_id)
        readings.append(tracking_engine.get_live_metrics(trip_id).distance_miles)

    assert readings == sorted(readings)
    assert readings[-1] > readings[0]

    closure = await tracking_engine.end_trip(trip_id=trip_id)
    assert closure.distance_miles == readings[-1]


@pytest.mark.asyncio
@pytest.mark.parametrize("accuracy", [5, 50, 500, 2000])
async def test_idle_samples_add_nothing_at_any_accuracy(tracking_engine, accuracy):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0, accuracy=accuracy))
    trip_id = started.trip.id

    # Walking pace, then sub-threshold jitter with no reported speed
    for sample in (
        make_sample(0, 0.01, accuracy=accuracy, speed_mps=1),
        make_sample(0, 0.02, accuracy=accuracy, speed_mps=2),
        make_sample(0, 0.0201, accuracy=accuracy),
    ):
        result = await tracking_engine.ingest_sample(sample, trip_id=trip_id)
        assert result.accepted is True
        assert result.reason == SampleReason.IDLE

    assert tracking_engine.get_live_metrics(trip_id).distance_miles == 0


@pytest.mark.asyncio
async def test_live_metrics_for_ended_trip_are_frozen(tracking_engine, clock):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    trip_id = started.trip.id
    clock.advance(minutes=1)
    await tracking_engine.ingest_sample(make_sample(0, 0.01, speed_mps=10), trip_id=trip_id)
    closure = await tracking_engine.end_trip(trip_id=trip_id)

    clock.advance(minutes=30)
    snapshot = tracking_engine.get_live_metrics(trip_id)

    assert snapshot.distance_miles == closure.trip.total_distance_miles
    assert snapshot.duration_minutes == 1


@pytest.mark.asyncio
async def test_live_metrics_track_the_clock(tracking_engine, clock):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    clock.advance(minutes=7)

    assert tracking_engine.get_live_metrics(started.trip.id).duration_minutes == 7


@pytest.mark.asyncio
async def test_rate_is_frozen_at_start(clock):
    rates = FixedRates(0.55)
    engine = TrackingEngine(rates=rates, clock=clock)

    started = await engine.start_trip("staff-1", make_sample(0, 0))
    rates.rate = 2.0
    await engine.ingest_sample(make_sample(0, 0.01, speed_mps=10), trip_id=started.trip.id)
    closure = await engine.end_trip(trip_id=started.trip.id)

    assert rates.calls == ["staff-1"]
    assert closure.trip.cost_per_mile_usd == 0.55
    assert closure.cost_usd == pytest.approx(closure.distance_miles * 0.55)


@pytest.mark.asyncio
async def test_missing_rate_uses_default(clock):
    engine = TrackingEngine(rates=FixedRates(None), clock=clock)

    started = await engine.start_trip("staff-1", make_sample(0, 0))

    assert started.trip.cost_per_mile_usd == 0.67
