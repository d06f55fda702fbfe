"""
Concurrency Tests.

Validates that concurrent producers for one staff member are applied in
arrival order and that different staff members never interfere.
"""

import pytest
import asyncio

from fieldtrack.app.core.exceptions import TripAlreadyActiveError
from fieldtrack.app.domain.tracking.producers import TrackingSession, WatchDebouncer
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds
from fieldtrack.tests.helpers import make_sample


class QueueSource:
    """Device stand-in: watch() drains a queue, latest() returns the last fix pushed."""

    def __init__(self, latest=None):
        self.queue = asyncio.Queue()
        self._latest = latest

    def push(self, sample):
        self._latest = sample
        self.queue.put_nowait(sample)

    def latest(self):
        return self._latest

    async def watch(self):
        while True:
            sample = await self.queue.get()
            yield sample
            self.queue.task_done()


async def wait_until_stopped(session):
    while session.is_running:
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_concurrent_ingests_keep_submission_order(tracking_engine):
    """Samples gathered from two producers land in the order they were submitted."""
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    trip_id = started.trip.id

    samples = [make_sample(0, 0.001 * i, speed_mps=10) for i in range(1, 21)]
    await asyncio.gather(*[
        tracking_engine.ingest_sample(sample, trip_id=trip_id) for sample in samples
    ])

    route = tracking_engine.get_trip(trip_id).route
    assert [p.longitude for p in route[1:]] == [s.longitude for s in samples]


@pytest.mark.asyncio
async def test_concurrent_start_for_same_staff(tracking_engine):
    """Only one of several simultaneous starts wins."""
    results = await asyncio.gather(
        *[tracking_engine.start_trip("staff-1", make_sample(0, 0)) for _ in range(5)],
        return_exceptions=True
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, TripAlreadyActiveError)]
    assert len(winners) == 1
    assert len(losers) == 4
    assert tracking_engine.active_trip_for("staff-1").id == winners[0].trip.id


@pytest.mark.asyncio
async def test_staff_members_are_independent(tracking_engine):
    staff_ids = [f"staff-{i}" for i in range(10)]
    results = await asyncio.gather(*[
        tracking_engine.start_trip(staff_id, make_sample(0, 0)) for staff_id in staff_ids
    ])

    assert {r.trip.staff_id for r in results} == set(staff_ids)

    await asyncio.gather(*[
        tracking_engine.ingest_sample(make_sample(0, 0.01, speed_mps=10), staff_id=staff_id)
        for staff_id in staff_ids
    ])
    for result in results:
        assert len(tracking_engine.get_trip(result.trip.id).route) == 2


def test_debouncer_drops_small_moves():
    debouncer = WatchDebouncer(threshold_meters=10)
    origin = make_sample(0, 0)
    assert debouncer.should_forward(origin) is True
    debouncer.mark_forwarded(origin)

    # About 5.6 m away
    assert debouncer.should_forward(make_sample(0, 0.00005)) is False
    # About 111 m away
    assert debouncer.should_forward(make_sample(0, 0.001)) is True


@pytest.mark.asyncio
async def test_watch_producer_is_debounced(tracking_engine):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    source = QueueSource()
    session = TrackingSession(
        tracking_engine, started.trip.id, source,
        thresholds=TrackingThresholds(interval_seconds=3600)
    )
    session.start()

    source.push(make_sample(0, 0))
    source.push(make_sample(0, 0.00005))
    source.push(make_sample(0, 0.001))
    await asyncio.wait_for(source.queue.join(), timeout=1)

    route = tracking_engine.get_trip(started.trip.id).route
    assert [p.longitude for p in route] == [0, 0, 0.001]

    await session.stop()


@pytest.mark.asyncio
async def test_interval_producer_resends_latest(tracking_engine):
    """The timer forwards the latest fix even when it has not moved."""
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    source = QueueSource(latest=make_sample(0, 0))
    session = TrackingSession(
        tracking_engine, started.trip.id, source,
        thresholds=TrackingThresholds(interval_seconds=0.01)
    )
    session.start()

    await asyncio.sleep(0.1)
    await session.stop()

    assert len(tracking_engine.get_trip(started.trip.id).route) >= 3


@pytest.mark.asyncio
async def test_stop_tears_down_both_producers(tracking_engine):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    source = QueueSource(latest=make_sample(0, 0.001))
    session = TrackingSession(
        tracking_engine, started.trip.id, source,
        thresholds=TrackingThresholds(interval_seconds=0.01)
    )
    session.start()
    assert session.is_running

    await session.stop()
    route_length = len(tracking_engine.get_trip(started.trip.id).route)

    source.push(make_sample(0, 0.01))
    await asyncio.sleep(0.05)

    assert session.is_running is False
    assert len(tracking_engine.get_trip(started.trip.id).route) == route_length


@pytest.mark.asyncio
async def test_session_stops_when_trip_ends(tracking_engine):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    source = QueueSource()
    session = TrackingSession(
        tracking_engine, started.trip.id, source,
        thresholds=TrackingThresholds(interval_seconds=3600)
    )
    session.start()

    closure = await tracking_engine.end_trip(trip_id=started.trip.id)
    source.push(make_sample(0, 0.01, speed_mps=10))

    await asyncio.wait_for(wait_until_stopped(session), timeout=1)
    assert tracking_engine.get_trip(started.trip.id) == closure.trip


@pytest.mark.asyncio
async def test_low_accuracy_prompts_for_device_gps(tracking_engine):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    prompts = []
    source = QueueSource()
    session = TrackingSession(
        tracking_engine, started.trip.id, source,
        thresholds=TrackingThresholds(interval_seconds=3600),
        on_requires_device_gps=prompts.append
    )
    session.start()

    source.push(make_sample(0, 0.01, accuracy=5000))
    await asyncio.wait_for(source.queue.join(), timeout=1)
    await session.stop()

    assert len(prompts) == 1
    assert prompts[0].accepted is False


class FailingEngine:
    async def ingest_sample(self, sample, trip_id=None, staff_id=None):
        raise RuntimeError("engine unavailable")


@pytest.mark.asyncio
async def test_producer_failure_is_logged(mocker):
    log = mocker.patch("fieldtrack.app.domain.tracking.producers.logger")
    source = QueueSource()
    session = TrackingSession(
        FailingEngine(), "trip-1", source,
        thresholds=TrackingThresholds(interval_seconds=3600)
    )
    session.start()
    watch_task = session._tasks[0]

    source.push(make_sample(0, 0))
    await asyncio.wait_for(asyncio.wait([watch_task]), timeout=1)
    await asyncio.sleep(0)

    assert isinstance(watch_task.exception(), RuntimeError)
    log.error.assert_called_once()
    assert log.error.call_args.args[0] == "Tracking producer failed"
    assert log.error.call_args.kwargs["extra"]["producer"] == "watch:trip-1"
    # The timer keeps running as the safety net
    assert session.is_running

    await session.stop()
    log.error.assert_called_once()
