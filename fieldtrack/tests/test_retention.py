"""
Retention Tests.

Closed trips and visits, idle staff samples and per-staff locks must not pile
up in a long-running engine.
"""

import pytest
import asyncio

from fieldtrack.app.core.exceptions import TripNotFoundError, VisitNotFoundError
from fieldtrack.app.domain.tracking.engine import TrackingEngine
from fieldtrack.tests.helpers import make_sample


class GatedGateway:
    """Store whose writes block until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.saved = []

    async def save_trip(self, trip):
        await self.release.wait()
        self.saved.append(trip.status)

    async def save_visit(self, visit):
        await self.release.wait()
        self.saved.append(visit.status)


@pytest.mark.asyncio
async def test_closed_records_are_evicted_after_retention(tracking_engine, clock):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    await tracking_engine.end_trip(trip_id=started.trip.id)
    visit = await tracking_engine.start_visit("staff-1", "Jane Doe", "12 Elm St", "wound_care")
    await tracking_engine.complete_visit(visit.id)

    clock.advance(minutes=59)
    assert tracking_engine.evict_closed() == 0
    assert tracking_engine.get_trip(started.trip.id).id == started.trip.id

    clock.advance(minutes=2)
    # The trip, the visit and the staff member's last sample
    assert tracking_engine.evict_closed() == 3

    with pytest.raises(TripNotFoundError):
        tracking_engine.get_trip(started.trip.id)
    with pytest.raises(VisitNotFoundError):
        tracking_engine.get_visit(visit.id)
    assert tracking_engine.last_sample_for("staff-1") is None
    assert tracking_engine._trips == {}
    assert tracking_engine._visits == {}


@pytest.mark.asyncio
async def test_open_records_are_kept(tracking_engine, clock):
    started = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    visit = await tracking_engine.start_visit("staff-2", "Jane Doe", "12 Elm St", "wound_care")

    clock.advance(minutes=300)

    assert tracking_engine.evict_closed() == 0
    assert tracking_engine.get_trip(started.trip.id).is_active
    assert tracking_engine.get_visit(visit.id).is_in_progress
    assert tracking_engine.last_sample_for("staff-1") is not None


@pytest.mark.asyncio
async def test_eviction_runs_on_new_activity(tracking_engine, clock):
    first = await tracking_engine.start_trip("staff-1", make_sample(0, 0))
    await tracking_engine.end_trip(trip_id=first.trip.id)

    clock.advance(minutes=90)
    await tracking_engine.start_trip("staff-2", make_sample(1, 1))

    assert first.trip.id not in tracking_engine._trips


@pytest.mark.asyncio
async def test_pending_write_blocks_eviction(clock):
    gateway = GatedGateway()
    engine = TrackingEngine(persistence=gateway, clock=clock)

    started = await engine.start_trip("staff-1", make_sample(0, 0))
    await engine.end_trip(trip_id=started.trip.id)
    clock.advance(minutes=61)

    # Only the idle sample goes; the trip is still waiting on the store
    assert engine.evict_closed() == 1
    assert engine.get_trip(started.trip.id).id == started.trip.id

    gateway.release.set()
    await engine.drain()

    assert engine.evict_closed() == 1
    assert len(gateway.saved) == 2
    with pytest.raises(TripNotFoundError):
        engine.get_trip(started.trip.id)


@pytest.mark.asyncio
async def test_lock_table_only_holds_locks_in_use(tracking_engine):
    staff_ids = [f"staff-{i}" for i in range(50)]
    results = await asyncio.gather(*[
        tracking_engine.start_trip(staff_id, make_sample(0, 0)) for staff_id in staff_ids
    ])
    await asyncio.gather(*[
        tracking_engine.ingest_sample(make_sample(0, 0.01, speed_mps=10), trip_id=r.trip.id)
        for r in results
        for _ in range(3)
    ])

    assert tracking_engine._locks == {}
    assert tracking_engine._lock_users == {}
