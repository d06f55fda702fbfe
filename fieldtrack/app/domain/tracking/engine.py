"""
Tracking engine.

Holds the live Trip and Visit records, serializes every mutation per staff
member and hands finalized records to the persistence gateway. The engine is
the operational truth during a session; the store is a mirror written in the
background. Closed records are kept for a retention window and then evicted.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional, Protocol, Set

from fieldtrack.app.core.exceptions import (
    TripAlreadyActiveError, TripNotFoundError, TripReferenceRequiredError,
    VisitAlreadyInProgressError, VisitNotFoundError
)
from fieldtrack.app.domain.tracking.clock import Clock, SystemClock
from fieldtrack.app.domain.tracking.metrics import MetricsAggregator
from fieldtrack.app.domain.tracking.models import (
    GeoPoint, IngestResult, LocationSample, Trip, TripClosure,
    TripMetricsSnapshot, TripStartResult, Visit, VisitClosure
)
from fieldtrack.app.domain.tracking.status import StaffStatus, derive_staff_status
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds
from fieldtrack.app.domain.tracking.trip_machine import TripStateMachine
from fieldtrack.app.domain.tracking.visit_machine import VisitStateMachine

logger = logging.getLogger(__name__)


class PersistenceGateway(Protocol):
    async def save_trip(self, trip: Trip) -> None:
        ...

    async def save_visit(self, visit: Visit) -> None:
        ...


class CostRateProvider(Protocol):
    async def get_cost_per_mile(self, staff_id: str) -> Optional[float]:
        ...


class LocationSink(Protocol):
    async def record(self, staff_id: str, sample: LocationSample) -> None:
        ...


def _new_id() -> str:
    return str(uuid.uuid4())


class TrackingEngine:
    """
    Entry point for trip and visit operations.

    Every operation for a given staff member runs under that staff member's
    lock, so samples from the watch producer and the interval producer are
    applied one at a time and in arrival order. Different staff members never
    contend.
    """

    def __init__(
        self,
        persistence: Optional[PersistenceGateway] = None,
        rates: Optional[CostRateProvider] = None,
        clock: Optional[Clock] = None,
        thresholds: Optional[TrackingThresholds] = None,
        location_sink: Optional[LocationSink] = None,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.thresholds = thresholds or TrackingThresholds()
        self.persistence = persistence
        self.rates = rates
        self.clock = clock or SystemClock()
        self.location_sink = location_sink
        self.id_factory = id_factory

        self.trips = TripStateMachine(self.thresholds)
        self.visits = VisitStateMachine(self.thresholds)
        self.metrics = MetricsAggregator(self.thresholds)

        self._trips: Dict[str, Trip] = {}
        self._active_trip_by_staff: Dict[str, str] = {}
        self._visits: Dict[str, Visit] = {}
        self._open_visit_by_staff: Dict[str, str] = {}
        self._last_sample_by_staff: Dict[str, LocationSample] = {}

        # Eviction bookkeeping, oldest first
        self._closed_at: Dict[str, datetime] = {}
        self._sample_seen_at: Dict[str, datetime] = {}

        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._pending: Set[asyncio.Task] = set()
        self._write_tails: Dict[str, asyncio.Task] = {}
        self._unsaved: Dict[str, asyncio.Task] = {}

    # Lookups

    def get_trip(self, trip_id: str) -> Trip:
        trip = self._trips.get(trip_id)
        if trip is None:
            raise TripNotFoundError(trip_id=trip_id)
        return trip

    def get_visit(self, visit_id: str) -> Visit:
        visit = self._visits.get(visit_id)
        if visit is None:
            raise VisitNotFoundError(visit_id)
        return visit

    def active_trip_for(self, staff_id: str) -> Optional[Trip]:
        trip_id = self._active_trip_by_staff.get(staff_id)
        return self._trips[trip_id] if trip_id else None

    def current_visit_for(self, staff_id: str) -> Optional[Visit]:
        visit_id = self._open_visit_by_staff.get(staff_id)
        return self._visits[visit_id] if visit_id else None

    def last_sample_for(self, staff_id: str) -> Optional[LocationSample]:
        return self._last_sample_by_staff.get(staff_id)

    def resolve_trip_id(self, trip_id: Optional[str] = None, staff_id: Optional[str] = None) -> str:
        """
        Map the "trip ID or staff ID" addressing used by callers to a trip ID.

        A trip ID always wins. A staff ID resolves to that staff member's
        ACTIVE trip.

        Raises:
            TripReferenceRequiredError: If neither key is given
            TripNotFoundError: If the key matches no trip
        """
        if trip_id:
            return self.get_trip(trip_id).id
        if staff_id:
            active_id = self._active_trip_by_staff.get(staff_id)
            if active_id is None:
                raise TripNotFoundError(staff_id=staff_id)
            return active_id
        raise TripReferenceRequiredError()

    # Trips

    async def start_trip(self, staff_id: str, sample: LocationSample) -> TripStartResult:
        """
        Begin a driving session.

        Raises:
            TripAlreadyActiveError: If the staff member already has an ACTIVE trip
        """
        self.evict_closed()
        rate = await self._cost_per_mile(staff_id)

        async with self._staff_lock(staff_id):
            existing = self._active_trip_by_staff.get(staff_id)
            if existing is not None:
                raise TripAlreadyActiveError(staff_id, existing)

            now = self.clock.now()
            result = self.trips.start(self.id_factory(), staff_id, sample, rate, now)
            trip = result.trip

            self._trips[trip.id] = trip
            self._active_trip_by_staff[staff_id] = trip.id
            self._remember_sample(staff_id, sample)

        logger.info(
            "Trip started",
            extra={
                "trip_id": trip.id,
                "staff_id": staff_id,
                "degraded_accuracy": result.degraded_accuracy,
            }
        )
        self._persist_trip(trip)
        return result

    async def ingest_sample(
        self,
        sample: LocationSample,
        trip_id: Optional[str] = None,
        staff_id: Optional[str] = None,
    ) -> IngestResult:
        """
        Apply one location sample to an ACTIVE trip.

        A dropped low accuracy sample is not an error: the result carries
        requires_device_gps so the caller can prompt the user.

        Raises:
            TripNotFoundError, TripNotActiveError
        """
        self.evict_closed()
        resolved = self.resolve_trip_id(trip_id, staff_id)
        owner = self._trips[resolved].staff_id

        async with self._staff_lock(owner):
            trip = self._trips[resolved]
            now = self.clock.now()
            updated, result = self.trips.ingest(trip, sample, now)
            self._trips[resolved] = updated
            self._remember_sample(owner, sample)

        if not result.accepted:
            logger.debug(
                "Sample dropped",
                extra={"trip_id": resolved, "reason": result.reason.value}
            )
        return result

    async def end_trip(
        self,
        trip_id: Optional[str] = None,
        staff_id: Optional[str] = None,
        end_sample: Optional[LocationSample] = None,
    ) -> TripClosure:
        """
        Close a trip and freeze its distance and cost.

        An end sample, when given, is ingested like any other sample before
        the totals are computed and is recorded as the end location.

        Raises:
            TripNotFoundError, TripNotActiveError
        """
        resolved = self.resolve_trip_id(trip_id, staff_id)
        owner = self._trips[resolved].staff_id

        async with self._staff_lock(owner):
            trip = self._trips[resolved]
            now = self.clock.now()
            closure = self.trips.end(trip, now, end_sample)
            self._trips[resolved] = closure.trip
            if self._active_trip_by_staff.get(owner) == resolved:
                del self._active_trip_by_staff[owner]
            self._closed_at[f"trip:{resolved}"] = now
            if end_sample is not None:
                self._remember_sample(owner, end_sample)

        self._persist_trip(closure.trip)
        return closure

    def get_live_metrics(self, trip_id: str) -> TripMetricsSnapshot:
        """Recompute the metrics of a trip from its route. Ended trips report their frozen totals."""
        trip = self.get_trip(trip_id)
        if trip.is_active:
            return self.metrics.snapshot(trip.route, trip.started_at, self.clock.now())

        snapshot = self.metrics.snapshot(trip.route, trip.started_at, trip.ended_at)
        return replace(snapshot, distance_miles=trip.total_distance_miles)

    # Visits

    async def start_visit(
        self,
        staff_id: str,
        patient_name: str,
        patient_address: str,
        visit_type: str,
        prior_trip_duration_minutes: Optional[int] = None,
        trip_id: Optional[str] = None,
        location: Optional[GeoPoint] = None,
        scheduled_time: Optional[datetime] = None,
    ) -> Visit:
        """
        Begin a patient visit. No trip is required.

        The visit is linked to trip_id when given, else to the staff member's
        ACTIVE trip if there is one, purely for drive time attribution.

        Raises:
            VisitAlreadyInProgressError: If the staff member has a visit IN_PROGRESS
            TripNotFoundError: If trip_id is given but unknown
        """
        self.evict_closed()
        prior_trip = self.get_trip(trip_id) if trip_id else None

        async with self._staff_lock(staff_id):
            existing = self._open_visit_by_staff.get(staff_id)
            if existing is not None:
                raise VisitAlreadyInProgressError(staff_id, existing)

            if prior_trip is None:
                prior_trip = self.active_trip_for(staff_id)

            now = self.clock.now()
            visit = self.visits.start(
                visit_id=self.id_factory(),
                staff_id=staff_id,
                patient_name=patient_name,
                patient_address=patient_address,
                visit_type=visit_type,
                now=now,
                prior_trip_duration_minutes=prior_trip_duration_minutes,
                prior_trip=prior_trip,
                visit_location=location,
                scheduled_time=scheduled_time,
            )
            self._visits[visit.id] = visit
            self._open_visit_by_staff[staff_id] = visit.id

        logger.info("Visit started", extra={"visit_id": visit.id, "staff_id": staff_id})
        self._persist_visit(visit)
        return visit

    async def complete_visit(self, visit_id: str, notes: Optional[str] = None) -> VisitClosure:
        owner = self.get_visit(visit_id).staff_id

        async with self._staff_lock(owner):
            visit = self._visits[visit_id]
            closure = self.visits.complete(visit, self.clock.now(), notes)
            self._close_visit(closure.visit)

        self._persist_visit(closure.visit)
        return closure

    async def cancel_visit(self, visit_id: str, reason: Optional[str]) -> Visit:
        owner = self.get_visit(visit_id).staff_id

        async with self._staff_lock(owner):
            visit = self._visits[visit_id]
            cancelled = self.visits.cancel(visit, reason, self.clock.now())
            self._close_visit(cancelled)

        self._persist_visit(cancelled)
        return cancelled

    async def update_visit_notes(self, visit_id: str, notes: Optional[str]) -> Visit:
        owner = self.get_visit(visit_id).staff_id

        async with self._staff_lock(owner):
            updated = self.visits.update_notes(self._visits[visit_id], notes)
            self._visits[visit_id] = updated

        self._persist_visit(updated)
        return updated

    def _close_visit(self, visit: Visit) -> None:
        self._visits[visit.id] = visit
        self._closed_at[f"visit:{visit.id}"] = self.clock.now()
        if self._open_visit_by_staff.get(visit.staff_id) == visit.id:
            del self._open_visit_by_staff[visit.staff_id]

    # Status

    def staff_status(
        self,
        staff_id: str,
        fallback_sample: Optional[LocationSample] = None,
    ) -> StaffStatus:
        """
        Live status for a staff member.

        fallback_sample is used when the engine has seen no sample for this
        staff member (e.g. after a restart, from the location cache).
        """
        return derive_staff_status(
            staff_id=staff_id,
            active_trip=self.active_trip_for(staff_id),
            current_visit=self.current_visit_for(staff_id),
            last_sample=self.last_sample_for(staff_id) or fallback_sample,
            now=self.clock.now(),
            thresholds=self.thresholds,
        )

    # Retention

    def evict_closed(self) -> int:
        """
        Forget closed records and idle staff samples older than the retention window.

        A closed trip or visit is only dropped once its background write has
        finished; until then the engine is its only copy. Samples are kept for
        staff members with an ACTIVE trip or a visit IN_PROGRESS. After eviction
        lookups raise NotFound and staff status falls back to the location cache.

        Returns:
            Number of entries evicted
        """
        cutoff = self.clock.now() - timedelta(minutes=self.thresholds.closed_record_retention_minutes)
        evicted = 0

        for key, closed_at in list(self._closed_at.items()):
            if closed_at > cutoff:
                break
            if key in self._unsaved:
                continue
            kind, record_id = key.split(":", 1)
            registry = self._trips if kind == "trip" else self._visits
            registry.pop(record_id, None)
            del self._closed_at[key]
            evicted += 1

        for staff_id, seen_at in list(self._sample_seen_at.items()):
            if seen_at > cutoff:
                break
            if staff_id in self._active_trip_by_staff or staff_id in self._open_visit_by_staff:
                continue
            self._last_sample_by_staff.pop(staff_id, None)
            del self._sample_seen_at[staff_id]
            evicted += 1

        if evicted:
            logger.debug("Evicted closed tracking records", extra={"count": evicted})
        return evicted

    @asynccontextmanager
    async def _staff_lock(self, staff_id: str):
        """Hold the staff member's lock. The lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(staff_id)
        if lock is None:
            lock = self._locks[staff_id] = asyncio.Lock()
        self._lock_users[staff_id] = self._lock_users.get(staff_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[staff_id] -= 1
            if not self._lock_users[staff_id]:
                del self._lock_users[staff_id]
                del self._locks[staff_id]

    # Background writes

    async def drain(self) -> None:
        """Wait for every scheduled background write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _cost_per_mile(self, staff_id: str) -> float:
        if self.rates is None:
            return self.thresholds.default_cost_per_mile
        rate = await self.rates.get_cost_per_mile(staff_id)
        return rate if rate is not None else self.thresholds.default_cost_per_mile

    def _remember_sample(self, staff_id: str, sample: LocationSample) -> None:
        self._last_sample_by_staff[staff_id] = sample
        self._sample_seen_at.pop(staff_id, None)
        self._sample_seen_at[staff_id] = self.clock.now()
        if self.location_sink is not None:
            sink = self.location_sink
            self._schedule(f"location:{staff_id}", lambda: sink.record(staff_id, sample))

    def _persist_trip(self, trip: Trip) -> None:
        if self.persistence is not None:
            gateway = self.persistence
            self._schedule(
                f"records:{trip.staff_id}", lambda: gateway.save_trip(trip), record=f"trip:{trip.id}"
            )

    def _persist_visit(self, visit: Visit) -> None:
        if self.persistence is not None:
            gateway = self.persistence
            self._schedule(
                f"records:{visit.staff_id}", lambda: gateway.save_visit(visit), record=f"visit:{visit.id}"
            )

    def _schedule(
        self,
        key: str,
        write: Callable[[], Awaitable[None]],
        record: Optional[str] = None,
    ) -> None:
        """
        Run a write in the background, after any earlier write on the same key.

        Trip and visit writes for one staff member share a key: both roll up
        into the same daily stats row, and writes for one record land in
        transition order. A failed write is logged and never touches
        in-memory state.
        """
        previous = self._write_tails.get(key)

        async def run():
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            try:
                await write()
            except Exception:
                logger.exception("Background write failed", extra={"key": key, "record": record})

        task = asyncio.create_task(run())
        self._write_tails[key] = task
        if record is not None:
            self._unsaved[record] = task
        self._pending.add(task)

        def done(finished: asyncio.Task):
            self._pending.discard(finished)
            if self._write_tails.get(key) is finished:
                del self._write_tails[key]
            if record is not None and self._unsaved.get(record) is finished:
                del self._unsaved[record]

        task.add_done_callback(done)
