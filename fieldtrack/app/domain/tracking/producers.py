"""
Sample producers for one tracking session.

A device delivers positions two ways: a continuous watch that fires on every
position change, and a fixed interval timer that re-sends the latest fix as a
safety net. Both feed the engine's ingest_sample, which serializes them per
staff member.

Usage:
    session = TrackingSession(engine, trip_id, source)
    session.start()
    ...
    await session.stop()
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, List, Optional, Protocol

from fieldtrack.app.core.exceptions import TripNotActiveError, TripNotFoundError
from fieldtrack.app.domain.tracking.geo import haversine_meters
from fieldtrack.app.domain.tracking.models import IngestResult, LocationSample
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds

logger = logging.getLogger(__name__)


class SampleSource(Protocol):
    """Device GPS. Acquisition timeouts are the source's business."""

    def watch(self) -> AsyncIterator[LocationSample]:
        ...

    def latest(self) -> Optional[LocationSample]:
        ...


class WatchDebouncer:
    """
    Drops watch samples that are within threshold_meters of the last
    forwarded sample.
    """

    def __init__(self, threshold_meters: float = 10.0):
        self.threshold_meters = threshold_meters
        self.last_forwarded: Optional[LocationSample] = None

    def should_forward(self, sample: LocationSample) -> bool:
        if self.last_forwarded is None:
            return True
        moved = haversine_meters(
            self.last_forwarded.latitude, self.last_forwarded.longitude,
            sample.latitude, sample.longitude
        )
        return moved > self.threshold_meters

    def mark_forwarded(self, sample: LocationSample) -> None:
        self.last_forwarded = sample


class TrackingSession:
    """
    Runs the watch and interval producers for one trip.

    The session stops on its own once the trip is no longer ACTIVE, and stop()
    tears down both producers so nothing keeps mutating an abandoned trip.
    """

    def __init__(
        self,
        engine,
        trip_id: str,
        source: SampleSource,
        thresholds: Optional[TrackingThresholds] = None,
        on_requires_device_gps: Optional[Callable[[IngestResult], None]] = None,
    ):
        thresholds = thresholds or engine.thresholds
        self.engine = engine
        self.trip_id = trip_id
        self.source = source
        self.interval_seconds = thresholds.interval_seconds
        self.debouncer = WatchDebouncer(thresholds.debounce_meters)
        self.on_requires_device_gps = on_requires_device_gps
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.is_running:
            return
        self._tasks = [
            asyncio.create_task(self._watch_loop(), name=f"watch:{self.trip_id}"),
            asyncio.create_task(self._interval_loop(), name=f"interval:{self.trip_id}"),
        ]
        for task in self._tasks:
            task.add_done_callback(self._report_failure)
        logger.info("Tracking session started", extra={"trip_id": self.trip_id})

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Tracking session stopped", extra={"trip_id": self.trip_id})

    async def _watch_loop(self) -> None:
        async for sample in self.source.watch():
            if not self.debouncer.should_forward(sample):
                continue
            if not await self._forward(sample):
                return

    async def _interval_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            sample = self.source.latest()
            if sample is None:
                continue
            # The timer ignores the debounce
            if not await self._forward(sample):
                return

    async def _forward(self, sample: LocationSample) -> bool:
        try:
            result = await self.engine.ingest_sample(sample, trip_id=self.trip_id)
        except (TripNotActiveError, TripNotFoundError):
            logger.info("Trip no longer active, ending session", extra={"trip_id": self.trip_id})
            self._halt_others()
            return False

        self.debouncer.mark_forwarded(sample)
        if result.requires_device_gps and self.on_requires_device_gps is not None:
            self.on_requires_device_gps(result)
        return True

    def _report_failure(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        logger.error(
            "Tracking producer failed",
            exc_info=task.exception(),
            extra={"trip_id": self.trip_id, "producer": task.get_name()}
        )

    def _halt_others(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
