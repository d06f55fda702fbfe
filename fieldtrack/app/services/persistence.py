"""
SQLAlchemy persistence gateway.

Mirrors engine Trip/Visit records into staff_trips/staff_visits. Each write
runs in its own transaction, is retried with backoff behind a circuit breaker,
and lands in the dead letter queue when it still fails.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldtrack.app.core.config import settings
from fieldtrack.app.core.reliability import CircuitBreaker, retry_async
from fieldtrack.app.domain.tracking.cost import round_currency
from fieldtrack.app.domain.tracking.models import (
    GeoPoint, Trip, TripStatus, Visit, VisitStatus
)
from fieldtrack.app.models.dlq import DeadLetterQueue, DLQStatus
from fieldtrack.app.models.staff_trip import StaffTrip
from fieldtrack.app.models.staff_visit import StaffVisit
from fieldtrack.app.services import performance

logger = logging.getLogger(__name__)


def _location_json(point: Optional[GeoPoint]) -> Optional[Dict[str, Any]]:
    if point is None:
        return None
    return {"lat": point.latitude, "lng": point.longitude, "address": point.address}


def trip_row(trip: Trip) -> StaffTrip:
    """Build the staff_trips row for a trip. Totals are rounded here and nowhere earlier."""
    return StaffTrip(
        id=trip.id,
        staff_id=trip.staff_id,
        status=trip.status,
        start_time=trip.started_at,
        end_time=trip.ended_at,
        total_drive_time=trip.total_drive_time_minutes,
        start_location=_location_json(trip.start_location),
        end_location=_location_json(trip.end_location),
        route_points=[
            {
                "lat": p.latitude,
                "lng": p.longitude,
                "timestamp": p.captured_at.isoformat(),
                "speed": p.speed_mph,
            }
            for p in trip.route
        ],
        total_distance=round_currency(trip.total_distance_miles),
        total_cost=round_currency(trip.total_cost_usd),
        cost_per_mile=trip.cost_per_mile_usd,
        degraded_accuracy=trip.degraded_accuracy,
    )


def visit_row(visit: Visit) -> StaffVisit:
    return StaffVisit(
        id=visit.id,
        staff_id=visit.staff_id,
        trip_id=visit.trip_id,
        patient_name=visit.patient_name,
        patient_address=visit.patient_address,
        visit_type=visit.visit_type,
        visit_location=_location_json(visit.visit_location),
        status=visit.status,
        scheduled_time=visit.scheduled_time,
        start_time=visit.started_at,
        end_time=visit.ended_at,
        duration=visit.duration_minutes,
        drive_time_to_visit=visit.drive_time_minutes,
        distance_to_visit=(
            float(round_currency(visit.distance_to_visit_miles))
            if visit.distance_to_visit_miles is not None else None
        ),
        notes=visit.notes,
        cancel_reason=visit.cancel_reason,
    )


def _dead_letter_payload(row: Any) -> Dict[str, Any]:
    payload = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if value is not None and not isinstance(value, (str, int, float, bool, list, dict)):
            value = value.isoformat() if hasattr(value, "isoformat") else str(value)
        payload[column.key] = value
    return payload


class SqlAlchemyPersistenceGateway:
    """
    Persistence gateway backed by an async SQLAlchemy session factory.

    Usage:
        gateway = SqlAlchemyPersistenceGateway(AsyncSessionLocal)
        engine = TrackingEngine(persistence=gateway)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        breaker: Optional[CircuitBreaker] = None,
        max_retries: int = settings.persistence_max_retries,
        retry_base_delay: float = settings.persistence_retry_base_delay,
    ):
        self.session_factory = session_factory
        self.breaker = breaker or CircuitBreaker("persistence", failure_threshold=5, reset_timeout=30)
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    async def save_trip(self, trip: Trip) -> None:
        async def write(db: AsyncSession):
            await db.merge(trip_row(trip))
            if trip.status == TripStatus.ENDED:
                await performance.record_trip(db, trip)

        await self._write("trip", trip.id, write, lambda: trip_row(trip))

    async def save_visit(self, visit: Visit) -> None:
        async def write(db: AsyncSession):
            await db.merge(visit_row(visit))
            if visit.status == VisitStatus.COMPLETED:
                await performance.record_visit(db, visit)

        await self._write("visit", visit.id, write, lambda: visit_row(visit))

    async def _write(self, record_type: str, record_id: str, write, build_row) -> None:
        async def transaction():
            async with self.session_factory() as db:
                async with db.begin():
                    await write(db)

        try:
            await retry_async(
                lambda: self.breaker.call(transaction),
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                description=f"Saving {record_type} {record_id}",
            )
        except Exception as e:
            logger.error(
                "Persisting %s failed, sending to dead letter queue", record_type,
                extra={"record_id": record_id, "error": str(e)}
            )
            await self._dead_letter(record_type, record_id, e, build_row())

    async def _dead_letter(self, record_type: str, record_id: str, error: Exception, row: Any) -> None:
        try:
            async with self.session_factory() as db:
                db.add(DeadLetterQueue(
                    record_type=record_type,
                    record_id=record_id,
                    error_message=f"{type(error).__name__}: {error}",
                    payload=_dead_letter_payload(row),
                    attempts=self.max_retries + 1,
                    status=DLQStatus.FAILED,
                ))
                await db.commit()
        except Exception:
            logger.exception(
                "Dead letter write failed",
                extra={"record_type": record_type, "record_id": record_id}
            )
