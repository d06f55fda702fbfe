"""
Staff performance stats service.

Rolls finished trips and completed visits into the daily
staff_performance_stats row.
"""

from datetime import date
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from fieldtrack.app.domain.tracking.cost import round_currency
from fieldtrack.app.domain.tracking.models import Trip, Visit
from fieldtrack.app.models.performance_stat import StaffPerformanceStat


async def get_or_create_daily_stat(
    db: AsyncSession,
    staff_id: str,
    day: date
) -> StaffPerformanceStat:
    """
    Get the stats row for a staff member and day, creating it if missing.

    The row is locked for the rest of the transaction so concurrent roll-ups
    for the same day cannot overwrite each other. Two first writers racing to
    insert hit the unique constraint and the loser is retried by the gateway.

    Args:
        db: Database session
        staff_id: Staff member
        day: Calendar day (UTC)

    Returns:
        StaffPerformanceStat (new rows are added to the session, not flushed)
    """
    result = await db.execute(
        select(StaffPerformanceStat).where(
            StaffPerformanceStat.staff_id == staff_id,
            StaffPerformanceStat.date == day
        ).with_for_update()
    )
    stat = result.scalar_one_or_none()

    if stat is None:
        stat = StaffPerformanceStat(
            staff_id=staff_id,
            date=day,
            total_drive_time=0,
            total_miles=Decimal("0"),
            total_cost=Decimal("0"),
            total_visits=0,
            total_visit_time=0
        )
        db.add(stat)

    return stat


def efficiency_score(total_visit_time: int, total_drive_time: int) -> int:
    """Share of working time spent with patients, 0-100. 100 when there was no driving."""
    if not total_drive_time:
        return 100
    share = total_visit_time / (total_visit_time + total_drive_time)
    return min(100, int(share * 100 + 0.5))


async def record_trip(db: AsyncSession, trip: Trip) -> StaffPerformanceStat:
    """
    Add an ended trip's drive time, miles and cost to the day's stats.

    Total cost is recomputed from total miles at the trip's rate, so the
    latest rate applies to the whole day.
    """
    stat = await get_or_create_daily_stat(db, trip.staff_id, trip.ended_at.date())

    rate = Decimal(str(trip.cost_per_mile_usd))
    miles = Decimal(stat.total_miles or 0) + round_currency(trip.total_distance_miles)

    stat.total_drive_time = (stat.total_drive_time or 0) + (trip.total_drive_time_minutes or 0)
    stat.total_miles = miles
    stat.total_cost = round_currency(float(miles * rate))
    stat.cost_per_mile = rate

    return stat


async def record_visit(db: AsyncSession, visit: Visit) -> StaffPerformanceStat:
    """Add a completed visit to the day's visit count, visit time and efficiency score."""
    stat = await get_or_create_daily_stat(db, visit.staff_id, visit.ended_at.date())

    total_visits = (stat.total_visits or 0) + 1
    total_visit_time = (stat.total_visit_time or 0) + (visit.duration_minutes or 0)

    stat.total_visits = total_visits
    stat.total_visit_time = total_visit_time
    stat.avg_visit_duration = round(total_visit_time / total_visits, 2)
    stat.efficiency_score = efficiency_score(total_visit_time, stat.total_drive_time or 0)

    return stat
