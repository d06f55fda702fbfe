"""
Per-staff reimbursement rate lookup.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from fieldtrack.app.models.staff_member import StaffMember


class StaffRateProvider:
    """
    Reads staff_members.cost_per_mile.

    Returns None for unknown staff or staff without a rate; the engine then
    falls back to the configured default.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_cost_per_mile(self, staff_id: str) -> Optional[float]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(StaffMember.cost_per_mile).where(StaffMember.id == staff_id)
            )
            rate = result.scalar_one_or_none()

        return float(rate) if rate is not None else None
