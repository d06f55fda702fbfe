"""
Database seeding script for staff reimbursement rates.

Creates a few staff members with per-mile rates for local development.
Staff without a row here are reimbursed at the configured default rate.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fieldtrack.app.db.session import AsyncSessionLocal, create_tables
from fieldtrack.app.models.staff_member import StaffMember
from sqlalchemy import select

SEED_STAFF = [
    ("nurse-001", "Avery Quinn", "Home Health", Decimal("0.670")),
    ("nurse-002", "Jordan Lee", "Home Health", Decimal("0.700")),
    ("therapist-001", "Riley Park", "Physical Therapy", Decimal("0.625")),
    ("aide-001", "Casey Morgan", "Personal Care", None),
]


async def seed_staff():
    """
    Seed staff members.

    Existing rows are left untouched, so the script can be re-run safely.
    """
    await create_tables()

    async with AsyncSessionLocal() as db:
        print("🌱 Starting staff seeding...")

        result = await db.execute(select(StaffMember.id))
        existing = set(result.scalars().all())

        for staff_id, name, department, rate in SEED_STAFF:
            if staff_id in existing:
                print(f"ℹ️  {staff_id} already exists, skipping")
                continue
            db.add(StaffMember(id=staff_id, name=name, department=department, cost_per_mile=rate))
            shown_rate = f"${rate}/mile" if rate is not None else "default rate"
            print(f"✅ Created {staff_id} ({name}, {shown_rate})")

        await db.commit()

    print("\n🎉 Staff seeding completed!")


if __name__ == "__main__":
    asyncio.run(seed_staff())
