"""Load development data: an admin, two staff members, the service catalogue and
a day of sample unavailability.

Safe to run repeatedly; existing rows are left as they are.

    python -m helpdesk.seed [--create-tables]
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.config import settings
from helpdesk.core.db import async_session_maker, init_db, persist
from helpdesk.models.service import Service
from helpdesk.models.staff_availability import StaffAvailability
from helpdesk.models.user import User, UserCreate, UserRole
from helpdesk.services.auth_service import create_user, get_user_by_email

logger = logging.getLogger(__name__)

STAFF_ACCOUNTS = [
    ("staff1@helpdesk.example.com", "สมชาย ช่วยเหลือ"),
    ("staff2@helpdesk.example.com", "สมหญิง บริการ"),
]

SERVICES = [
    ("Hardware", "ฮาร์ดแวร์", "Computer hardware issues", 30),
    ("Software", "ซอฟต์แวร์", "Software installation and issues", 30),
    ("Network", "เครือข่าย", "Network and internet issues", 45),
    ("Account", "บัญชีผู้ใช้", "Account and password issues", 15),
]

# Recurring daily blocks for every staff member
SAMPLE_WINDOWS = [
    ("12:00", "13:00", "Lunch break"),
    ("14:00", "15:00", "Team meeting"),
]


@dataclass
class SeedSummary:
    users: int = 0
    services: int = 0
    unavailability: int = 0


async def _ensure_user(session: AsyncSession, data: UserCreate, summary: SeedSummary) -> User:
    user = await get_user_by_email(session, data.email)
    if user is None:
        user = await create_user(session, data)
        summary.users += 1
    return user


async def seed(session: AsyncSession, today: date | None = None) -> SeedSummary:
    today = today or date.today()
    summary = SeedSummary()

    await _ensure_user(
        session,
        UserCreate(
            email=settings.seed_admin_email,
            password=settings.seed_admin_password,
            name="ผู้ดูแลระบบ",
            role=UserRole.ADMIN,
        ),
        summary,
    )
    staff = [
        await _ensure_user(
            session,
            UserCreate(email=email, password=settings.seed_staff_password, name=name, role=UserRole.STAFF),
            summary,
        )
        for email, name in STAFF_ACCOUNTS
    ]

    result = await session.execute(select(Service.name))
    existing = set(result.scalars().all())
    for name, name_th, description, duration in SERVICES:
        if name not in existing:
            session.add(Service(name=name, name_th=name_th, description=description, duration=duration))
            summary.services += 1

    for member in staff:
        result = await session.execute(
            select(StaffAvailability.reason).where(
                StaffAvailability.staff_id == member.id,
                StaffAvailability.date == today,
            )
        )
        reasons = set(result.scalars().all())
        for start_time, end_time, reason in SAMPLE_WINDOWS:
            if reason in reasons:
                continue
            session.add(
                StaffAvailability(
                    staff_id=member.id,
                    date=today,
                    start_time=start_time,
                    end_time=end_time,
                    reason=reason,
                    recurring=True,
                )
            )
            summary.unavailability += 1

    await persist(session)
    logger.info(
        "Seeded %d users, %d services, %d unavailability windows",
        summary.users, summary.services, summary.unavailability,
    )
    return summary


async def run(create_tables: bool = False) -> SeedSummary:
    if create_tables:
        await init_db()
    async with async_session_maker() as session:
        return await seed(session)


def main() -> None:
    parser = argparse.ArgumentParser(description="Load development accounts, services and sample unavailability")
    parser.add_argument("--create-tables", action="store_true", help="create tables first instead of running Alembic")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    try:
        asyncio.run(run(create_tables=args.create_tables))
    except Exception as e:
        logger.error("Seeding failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
