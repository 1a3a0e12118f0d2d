import os
from datetime import date

os.environ.setdefault("DATABASE_URL", "sqlite:///./helpdesk-test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENV", "test")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from helpdesk.core.db import get_session
from helpdesk.main import app
from helpdesk.models import Appointment, AppointmentStatus, Service, User, UserRole
from helpdesk.services.audit_service import Actor, AuditRecorder
from helpdesk.services.notification_hub import NotificationHub
from helpdesk.services.schedule_locks import ScheduleLocks
from helpdesk.services.timeslots import end_time_for

DAY = date(2026, 10, 19)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def recorder(session_maker):
    return AuditRecorder(session_maker)


@pytest.fixture
def hub():
    return NotificationHub(heartbeat_interval=0.05, send_timeout=0.1, queue_size=10)


@pytest.fixture
def locks():
    return ScheduleLocks()


@pytest.fixture
def actor():
    return Actor(id="admin-1", name="Admin")


async def _add_user(session, name: str, role: UserRole, email: str) -> User:
    user = User(email=email, name=name, role=role.value, hashed_password="not-a-real-hash")
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def staff(session):
    return await _add_user(session, "Somchai", UserRole.STAFF, "somchai@example.com")


@pytest.fixture
async def other_staff(session):
    return await _add_user(session, "Somying", UserRole.STAFF, "somying@example.com")


@pytest.fixture
async def admin(session):
    return await _add_user(session, "Admin", UserRole.ADMIN, "admin@example.com")


@pytest.fixture
async def customer(session):
    return await _add_user(session, "Customer", UserRole.USER, "customer@example.com")


@pytest.fixture
async def service(session):
    svc = Service(name="Hardware", name_th="ฮาร์ดแวร์", description="Computer hardware issues", duration=30)
    session.add(svc)
    await session.commit()
    return svc


@pytest.fixture
def make_appointment(session, service):
    async def _make(
        start_time: str = "10:00",
        staff_id: str | None = None,
        status: AppointmentStatus = AppointmentStatus.PENDING,
        day: date = DAY,
        duration: int | None = None,
        user_name: str = "Customer",
    ) -> Appointment:
        appointment = Appointment(
            date=day,
            start_time=start_time,
            end_time=end_time_for(start_time, duration or service.duration),
            user_name=user_name,
            user_phone="0800000000",
            description="Laptop will not boot",
            service_id=service.id,
            staff_id=staff_id,
            status=status.value,
        )
        session.add(appointment)
        await session.commit()
        return appointment

    return _make


@pytest.fixture
async def client(session_maker, recorder, hub, locks):
    async def _get_session():
        async with session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    app.state.audit_recorder = recorder
    app.state.notification_hub = hub
    app.state.schedule_locks = locks
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
