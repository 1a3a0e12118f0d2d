from sqlalchemy import func, select

from helpdesk import seed as seed_module
from helpdesk.core.config import settings
from helpdesk.models import Service, StaffAvailability, User
from helpdesk.seed import seed

from tests.conftest import DAY

API = "/api/v1"


async def _count(session, model):
    return await session.scalar(select(func.count()).select_from(model))


async def test_seed_is_idempotent(session):
    first = await seed(session, today=DAY)
    second = await seed(session, today=DAY)

    assert (first.users, first.services, first.unavailability) == (3, 4, 4)
    assert (second.users, second.services, second.unavailability) == (0, 0, 0)
    assert await _count(session, User) == 3
    assert await _count(session, Service) == 4
    assert await _count(session, StaffAvailability) == 4


async def test_seed_keeps_existing_services(session, service):
    summary = await seed(session, today=DAY)

    assert summary.services == 3
    names = (await session.execute(select(Service.name).order_by(Service.name))).scalars().all()
    assert names == ["Account", "Hardware", "Network", "Software"]


async def test_run_uses_the_app_session_factory(session_maker, client, monkeypatch):
    monkeypatch.setattr(seed_module, "async_session_maker", session_maker)

    summary = await seed_module.run()

    assert summary.users == 3
    resp = await client.post(
        f"{API}/auth/login",
        json={"email": settings.seed_admin_email, "password": settings.seed_admin_password},
    )
    assert resp.status_code == 200
    staff = (await client.get(f"{API}/staff")).json()
    assert sorted(s["role"] for s in staff) == ["ADMIN", "STAFF", "STAFF"]
    windows = (await client.get(f"{API}/staff-availability")).json()
    assert {w["reason"] for w in windows} == {"Lunch break", "Team meeting"}
