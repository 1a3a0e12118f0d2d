import asyncio
import zlib
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ScheduleLocks:
    """Serializes check-then-commit decisions per (staff, day) and per appointment.

    Holders must commit before leaving the block. On PostgreSQL a transaction-scoped
    advisory lock on the (staff, day) key extends the guarantee across worker
    processes; appointment holders take a row lock themselves.

    When both are needed the appointment lock is taken first. Entries live only
    while someone holds or waits on them.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}

    @asynccontextmanager
    async def _held(self, key: Hashable) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @staticmethod
    def advisory_key(staff_id: str, day: date) -> int:
        # pg_advisory_xact_lock takes a signed bigint
        return zlib.crc32(f"{staff_id}:{day.isoformat()}".encode()) - 2**31

    @asynccontextmanager
    async def hold(self, session: AsyncSession, staff_id: str, day: date) -> AsyncIterator[None]:
        async with self._held(("staff", staff_id, day)):
            bind = session.get_bind()
            if bind.dialect.name == "postgresql":
                await session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"),
                    {"key": self.advisory_key(staff_id, day)},
                )
            yield

    @asynccontextmanager
    async def hold_appointment(self, appointment_id: str) -> AsyncIterator[None]:
        async with self._held(("appointment", appointment_id)):
            yield

    def __len__(self) -> int:
        return len(self._entries)
