import os

# Keep tests off the real database, the log directory and the cron scheduler
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("RECURRENCE_DATE_OVERFLOW", "rollover")

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dompet.core.database import Base
from dompet.features.bills.exceptions import SyncError
from dompet.features.bills.models import Bill
from dompet.features.calendar.adapter import CalendarSyncAdapter
from dompet.features.calendar.models import CalendarConnection  # noqa: F401
from dompet.features.calendar.service import CalendarSyncService
from dompet.features.reminders.models import Reminder  # noqa: F401


class FakeCalendarAdapter(CalendarSyncAdapter):
    """In-memory calendar that records every call."""

    def __init__(self):
        self.events = {}
        self.calls = []
        self.fail_on = set()
        self._counter = 0

    async def create_event(self, spec):
        self.calls.append(("create", spec.title))
        if "create" in self.fail_on:
            raise SyncError("calendar unavailable")
        self._counter += 1
        event_id = f"evt-{self._counter}"
        self.events[event_id] = spec
        return event_id

    async def update_event(self, event_id, spec):
        self.calls.append(("update", event_id))
        if "update" in self.fail_on:
            raise SyncError("calendar unavailable")
        self.events[event_id] = spec

    async def delete_event(self, event_id):
        self.calls.append(("delete", event_id))
        if "delete" in self.fail_on:
            raise SyncError("calendar unavailable")
        self.events.pop(event_id, None)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def failing_commits(db, monkeypatch):
    """Let ``after`` more commits through on the test session, then fail every one."""
    def arm(after=0):
        real_commit = db.commit
        remaining = [after]

        async def commit():
            if remaining[0] <= 0:
                raise OperationalError("COMMIT", {}, Exception("database is locked"))
            remaining[0] -= 1
            await real_commit()

        monkeypatch.setattr(db, "commit", commit)

    return arm


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def calendar_adapter():
    return FakeCalendarAdapter()


@pytest.fixture
def provider_factory(calendar_adapter):
    """Stands in for google_adapter_provider: every user is connected to the fake calendar."""
    async def provide(user_id):
        return calendar_adapter

    return lambda db: provide


@pytest.fixture
def calendar(provider_factory):
    return CalendarSyncService(provider_factory(None))


@pytest.fixture
def bill_factory(db, user_id):
    async def make(**overrides):
        values = dict(
            user_id=user_id,
            bill_name="Rent",
            payer_name="Budi",
            destination_account="BCA 1234",
            amount=Decimal("1500000.00"),
            due_date=date(2024, 3, 15),
            category="my_bills",
            status="active",
            recurrence_type="one_time",
            is_template=False,
            sync_to_google_calendar=False,
        )
        values.update(overrides)
        bill = Bill(**values)
        db.add(bill)
        await db.commit()
        await db.refresh(bill)
        return bill

    return make
