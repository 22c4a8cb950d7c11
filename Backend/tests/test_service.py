from datetime import date, time
from decimal import Decimal

import pytest

from dompet.features.bills.exceptions import RuleValidationError, StorageError
from dompet.features.bills.schemas import BillCreate, BillUpdate
from dompet.features.bills.service import BillService
from dompet.features.bills.store import BillInstanceStore
from dompet.features.reminders.schemas import ReminderCreate
from dompet.features.reminders.service import ReminderService
from dompet.features.reminders.store import ReminderStore


@pytest.fixture
def service(provider_factory):
    service = BillService(provider_factory=provider_factory)
    service._get_today = lambda: date(2024, 3, 25)
    return service


@pytest.fixture
def reminders(provider_factory):
    return ReminderService(provider_factory=provider_factory)


def _bill(**overrides):
    values = dict(bill_name="Rent", payer_name="Budi", amount=Decimal("1500000.00"), due_date=date(2024, 3, 15))
    values.update(overrides)
    return BillCreate(**values)


def _reminder(**overrides):
    values = dict(title="Renew passport", reminder_date=date(2024, 5, 1), reminder_time=time(8, 30))
    values.update(overrides)
    return ReminderCreate(**values)


async def test_create_keeps_bill_when_event_id_cannot_be_saved(
    service, db, user_id, calendar_adapter, failing_commits
):
    # The insert commits; linking the new event does not
    failing_commits(after=1)

    bill, sync = await service.create_bill(db, user_id, _bill(sync_to_google_calendar=True))

    assert sync.attempted is True
    assert sync.ok is False
    assert any("event id could not be saved" in w for w in sync.warnings)
    assert calendar_adapter.calls == [("create", "Bill due: Rent")]
    assert bill.google_calendar_event_id is None
    stored = await BillInstanceStore(db).get(bill.id)
    assert stored.due_date == date(2024, 3, 15)


async def test_update_keeps_bill_when_event_id_cannot_be_saved(service, db, user_id, bill_factory, failing_commits):
    bill = await bill_factory(amount=Decimal("100.00"))
    failing_commits(after=1)

    updated, sync = await service.update_bill(
        db, bill.id, user_id, BillUpdate(amount=Decimal("250.00"), sync_to_google_calendar=True)
    )

    assert sync.ok is False
    assert updated.amount == Decimal("250.00")
    assert updated.sync_to_google_calendar is True
    assert updated.google_calendar_event_id is None


async def test_monthly_bill_without_due_date_starts_on_next_occurrence(service, db, user_id):
    bill, _ = await service.create_bill(
        db, user_id, _bill(due_date=None, recurrence_type="monthly", recurrence_day=20)
    )

    assert bill.due_date == date(2024, 4, 20)
    assert bill.next_due_date == date(2024, 5, 20)


async def test_yearly_bill_without_due_date_uses_this_year_when_still_ahead(service, db, user_id):
    bill, _ = await service.create_bill(
        db, user_id, _bill(due_date=None, recurrence_type="yearly", recurrence_day=17, recurrence_month=8)
    )

    assert bill.due_date == date(2024, 8, 17)
    assert bill.recurrence_month == 8


@pytest.mark.parametrize("overrides", [
    dict(recurrence_type="one_time"),
    dict(recurrence_type="custom"),
    dict(recurrence_type="monthly"),
])
async def test_bill_without_derivable_due_date_is_rejected(service, db, user_id, overrides):
    with pytest.raises(RuleValidationError):
        await service.create_bill(db, user_id, _bill(due_date=None, **overrides))

    assert await BillInstanceStore(db).list_for_user(user_id) == []


async def test_reminder_commit_failure_raises_storage_error(reminders, db, user_id, calendar_adapter, failing_commits):
    failing_commits()

    with pytest.raises(StorageError) as exc:
        await reminders.create_reminder(db, user_id, _reminder(sync_to_google_calendar=True))

    assert exc.value.error_kind == "storage"
    assert calendar_adapter.calls == []
    assert await ReminderStore(db).list_for_user(user_id) == []


async def test_reminder_sync_all_reports_unsaved_event_ids(reminders, db, user_id, failing_commits):
    first, _ = await reminders.create_reminder(db, user_id, _reminder(title="Passport"))
    second, _ = await reminders.create_reminder(db, user_id, _reminder(title="Visa"))
    for reminder in (first, second):
        reminder.sync_to_google_calendar = True
    await db.commit()
    failing_commits()

    results = await reminders.sync_all(db, user_id)

    assert {r.id for r in results} == {first.id, second.id}
    assert all(r.success is False for r in results)
    assert all("event id could not be saved" in r.error for r in results)
