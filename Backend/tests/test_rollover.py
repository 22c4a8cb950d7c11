from datetime import date

import pytest

from dompet.features.bills.exceptions import InvalidRecurrenceError, RuleValidationError, StorageError
from dompet.features.bills.generator import RecurringBillGenerator
from dompet.features.bills.recurrence import DateOverflow
from dompet.features.bills.rollover import PaymentRollover
from dompet.features.bills.store import BillInstanceStore


@pytest.fixture
def store(db):
    return BillInstanceStore(db)


@pytest.fixture
def rollover(store, calendar):
    return PaymentRollover(store, calendar, DateOverflow.ROLLOVER)


async def test_one_time_bill_is_deleted(rollover, store, bill_factory):
    bill = await bill_factory()
    bill_id = bill.id

    result = await rollover.mark_paid(bill)

    assert result.deleted is True
    assert result.next_instance is None
    assert result.sync_warning is False
    assert await store.get(bill_id) is None


async def test_one_time_bill_event_is_removed(rollover, bill_factory, calendar_adapter):
    calendar_adapter.events["evt-old"] = object()
    bill = await bill_factory(sync_to_google_calendar=True, google_calendar_event_id="evt-old")

    result = await rollover.mark_paid(bill)

    assert result.sync.attempted is True
    assert ("delete", "evt-old") in calendar_adapter.calls
    assert "evt-old" not in calendar_adapter.events


async def test_monthly_bill_rolls_to_next_month(rollover, store, bill_factory):
    bill = await bill_factory(
        due_date=date(2024, 3, 15),
        recurrence_type="monthly",
        recurrence_day=15,
        next_due_date=date(2024, 4, 15),
    )
    old_id = bill.id

    result = await rollover.mark_paid(bill)

    assert result.deleted is True
    successor = result.next_instance
    assert successor.id != old_id
    assert successor.due_date == date(2024, 4, 15)
    assert successor.next_due_date == date(2024, 5, 15)
    assert successor.bill_name == "Rent"
    assert successor.payer_name == "Budi"
    assert successor.recurrence_type == "monthly"
    assert successor.is_template is False
    assert await store.get(old_id) is None
    assert (await store.get(successor.id)).due_date == date(2024, 4, 15)


async def test_month_end_rollover_follows_overflow_policy(store, calendar, bill_factory):
    rolled = await bill_factory(
        bill_name="Card", due_date=date(2024, 1, 31), recurrence_type="monthly", recurrence_day=31
    )
    clamped = await bill_factory(
        bill_name="Loan", due_date=date(2024, 1, 31), recurrence_type="monthly", recurrence_day=31
    )

    rolled_result = await PaymentRollover(store, calendar, DateOverflow.ROLLOVER).mark_paid(rolled)
    clamped_result = await PaymentRollover(store, calendar, DateOverflow.CLAMP).mark_paid(clamped)

    assert rolled_result.next_instance.due_date == date(2024, 3, 2)
    assert clamped_result.next_instance.due_date == date(2024, 2, 29)


async def test_yearly_bill_rolls_to_next_year(rollover, bill_factory):
    bill = await bill_factory(
        due_date=date(2024, 8, 17),
        recurrence_type="yearly",
        recurrence_day=17,
        recurrence_month=8,
    )

    result = await rollover.mark_paid(bill)

    assert result.next_instance.due_date == date(2025, 8, 17)
    assert result.next_instance.next_due_date == date(2026, 8, 17)


async def test_custom_rule_cannot_roll_over(rollover, store, bill_factory, calendar_adapter):
    bill = await bill_factory(recurrence_type="custom", google_calendar_event_id="evt-keep")
    bill_id = bill.id

    with pytest.raises(InvalidRecurrenceError) as exc:
        await rollover.mark_paid(bill)

    assert exc.value.error_kind == "recurrence"
    assert await store.get(bill_id) is not None
    assert calendar_adapter.calls == []


async def test_template_cannot_be_paid(rollover, store, bill_factory):
    template = await bill_factory(is_template=True, recurrence_type="monthly", recurrence_day=15)

    with pytest.raises(RuleValidationError):
        await rollover.mark_paid(template)

    assert await store.get(template.id) is not None


async def test_synced_bill_moves_its_calendar_event(rollover, store, bill_factory, calendar_adapter):
    calendar_adapter.events["evt-old"] = object()
    bill = await bill_factory(
        recurrence_type="monthly",
        recurrence_day=15,
        sync_to_google_calendar=True,
        google_calendar_event_id="evt-old",
    )

    result = await rollover.mark_paid(bill)

    assert result.sync_warning is False
    assert result.sync.event_id == "evt-1"
    assert result.next_instance.google_calendar_event_id == "evt-1"
    assert calendar_adapter.calls == [("delete", "evt-old"), ("create", "Bill due: Rent")]
    assert calendar_adapter.events["evt-1"].date == date(2024, 4, 15)
    assert (await store.get(result.next_instance.id)).google_calendar_event_id == "evt-1"


async def test_calendar_failure_keeps_database_rollover(rollover, store, bill_factory, calendar_adapter):
    calendar_adapter.fail_on.add("create")
    bill = await bill_factory(recurrence_type="monthly", recurrence_day=15, sync_to_google_calendar=True)
    old_id = bill.id

    result = await rollover.mark_paid(bill)

    assert result.deleted is True
    assert result.sync_warning is True
    assert result.sync.warnings
    assert await store.get(old_id) is None
    persisted = await store.get(result.next_instance.id)
    assert persisted.due_date == date(2024, 4, 15)
    assert persisted.google_calendar_event_id is None


async def test_unsynced_bill_gets_no_event(rollover, bill_factory, calendar_adapter):
    bill = await bill_factory(recurrence_type="monthly", recurrence_day=15)

    result = await rollover.mark_paid(bill)

    assert result.sync.attempted is False
    assert calendar_adapter.calls == []


async def test_paying_generated_instance_reuses_existing_successor(rollover, store, bill_factory, user_id, calendar_adapter):
    await bill_factory(
        bill_name="Internet",
        due_date=date(2024, 3, 10),
        recurrence_type="monthly",
        recurrence_day=10,
        is_template=True,
    )
    await RecurringBillGenerator(store).generate(
        await store.list_active_templates(), horizon_days=90, now=date(2024, 3, 1)
    )
    earliest, following, _ = await store.list_for_user(user_id, is_template=False)
    following_id = following.id

    result = await rollover.mark_paid(earliest)

    assert result.deleted is True
    assert result.next_instance.id == following_id
    due_dates = [b.due_date for b in await store.list_for_user(user_id, is_template=False)]
    assert due_dates == [date(2024, 4, 10), date(2024, 5, 10)]
    assert len(due_dates) == len(set(due_dates))
    assert calendar_adapter.calls == []


async def test_existing_linked_successor_gets_no_second_event(rollover, store, bill_factory, user_id, calendar_adapter):
    calendar_adapter.events["evt-old"] = object()
    calendar_adapter.events["evt-next"] = object()
    paid = await bill_factory(
        recurrence_type="monthly",
        recurrence_day=15,
        sync_to_google_calendar=True,
        google_calendar_event_id="evt-old",
    )
    existing = await bill_factory(
        due_date=date(2024, 4, 15),
        recurrence_type="monthly",
        recurrence_day=15,
        sync_to_google_calendar=True,
        google_calendar_event_id="evt-next",
    )

    result = await rollover.mark_paid(paid)

    assert result.next_instance.id == existing.id
    assert result.next_instance.google_calendar_event_id == "evt-next"
    assert result.sync_warning is False
    assert calendar_adapter.calls == [("delete", "evt-old")]
    assert "evt-next" in calendar_adapter.events
    assert len(await store.list_for_user(user_id)) == 1


async def test_existing_unlinked_successor_gets_linked(rollover, store, bill_factory, calendar_adapter):
    paid = await bill_factory(recurrence_type="monthly", recurrence_day=15, sync_to_google_calendar=True)
    existing = await bill_factory(due_date=date(2024, 4, 15), recurrence_type="monthly", recurrence_day=15)

    result = await rollover.mark_paid(paid)

    assert result.next_instance.id == existing.id
    assert calendar_adapter.calls == [("create", "Bill due: Rent")]
    assert (await store.get(existing.id)).google_calendar_event_id == "evt-1"


async def test_failed_rollover_commit_is_fatal_and_skips_calendar(
    rollover, store, bill_factory, user_id, calendar_adapter, failing_commits
):
    calendar_adapter.events["evt-old"] = object()
    bill = await bill_factory(
        recurrence_type="monthly",
        recurrence_day=15,
        sync_to_google_calendar=True,
        google_calendar_event_id="evt-old",
    )
    bill_id = bill.id
    failing_commits()

    with pytest.raises(StorageError) as exc:
        await rollover.mark_paid(bill)

    assert exc.value.error_kind == "storage"
    assert calendar_adapter.calls == []
    assert "evt-old" in calendar_adapter.events
    remaining = await store.list_for_user(user_id)
    assert [b.id for b in remaining] == [bill_id]
    assert remaining[0].due_date == date(2024, 3, 15)


async def test_failed_one_time_delete_is_fatal_and_skips_calendar(
    rollover, store, bill_factory, calendar_adapter, failing_commits
):
    calendar_adapter.events["evt-old"] = object()
    bill = await bill_factory(sync_to_google_calendar=True, google_calendar_event_id="evt-old")
    bill_id = bill.id
    failing_commits()

    with pytest.raises(StorageError):
        await rollover.mark_paid(bill)

    assert calendar_adapter.calls == []
    assert await store.get(bill_id) is not None


async def test_unsaved_event_id_is_a_sync_warning(rollover, store, bill_factory, calendar_adapter, failing_commits):
    bill = await bill_factory(recurrence_type="monthly", recurrence_day=15, sync_to_google_calendar=True)
    old_id = bill.id
    # The swap commits; linking the new event does not
    failing_commits(after=1)

    result = await rollover.mark_paid(bill)

    assert result.deleted is True
    assert result.sync_warning is True
    assert any("event id could not be saved" in w for w in result.sync.warnings)
    assert result.next_instance.google_calendar_event_id is None
    assert await store.get(old_id) is None
    assert (await store.get(result.next_instance.id)).due_date == date(2024, 4, 15)
