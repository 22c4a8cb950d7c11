import logging
from dataclasses import dataclass, field
from typing import Optional

from dompet.features.bills.exceptions import InvalidRecurrenceError, RuleValidationError
from dompet.features.bills.models import Bill
from dompet.features.bills.recurrence import DateOverflow, OneTimeRule, compute_next_due_date
from dompet.features.bills.store import BillInstanceStore
from dompet.features.calendar.schemas import SyncReport
from dompet.features.calendar.service import CalendarSyncService, bill_event_spec, link_event

logger = logging.getLogger(__name__)

# Columns a successor does not inherit from the paid instance
NON_INHERITED = {"id", "due_date", "next_due_date", "google_calendar_event_id", "created_at", "updated_at"}


@dataclass
class RolloverResult:
    deleted: bool
    next_instance: Optional[Bill] = None
    sync: SyncReport = field(default_factory=SyncReport)

    @property
    def sync_warning(self) -> bool:
        return not self.sync.ok


class PaymentRollover:
    """
    Retires a paid bill instance and, for recurring bills, replaces it with
    the next occurrence.

    When the next occurrence already exists (the generator runs ahead), the
    paid instance is only deleted and the existing row becomes the successor.

    Two phases: the database swap commits first (delete + insert in one
    transaction, failures raise StorageError); the calendar is told
    afterwards, and its failures only show up as warnings on the result.
    """

    def __init__(
        self,
        store: BillInstanceStore,
        calendar: CalendarSyncService,
        overflow: DateOverflow = DateOverflow.ROLLOVER
    ):
        self.store = store
        self.calendar = calendar
        self.overflow = overflow

    def _successor(self, instance: Bill, next_date) -> Bill:
        values = {
            column.key: getattr(instance, column.key)
            for column in Bill.__table__.columns
            if column.key not in NON_INHERITED
        }
        return Bill(
            **values,
            due_date=next_date,
            next_due_date=compute_next_due_date(next_date, instance.recurrence_rule, self.overflow),
        )

    async def mark_paid(self, instance: Bill) -> RolloverResult:
        if instance.is_template:
            raise RuleValidationError("Bill templates cannot be paid; pay one of their instances instead")

        rule = instance.recurrence_rule
        user_id = instance.user_id
        bill_name = instance.bill_name
        old_event_id = instance.google_calendar_event_id
        sync_enabled = instance.sync_to_google_calendar

        if isinstance(rule, OneTimeRule):
            await self.store.delete(instance)
            logger.info(f"[Rollover:{user_id}] Paid one-time bill '{bill_name}' removed")
            sync = SyncReport()
            if old_event_id:
                sync = await self.calendar.delete(user_id, old_event_id)
            return RolloverResult(deleted=True, next_instance=None, sync=sync)

        next_date = compute_next_due_date(instance.due_date, rule, self.overflow)
        if next_date is None:
            raise InvalidRecurrenceError(
                f"Recurrence type '{instance.recurrence_type}' has no next occurrence; cannot roll '{bill_name}' over"
            )

        # The generator may already have materialized the next occurrence
        successor = await self.store.find_for_date(bill_name, user_id, next_date)
        if successor is not None:
            await self.store.delete(instance)
            logger.info(f"[Rollover:{user_id}] '{bill_name}' paid; next instance on {next_date} already exists")
        else:
            successor = self._successor(instance, next_date)
            await self.store.replace(instance, successor)
            logger.info(f"[Rollover:{user_id}] '{bill_name}' rolled over to {next_date}")

        # Committed. Everything below is best-effort.
        sync = SyncReport()
        if old_event_id:
            sync = sync.merge(await self.calendar.delete(user_id, old_event_id))
        if sync_enabled and not successor.google_calendar_event_id:
            created = await self.calendar.create(user_id, bill_event_spec(successor))
            sync = sync.merge(created)
            if created.event_id:
                sync = sync.merge(await link_event(self.store, successor, created.event_id))

        return RolloverResult(deleted=True, next_instance=successor, sync=sync)
