import logging
from uuid import UUID
from datetime import date, datetime, timedelta
import zoneinfo
from typing import Callable, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from dompet.core.config import get_settings
from dompet.features.bills.models import Bill
from dompet.features.bills.exceptions import RuleValidationError
from dompet.features.bills.recurrence import (
    DateOverflow,
    RecurrenceType,
    compute_initial_due_date,
    compute_next_due_date,
    rule_from_fields,
)
from dompet.features.bills.generator import RecurringBillGenerator
from dompet.features.bills.rollover import PaymentRollover, RolloverResult
from dompet.features.bills.schemas import BillCreate, BillUpdate, GenerationResult
from dompet.features.bills.store import BillInstanceStore
from dompet.features.calendar.adapter import AdapterProvider, google_adapter_provider
from dompet.features.calendar.schemas import SyncReport
from dompet.features.calendar.service import CalendarSyncService, bill_event_spec, link_event

settings = get_settings()
logger = logging.getLogger(__name__)


class BillService:
    def __init__(self, provider_factory: Callable[[AsyncSession], AdapterProvider] = google_adapter_provider):
        self._tz = zoneinfo.ZoneInfo(settings.APP_TIMEZONE)
        self._provider_factory = provider_factory
        self.overflow = DateOverflow(settings.RECURRENCE_DATE_OVERFLOW)

    def _get_today(self) -> date:
        """Get current date in the configured timezone."""
        return datetime.now(self._tz).date()

    def calendar_for(self, db: AsyncSession) -> CalendarSyncService:
        return CalendarSyncService(self._provider_factory(db))

    def _apply_recurrence(self, data: dict):
        """
        Default missing day/month from the due date (or a missing monthly/yearly
        due date from the rule), validate the rule and cache the next due date.
        Raises RuleValidationError.
        """
        kind = data.get("recurrence_type") or RecurrenceType.ONE_TIME
        kind = RecurrenceType(kind)
        due_date = data.get("due_date")
        if due_date is None:
            rule = rule_from_fields(kind.value, data.get("recurrence_day"), data.get("recurrence_month"))
            due_date = compute_initial_due_date(rule, self._get_today(), self.overflow)
            if due_date is None:
                raise RuleValidationError(f"A due date is required for {kind.value} bills")
            data["due_date"] = due_date
        if kind in (RecurrenceType.MONTHLY, RecurrenceType.YEARLY) and not data.get("recurrence_day"):
            data["recurrence_day"] = due_date.day
        if kind == RecurrenceType.YEARLY and not data.get("recurrence_month"):
            data["recurrence_month"] = due_date.month

        rule = rule_from_fields(kind.value, data.get("recurrence_day"), data.get("recurrence_month"))
        data["recurrence_type"] = kind.value
        data["next_due_date"] = compute_next_due_date(due_date, rule, self.overflow)

    async def create_bill(
        self,
        db: AsyncSession,
        user_id: UUID,
        bill_data: BillCreate
    ) -> Tuple[Bill, SyncReport]:
        """Create a bill (one-time, recurring instance or template)."""
        data = bill_data.model_dump()
        self._apply_recurrence(data)

        store = BillInstanceStore(db)
        bill = await store.insert(Bill(user_id=user_id, **data))
        logger.info(f"Created bill '{bill.bill_name}' for user {user_id}")

        sync = SyncReport()
        # Templates are never paid, so they get no calendar event of their own
        if bill.sync_to_google_calendar and not bill.is_template:
            sync = await self.calendar_for(db).create(user_id, bill_event_spec(bill))
            if sync.event_id:
                sync = sync.merge(await link_event(store, bill, sync.event_id))
        return bill, sync

    async def get_user_bills(
        self,
        db: AsyncSession,
        user_id: UUID,
        category: Optional[str] = None,
        status: Optional[str] = None,
        is_template: Optional[bool] = None
    ) -> List[Bill]:
        return await BillInstanceStore(db).list_for_user(user_id, category, status, is_template)

    async def get_bill_by_id(
        self,
        db: AsyncSession,
        bill_id: UUID,
        user_id: UUID
    ) -> Optional[Bill]:
        return await BillInstanceStore(db).get(bill_id, user_id)

    async def update_bill(
        self,
        db: AsyncSession,
        bill_id: UUID,
        user_id: UUID,
        bill_data: BillUpdate
    ) -> Optional[Tuple[Bill, SyncReport]]:
        """Update a bill and bring its calendar event in line with the new state."""
        store = BillInstanceStore(db)
        bill = await store.get(bill_id, user_id)
        if not bill:
            return None

        update_data = bill_data.model_dump(exclude_unset=True)
        merged = {
            "due_date": update_data.get("due_date") or bill.due_date,
            "recurrence_type": update_data.get("recurrence_type") or bill.recurrence_type,
            "recurrence_day": update_data.get("recurrence_day", bill.recurrence_day),
            "recurrence_month": update_data.get("recurrence_month", bill.recurrence_month),
        }
        self._apply_recurrence(merged)
        update_data.update(merged)

        for field, value in update_data.items():
            setattr(bill, field, value)
        bill = await store.update(bill)
        logger.info(f"Updated bill {bill_id}")

        calendar = self.calendar_for(db)
        sync = SyncReport()
        if bill.sync_to_google_calendar and not bill.is_template:
            if bill.google_calendar_event_id:
                sync = await calendar.update(user_id, bill.google_calendar_event_id, bill_event_spec(bill))
            else:
                sync = await calendar.create(user_id, bill_event_spec(bill))
                if sync.event_id:
                    sync = sync.merge(await link_event(store, bill, sync.event_id))
        elif bill.google_calendar_event_id:
            # Sync switched off (or bill became a template): drop the event
            sync = await calendar.delete(user_id, bill.google_calendar_event_id)
            if sync.ok:
                sync = sync.merge(await link_event(store, bill, None))
        return bill, sync

    async def delete_bill(
        self,
        db: AsyncSession,
        bill_id: UUID,
        user_id: UUID
    ) -> Optional[SyncReport]:
        """Delete a bill, then its calendar event best-effort."""
        store = BillInstanceStore(db)
        bill = await store.get(bill_id, user_id)
        if not bill:
            return None

        event_id = bill.google_calendar_event_id
        await store.delete(bill)
        logger.info(f"Deleted bill {bill_id}")

        if event_id:
            return await self.calendar_for(db).delete(user_id, event_id)
        return SyncReport()

    async def mark_paid(
        self,
        db: AsyncSession,
        bill_id: UUID,
        user_id: UUID
    ) -> Optional[RolloverResult]:
        """Pay a bill: one-time bills disappear, recurring ones roll to their next due date."""
        store = BillInstanceStore(db)
        bill = await store.get(bill_id, user_id)
        if not bill:
            return None

        rollover = PaymentRollover(store, self.calendar_for(db), self.overflow)
        return await rollover.mark_paid(bill)

    async def run_generation(
        self,
        db: AsyncSession,
        now: Optional[date] = None,
        user_id: Optional[UUID] = None,
        horizon_days: Optional[int] = None
    ) -> GenerationResult:
        """Materialize upcoming instances for all active templates (or one user's)."""
        today = now or self._get_today()
        horizon = horizon_days if horizon_days is not None else settings.GENERATION_HORIZON_DAYS

        store = BillInstanceStore(db)
        templates = await store.list_active_templates(user_id)
        logger.info(f"Found {len(templates)} template bills")

        generator = RecurringBillGenerator(store, self.overflow)
        result = await generator.generate(templates, horizon_days=horizon, now=today)

        failed = [r for r in result.per_template_results if r.status == "failed"]
        logger.info(f"Total bills generated: {result.generated_count} ({len(failed)} template(s) failed)")
        return result

    async def get_upcoming_bills(
        self,
        db: AsyncSession,
        user_id: UUID,
        days_ahead: int = 30
    ) -> List[Bill]:
        """Get unpaid bills due within the next X days (overdue ones included)."""
        threshold_date = self._get_today() + timedelta(days=days_ahead)
        return await BillInstanceStore(db).list_due_until(user_id, threshold_date)


def get_bill_service() -> BillService:
    return BillService()
