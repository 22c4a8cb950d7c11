import logging
from datetime import time
from typing import Dict, Optional
from uuid import UUID

from dompet.core.config import get_settings
from dompet.features.bills.exceptions import StorageError
from dompet.features.calendar.adapter import AdapterProvider, CalendarSyncAdapter
from dompet.features.calendar.schemas import EventSpec, SyncReport

settings = get_settings()
logger = logging.getLogger(__name__)


def _default_event_time() -> time:
    return time.fromisoformat(settings.CALENDAR_DEFAULT_EVENT_TIME)


def bill_event_spec(bill) -> EventSpec:
    lines = [
        f"Payer: {bill.payer_name}",
        f"Amount: {bill.amount:,.2f}",
    ]
    if bill.destination_account:
        lines.append(f"Destination account: {bill.destination_account}")
    return EventSpec(
        title=f"Bill due: {bill.bill_name}",
        description="\n".join(lines),
        date=bill.due_date,
        time=_default_event_time(),
        duration_minutes=settings.CALENDAR_EVENT_DURATION_MINUTES,
    )


def reminder_event_spec(reminder) -> EventSpec:
    return EventSpec(
        title=reminder.title,
        description=reminder.description or "",
        date=reminder.reminder_date,
        time=reminder.reminder_time,
        duration_minutes=settings.CALENDAR_EVENT_DURATION_MINUTES,
    )


async def link_event(store, record, event_id: Optional[str]) -> SyncReport:
    """
    Save (or clear) the calendar event id on an already committed bill or
    reminder. A storage failure becomes a sync warning: the record itself is
    saved and the event already exists on the calendar.
    """
    try:
        await store.set_event_id(record, event_id)
        return SyncReport()
    except StorageError as e:
        # The failed commit rolled back and expired the record
        await store.refresh(record)
        logger.warning(f"[Calendar:{record.user_id}] Could not save event id {event_id} on {record.id}: {e}")
        return SyncReport(warnings=[f"Calendar event id could not be saved: {e}"])


class CalendarSyncService:
    """
    Best-effort wrapper around a CalendarSyncAdapter. Nothing here raises:
    every failure is logged and handed back as a SyncReport warning.
    """

    def __init__(self, provider: AdapterProvider):
        self._provider = provider
        self._adapters: Dict[UUID, Optional[CalendarSyncAdapter]] = {}

    async def _adapter_for(self, user_id: UUID) -> Optional[CalendarSyncAdapter]:
        if user_id not in self._adapters:
            self._adapters[user_id] = await self._provider(user_id)
        return self._adapters[user_id]

    async def create(self, user_id: UUID, spec: EventSpec) -> SyncReport:
        try:
            adapter = await self._adapter_for(user_id)
            if adapter is None:
                return SyncReport()
            event_id = await adapter.create_event(spec)
            logger.info(f"[Calendar:{user_id}] Created event {event_id} for '{spec.title}'")
            return SyncReport(attempted=True, event_id=event_id)
        except Exception as e:
            logger.warning(f"[Calendar:{user_id}] Create event for '{spec.title}' failed: {e}")
            return SyncReport(attempted=True, warnings=[f"Calendar event could not be created: {e}"])

    async def update(self, user_id: UUID, event_id: str, spec: EventSpec) -> SyncReport:
        try:
            adapter = await self._adapter_for(user_id)
            if adapter is None:
                return SyncReport(event_id=event_id)
            await adapter.update_event(event_id, spec)
            logger.info(f"[Calendar:{user_id}] Updated event {event_id}")
            return SyncReport(attempted=True, event_id=event_id)
        except Exception as e:
            logger.warning(f"[Calendar:{user_id}] Update event {event_id} failed: {e}")
            return SyncReport(attempted=True, event_id=event_id, warnings=[f"Calendar event could not be updated: {e}"])

    async def delete(self, user_id: UUID, event_id: str) -> SyncReport:
        try:
            adapter = await self._adapter_for(user_id)
            if adapter is None:
                return SyncReport()
            await adapter.delete_event(event_id)
            logger.info(f"[Calendar:{user_id}] Deleted event {event_id}")
            return SyncReport(attempted=True)
        except Exception as e:
            logger.warning(f"[Calendar:{user_id}] Delete event {event_id} failed: {e}")
            return SyncReport(attempted=True, warnings=[f"Calendar event could not be deleted: {e}"])
