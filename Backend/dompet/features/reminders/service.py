import logging
from uuid import UUID
from typing import Callable, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from dompet.features.calendar.adapter import AdapterProvider, google_adapter_provider
from dompet.features.calendar.schemas import ReminderSyncResult, SyncReport
from dompet.features.calendar.service import CalendarSyncService, link_event, reminder_event_spec
from dompet.features.reminders.models import Reminder
from dompet.features.reminders.schemas import ReminderCreate, ReminderUpdate
from dompet.features.reminders.store import ReminderStore

logger = logging.getLogger(__name__)


class ReminderService:
    def __init__(self, provider_factory: Callable[[AsyncSession], AdapterProvider] = google_adapter_provider):
        self._provider_factory = provider_factory

    def calendar_for(self, db: AsyncSession) -> CalendarSyncService:
        return CalendarSyncService(self._provider_factory(db))

    async def create_reminder(
        self,
        db: AsyncSession,
        user_id: UUID,
        data: ReminderCreate
    ) -> Tuple[Reminder, SyncReport]:
        store = ReminderStore(db)
        reminder = await store.insert(Reminder(user_id=user_id, **data.model_dump()))
        logger.info(f"Created reminder '{reminder.title}' for user {user_id}")

        sync = SyncReport()
        if reminder.sync_to_google_calendar:
            sync = await self.calendar_for(db).create(user_id, reminder_event_spec(reminder))
            if sync.event_id:
                sync = sync.merge(await link_event(store, reminder, sync.event_id))
        return reminder, sync

    async def get_user_reminders(self, db: AsyncSession, user_id: UUID) -> List[Reminder]:
        return await ReminderStore(db).list_for_user(user_id)

    async def get_reminder(self, db: AsyncSession, reminder_id: UUID, user_id: UUID) -> Optional[Reminder]:
        return await ReminderStore(db).get(reminder_id, user_id)

    async def update_reminder(
        self,
        db: AsyncSession,
        reminder_id: UUID,
        user_id: UUID,
        data: ReminderUpdate
    ) -> Optional[Tuple[Reminder, SyncReport]]:
        store = ReminderStore(db)
        reminder = await store.get(reminder_id, user_id)
        if not reminder:
            return None

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(reminder, field, value)
        reminder = await store.update(reminder)
        logger.info(f"Updated reminder {reminder_id}")

        calendar = self.calendar_for(db)
        sync = SyncReport()
        if reminder.sync_to_google_calendar:
            if reminder.google_calendar_event_id:
                sync = await calendar.update(user_id, reminder.google_calendar_event_id, reminder_event_spec(reminder))
            else:
                sync = await calendar.create(user_id, reminder_event_spec(reminder))
                if sync.event_id:
                    sync = sync.merge(await link_event(store, reminder, sync.event_id))
        elif reminder.google_calendar_event_id:
            sync = await calendar.delete(user_id, reminder.google_calendar_event_id)
            if sync.ok:
                sync = sync.merge(await link_event(store, reminder, None))
        return reminder, sync

    async def delete_reminder(self, db: AsyncSession, reminder_id: UUID, user_id: UUID) -> Optional[SyncReport]:
        store = ReminderStore(db)
        reminder = await store.get(reminder_id, user_id)
        if not reminder:
            return None

        event_id = reminder.google_calendar_event_id
        await store.delete(reminder)
        logger.info(f"Deleted reminder {reminder_id}")

        if event_id:
            return await self.calendar_for(db).delete(user_id, event_id)
        return SyncReport()

    async def sync_all(self, db: AsyncSession, user_id: UUID) -> List[ReminderSyncResult]:
        """Create calendar events for every synced reminder that doesn't have one yet."""
        store = ReminderStore(db)
        reminders = await store.list_unsynced(user_id)

        calendar = self.calendar_for(db)
        # A failed link rolls the session back and expires every loaded row
        pending = [(reminder, reminder.id, reminder_event_spec(reminder)) for reminder in reminders]

        results = []
        for reminder, reminder_id, spec in pending:
            sync = await calendar.create(user_id, spec)
            if sync.event_id:
                sync = sync.merge(await link_event(store, reminder, sync.event_id))
            if sync.event_id and sync.ok:
                results.append(ReminderSyncResult(id=reminder_id, success=True))
            else:
                error = "; ".join(sync.warnings) or "Google Calendar is not connected"
                results.append(ReminderSyncResult(id=reminder_id, success=False, error=error))

        logger.info(f"[Calendar:{user_id}] sync_all: {sum(r.success for r in results)}/{len(results)} reminders synced")
        return results


def get_reminder_service() -> ReminderService:
    return ReminderService()
