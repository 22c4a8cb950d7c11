from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from dompet.features.bills.store import SessionStore
from dompet.features.reminders.models import Reminder


class ReminderStore(SessionStore):
    """Persistence for reminders; database failures surface as StorageError."""

    async def get(self, reminder_id: UUID, user_id: UUID) -> Optional[Reminder]:
        stmt = select(Reminder).where(Reminder.id == reminder_id, Reminder.user_id == user_id)
        result = await self._execute(stmt, "load reminder")
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: UUID) -> List[Reminder]:
        stmt = (
            select(Reminder)
            .where(Reminder.user_id == user_id)
            .order_by(Reminder.reminder_date, Reminder.reminder_time)
        )
        result = await self._execute(stmt, "list reminders")
        return list(result.scalars().all())

    async def list_unsynced(self, user_id: UUID) -> List[Reminder]:
        """Reminders that want a calendar event but don't have one yet."""
        stmt = (
            select(Reminder)
            .where(Reminder.user_id == user_id)
            .where(Reminder.sync_to_google_calendar == True)
            .where(Reminder.google_calendar_event_id.is_(None))
        )
        result = await self._execute(stmt, "list unsynced reminders")
        return list(result.scalars().all())

    async def insert(self, reminder: Reminder) -> Reminder:
        self.db.add(reminder)
        await self._commit("insert reminder")
        await self.db.refresh(reminder)
        return reminder

    async def update(self, reminder: Reminder) -> Reminder:
        await self._commit("update reminder")
        await self.db.refresh(reminder)
        return reminder

    async def delete(self, reminder: Reminder):
        await self.db.delete(reminder)
        await self._commit("delete reminder")

    async def set_event_id(self, reminder: Reminder, event_id: Optional[str]) -> Reminder:
        reminder.google_calendar_event_id = event_id
        return await self.update(reminder)
