from typing import Optional
from uuid import UUID
from datetime import datetime, date, time
from pydantic import BaseModel, ConfigDict, Field

from dompet.features.calendar.schemas import SyncReport


class ReminderBase(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    reminder_date: date
    reminder_time: time
    is_active: bool = True
    is_completed: bool = False
    sync_to_google_calendar: bool = False


class ReminderCreate(ReminderBase):
    pass


class ReminderUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    reminder_date: Optional[date] = None
    reminder_time: Optional[time] = None
    is_active: Optional[bool] = None
    is_completed: Optional[bool] = None
    sync_to_google_calendar: Optional[bool] = None


class ReminderResponse(ReminderBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    google_calendar_event_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ReminderWriteResponse(BaseModel):
    reminder: ReminderResponse
    sync: SyncReport
