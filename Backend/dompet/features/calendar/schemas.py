from typing import List, Optional
from uuid import UUID
import datetime
from pydantic import BaseModel, Field


class EventSpec(BaseModel):
    """What the core asks the calendar to show. Provider details stay in the adapter."""
    title: str
    description: str = ""
    date: datetime.date
    time: datetime.time
    duration_minutes: int = Field(default=30, ge=1)


class SyncReport(BaseModel):
    """Outcome of a best-effort calendar call. Warnings never fail the primary write."""
    attempted: bool = False
    event_id: Optional[str] = None
    warnings: List[str] = []

    @property
    def ok(self) -> bool:
        return not self.warnings

    def merge(self, other: "SyncReport") -> "SyncReport":
        return SyncReport(
            attempted=self.attempted or other.attempted,
            event_id=other.event_id if other.event_id is not None else self.event_id,
            warnings=self.warnings + other.warnings,
        )


class CalendarStatusResponse(BaseModel):
    is_connected: bool
    token_expired: bool


class CalendarConnectRequest(BaseModel):
    code: str
    redirect_uri: str


class ReminderSyncResult(BaseModel):
    id: UUID
    success: bool
    error: Optional[str] = None


class SyncAllResponse(BaseModel):
    success: bool = True
    results: List[ReminderSyncResult] = []
