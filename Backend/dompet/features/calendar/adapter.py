import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from google.oauth2.credentials import Credentials
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleRequest
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from dompet.core.config import get_settings
from dompet.features.bills.exceptions import SyncError
from dompet.features.calendar.models import CalendarConnection
from dompet.features.calendar.schemas import EventSpec

settings = get_settings()
logger = logging.getLogger(__name__)

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class CalendarSyncAdapter(ABC):
    """
    Port to an external calendar. Implementations own authentication and
    token refresh; callers only see success or a raised SyncError.
    """

    @abstractmethod
    async def create_event(self, spec: EventSpec) -> str:
        """Create an event and return its provider id."""

    @abstractmethod
    async def update_event(self, event_id: str, spec: EventSpec) -> None:
        ...

    @abstractmethod
    async def delete_event(self, event_id: str) -> None:
        """Delete an event. Deleting an event that no longer exists is not an error."""


AdapterProvider = Callable[[UUID], Awaitable[Optional[CalendarSyncAdapter]]]


class GoogleCalendarAdapter(CalendarSyncAdapter):
    def __init__(self, service, calendar_id: str = "primary", time_zone: str = "UTC"):
        self.service = service
        self.calendar_id = calendar_id
        self.time_zone = time_zone

    def _event_body(self, spec: EventSpec, with_reminders: bool = False) -> dict:
        start = datetime.combine(spec.date, spec.time)
        end = start + timedelta(minutes=spec.duration_minutes)
        body = {
            "summary": spec.title,
            "description": spec.description or "",
            "start": {"dateTime": start.isoformat(timespec="seconds"), "timeZone": self.time_zone},
            "end": {"dateTime": end.isoformat(timespec="seconds"), "timeZone": self.time_zone},
        }
        if with_reminders:
            body["reminders"] = {
                "useDefault": False,
                "overrides": [
                    {"method": "popup", "minutes": 15},
                    {"method": "email", "minutes": 30},
                ],
            }
        return body

    async def _run(self, request, action: str):
        try:
            return await asyncio.to_thread(request.execute)
        except HttpError as e:
            logger.error(f"[Calendar] {action} failed with HTTP {e.resp.status}")
            raise SyncError(f"Failed to {action}: HTTP {e.resp.status}") from e
        except Exception as e:
            logger.error(f"[Calendar] {action} failed: {type(e).__name__}: {e}")
            raise SyncError(f"Failed to {action}: {type(e).__name__}") from e

    async def create_event(self, spec: EventSpec) -> str:
        request = self.service.events().insert(
            calendarId=self.calendar_id,
            body=self._event_body(spec, with_reminders=True)
        )
        event = await self._run(request, "create calendar event")
        return event["id"]

    async def update_event(self, event_id: str, spec: EventSpec) -> None:
        request = self.service.events().update(
            calendarId=self.calendar_id,
            eventId=event_id,
            body=self._event_body(spec)
        )
        await self._run(request, "update calendar event")

    async def delete_event(self, event_id: str) -> None:
        request = self.service.events().delete(calendarId=self.calendar_id, eventId=event_id)
        try:
            await asyncio.to_thread(request.execute)
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.info(f"[Calendar] Event {event_id} already gone (HTTP {e.resp.status}).")
                return
            logger.error(f"[Calendar] delete calendar event failed with HTTP {e.resp.status}")
            raise SyncError(f"Failed to delete calendar event: HTTP {e.resp.status}") from e
        except Exception as e:
            logger.error(f"[Calendar] delete calendar event failed: {type(e).__name__}: {e}")
            raise SyncError(f"Failed to delete calendar event: {type(e).__name__}") from e

    @classmethod
    async def for_user(cls, db: AsyncSession, user_id: UUID) -> Optional["GoogleCalendarAdapter"]:
        """
        Build an adapter from the user's stored tokens, refreshing them first
        when expired. Returns None when the user never connected a calendar.
        """
        result = await db.execute(select(CalendarConnection).where(CalendarConnection.user_id == user_id))
        connection = result.scalar_one_or_none()

        if not connection or not connection.is_connected:
            logger.info(f"[Calendar:{user_id}] No calendar connection. Skipping sync.")
            return None

        # google-auth compares expiry against naive UTC
        expiry = connection.token_expires_at
        if expiry is not None and expiry.tzinfo is not None:
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)

        creds = Credentials(
            token=connection.access_token,
            refresh_token=connection.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            scopes=CALENDAR_SCOPES,
            expiry=expiry
        )

        if creds.expired and creds.refresh_token:
            logger.info(f"[Calendar:{user_id}] Token expired, attempting proactive refresh.")
            try:
                await asyncio.to_thread(creds.refresh, GoogleRequest())
            except GoogleAuthError as refresh_ex:
                logger.error(f"[Calendar:{user_id}] Token refresh FAILED: {type(refresh_ex).__name__}: {refresh_ex}")
                connection.access_token = None
                connection.refresh_token = None
                connection.token_expires_at = None
                await db.commit()
                raise SyncError("Google Calendar connection lost. Please reconnect.") from refresh_ex

            connection.access_token = creds.token
            connection.refresh_token = creds.refresh_token or connection.refresh_token
            connection.token_expires_at = creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else None
            await db.commit()
            logger.info(f"[Calendar:{user_id}] Token refreshed and saved successfully.")
        elif not creds.refresh_token:
            logger.warning(f"[Calendar:{user_id}] No refresh_token available. If access token is stale, sync will fail.")

        service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        return cls(service, calendar_id=settings.GOOGLE_CALENDAR_ID, time_zone=settings.APP_TIMEZONE)


def google_adapter_provider(db: AsyncSession) -> AdapterProvider:
    async def provide(user_id: UUID) -> Optional[CalendarSyncAdapter]:
        return await GoogleCalendarAdapter.for_user(db, user_id)
    return provide
