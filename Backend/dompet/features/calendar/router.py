import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dompet.core.config import get_settings
from dompet.core.database import get_db
from dompet.features.auth.deps import get_current_user_id
from dompet.features.calendar.adapter import GOOGLE_TOKEN_URI
from dompet.features.calendar.models import CalendarConnection
from dompet.features.calendar.schemas import CalendarConnectRequest, CalendarStatusResponse

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)


async def _get_connection(db: AsyncSession, user_id: UUID):
    result = await db.execute(select(CalendarConnection).where(CalendarConnection.user_id == user_id))
    return result.scalar_one_or_none()


@router.get("/status", response_model=CalendarStatusResponse)
async def calendar_status(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    connection = await _get_connection(db, user_id)
    if not connection or not connection.is_connected:
        return CalendarStatusResponse(is_connected=False, token_expired=False)

    expires_at = connection.token_expires_at
    if expires_at is not None and expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    token_expired = expires_at is not None and expires_at <= datetime.now(timezone.utc)
    return CalendarStatusResponse(is_connected=True, token_expired=token_expired)


@router.post("/connect", response_model=CalendarStatusResponse)
async def connect_calendar(
    data: CalendarConnectRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Exchange an OAuth authorization code for tokens and store them."""
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Calendar integration is not configured"
        )

    payload = {
        "code": data.code,
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
        "redirect_uri": data.redirect_uri,
        "grant_type": "authorization_code",
    }
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(GOOGLE_TOKEN_URI, data=payload, timeout=10.0)
    except httpx.HTTPError as e:
        logger.error(f"[Calendar:{user_id}] Token exchange request failed: {type(e).__name__}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not reach Google")

    if resp.status_code != 200:
        logger.warning(f"[Calendar:{user_id}] Token exchange rejected with HTTP {resp.status_code}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to exchange authorization code")

    tokens = resp.json()
    expires_in = int(tokens.get("expires_in", 3600))

    connection = await _get_connection(db, user_id)
    if not connection:
        connection = CalendarConnection(user_id=user_id)
        db.add(connection)

    connection.access_token = tokens["access_token"]
    # Google only returns a refresh token on first consent
    if tokens.get("refresh_token"):
        connection.refresh_token = tokens["refresh_token"]
    connection.token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    await db.commit()

    logger.info(f"[Calendar:{user_id}] Google Calendar connected.")
    return CalendarStatusResponse(is_connected=True, token_expired=False)


@router.delete("/connect", response_model=CalendarStatusResponse)
async def disconnect_calendar(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    connection = await _get_connection(db, user_id)
    if connection:
        connection.access_token = None
        connection.refresh_token = None
        connection.token_expires_at = None
        await db.commit()
        logger.info(f"[Calendar:{user_id}] Google Calendar disconnected.")
    return CalendarStatusResponse(is_connected=False, token_expired=False)
