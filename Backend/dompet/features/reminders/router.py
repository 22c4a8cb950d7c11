from typing import Annotated, List
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from dompet.core.database import get_db
from dompet.features.auth.deps import get_current_user_id
from dompet.features.calendar.schemas import SyncAllResponse, SyncReport
from dompet.features.reminders.schemas import (
    ReminderCreate,
    ReminderUpdate,
    ReminderResponse,
    ReminderWriteResponse,
)
from dompet.features.reminders.service import ReminderService, get_reminder_service

router = APIRouter()


@router.post("", response_model=ReminderWriteResponse, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    data: ReminderCreate,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[ReminderService, Depends(get_reminder_service)]
):
    reminder, sync = await service.create_reminder(db, user_id, data)
    return ReminderWriteResponse(reminder=ReminderResponse.model_validate(reminder), sync=sync)


@router.get("", response_model=List[ReminderResponse])
async def list_reminders(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[ReminderService, Depends(get_reminder_service)]
):
    return await service.get_user_reminders(db, user_id)


@router.post("/sync-all", response_model=SyncAllResponse)
async def sync_all_reminders(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[ReminderService, Depends(get_reminder_service)]
):
    """Push every calendar-enabled reminder that has no event yet."""
    results = await service.sync_all(db, user_id)
    return SyncAllResponse(success=True, results=results)


@router.put("/{reminder_id}", response_model=ReminderWriteResponse)
async def update_reminder(
    reminder_id: UUID,
    data: ReminderUpdate,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[ReminderService, Depends(get_reminder_service)]
):
    updated = await service.update_reminder(db, reminder_id, user_id, data)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found")
    reminder, sync = updated
    return ReminderWriteResponse(reminder=ReminderResponse.model_validate(reminder), sync=sync)


@router.delete("/{reminder_id}", response_model=SyncReport)
async def delete_reminder(
    reminder_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[ReminderService, Depends(get_reminder_service)]
):
    sync = await service.delete_reminder(db, reminder_id, user_id)
    if sync is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found")
    return sync
