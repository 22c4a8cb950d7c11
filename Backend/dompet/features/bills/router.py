from typing import Annotated, List, Optional
from uuid import UUID
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from dompet.core.database import get_db
from dompet.features.auth.deps import get_current_user_id
from dompet.features.bills.schemas import (
    BillCreate,
    BillUpdate,
    BillResponse,
    BillWriteResponse,
    GenerationResult,
    RolloverResponse,
    UpcomingBillsResponse,
)
from dompet.features.bills.service import BillService, get_bill_service
from dompet.features.calendar.schemas import SyncReport

router = APIRouter()


def _not_found():
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Bill not found"
    )


@router.post("", response_model=BillWriteResponse, status_code=status.HTTP_201_CREATED)
async def create_bill(
    bill_data: BillCreate,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BillService, Depends(get_bill_service)]
):
    """Create a new bill (one-time, recurring or template)."""
    bill, sync = await service.create_bill(db, user_id, bill_data)
    return BillWriteResponse(bill=BillResponse.model_validate(bill), sync=sync)


@router.get("", response_model=List[BillResponse])
async def list_bills(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BillService, Depends(get_bill_service)],
    category: Optional[str] = Query(None, description="my_bills or others_bills_to_me"),
    bill_status: Optional[str] = Query(None, alias="status", description="active or inactive"),
    is_template: Optional[bool] = Query(None)
):
    """List all bills for the current user."""
    return await service.get_user_bills(db, user_id, category, bill_status, is_template)


@router.get("/upcoming", response_model=UpcomingBillsResponse)
async def get_upcoming_bills(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BillService, Depends(get_bill_service)],
    days: int = Query(30, ge=1, le=90, description="Number of days to look ahead")
):
    """Get unpaid bills due in the next X days."""
    bills = await service.get_upcoming_bills(db, user_id, days_ahead=days)

    total_amount = sum((bill.amount for bill in bills), Decimal("0"))

    return UpcomingBillsResponse(
        upcoming_bills=bills,
        total_amount=total_amount,
        count=len(bills)
    )


@router.post("/generate", response_model=GenerationResult)
async def generate_recurring_bills(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BillService, Depends(get_bill_service)]
):
    """Run recurring bill generation now for the caller's templates."""
    return await service.run_generation(db, user_id=user_id)


@router.get("/{bill_id}", response_model=BillResponse)
async def get_bill(
    bill_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BillService, Depends(get_bill_service)]
):
    """Get details of a specific bill."""
    bill = await service.get_bill_by_id(db, bill_id, user_id)
    if not bill:
        raise _not_found()
    return bill


@router.put("/{bill_id}", response_model=BillWriteResponse)
async def update_bill(
    bill_id: UUID,
    bill_data: BillUpdate,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BillService, Depends(get_bill_service)]
):
    """Update a bill."""
    updated = await service.update_bill(db, bill_id, user_id, bill_data)
    if not updated:
        raise _not_found()
    bill, sync = updated
    return BillWriteResponse(bill=BillResponse.model_validate(bill), sync=sync)


@router.delete("/{bill_id}", response_model=SyncReport)
async def delete_bill(
    bill_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BillService, Depends(get_bill_service)]
):
    """Delete a bill and its calendar event."""
    sync = await service.delete_bill(db, bill_id, user_id)
    if sync is None:
        raise _not_found()
    return sync


@router.post("/{bill_id}/mark-paid", response_model=RolloverResponse)
async def mark_bill_paid(
    bill_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BillService, Depends(get_bill_service)]
):
    """Mark a bill as paid. Recurring bills are replaced by their next occurrence."""
    result = await service.mark_paid(db, bill_id, user_id)
    if result is None:
        raise _not_found()

    return RolloverResponse(
        deleted=result.deleted,
        next_instance=BillResponse.model_validate(result.next_instance) if result.next_instance else None,
        sync=result.sync,
        sync_warning=result.sync_warning
    )
