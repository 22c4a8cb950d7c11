from typing import List, Literal, Optional
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

from dompet.features.bills.recurrence import RecurrenceType
from dompet.features.calendar.schemas import SyncReport

BillCategory = Literal["my_bills", "others_bills_to_me"]
BillStatus = Literal["active", "inactive"]


class BillBase(BaseModel):
    bill_name: str = Field(..., min_length=1, description="Bill name (e.g., 'Rent', 'Electricity')")
    payer_name: str = Field(..., min_length=1)
    destination_account: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    due_date: date
    category: BillCategory = "my_bills"
    status: BillStatus = "active"
    recurrence_type: RecurrenceType = RecurrenceType.ONE_TIME
    recurrence_day: Optional[int] = Field(None, ge=1, le=31, description="Day of month for monthly/yearly bills")
    recurrence_month: Optional[int] = Field(None, ge=1, le=12, description="Month for yearly bills")
    is_template: bool = Field(default=False, description="Seed future instances instead of being paid")
    sync_to_google_calendar: bool = False


class BillCreate(BillBase):
    due_date: Optional[date] = Field(None, description="Derived from the recurrence rule when omitted (monthly/yearly only)")


class BillUpdate(BaseModel):
    bill_name: Optional[str] = Field(None, min_length=1)
    payer_name: Optional[str] = Field(None, min_length=1)
    destination_account: Optional[str] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    due_date: Optional[date] = None
    category: Optional[BillCategory] = None
    status: Optional[BillStatus] = None
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_day: Optional[int] = Field(None, ge=1, le=31)
    recurrence_month: Optional[int] = Field(None, ge=1, le=12)
    is_template: Optional[bool] = None
    sync_to_google_calendar: Optional[bool] = None


class BillResponse(BillBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    next_due_date: Optional[date] = None
    google_calendar_event_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BillWriteResponse(BaseModel):
    """A committed bill plus whatever happened on the calendar side."""
    bill: BillResponse
    sync: SyncReport


class RolloverResponse(BaseModel):
    deleted: bool
    next_instance: Optional[BillResponse] = None
    sync: SyncReport
    sync_warning: bool


class UpcomingBillsResponse(BaseModel):
    upcoming_bills: List[BillResponse]
    total_amount: Decimal
    count: int


class TemplateGenerationResult(BaseModel):
    template_id: UUID
    bill_name: str
    user_id: UUID
    status: Literal["ok", "failed"]
    generated: int = 0
    error_kind: Optional[str] = None
    error: Optional[str] = None


class GenerationResult(BaseModel):
    generated_count: int = 0
    per_template_results: List[TemplateGenerationResult] = []
