import uuid
from decimal import Decimal
from typing import Optional
from datetime import date, datetime
from sqlalchemy import String, Numeric, Boolean, Integer, DateTime, Date, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from dompet.core.database import Base
from dompet.features.bills.recurrence import RecurrenceRule, rule_from_fields


class Bill(Base):
    """Both recurring templates (is_template=True) and concrete payable instances."""
    __tablename__ = "bills"
    __table_args__ = (
        Index("ix_bills_name_user_due", "bill_name", "user_id", "due_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    # Owned by the hosted auth provider; no local users table
    user_id: Mapped[uuid.UUID] = mapped_column(index=True)
    bill_name: Mapped[str] = mapped_column(String, nullable=False)
    payer_name: Mapped[str] = mapped_column(String, nullable=False)
    destination_account: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="my_bills")
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    recurrence_type: Mapped[str] = mapped_column(String, nullable=False, default="one_time")
    recurrence_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    recurrence_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    next_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_template: Mapped[bool] = mapped_column(Boolean, default=False)

    sync_to_google_calendar: Mapped[bool] = mapped_column(Boolean, default=False)
    google_calendar_event_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def recurrence_rule(self) -> RecurrenceRule:
        """Raises RuleValidationError when the stored day/month don't fit the type."""
        return rule_from_fields(self.recurrence_type, self.recurrence_day, self.recurrence_month)

    def __repr__(self) -> str:
        return f"<Bill {self.bill_name!r} due={self.due_date} template={self.is_template}>"
