import logging
from datetime import date
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dompet.features.bills.models import Bill
from dompet.features.bills.exceptions import StorageError
from dompet.features.bills.recurrence import GENERATABLE_TYPES

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Wraps an AsyncSession so every database failure is rolled back and
    re-raised as StorageError; callers never see driver exceptions.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self, action: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[Store] {action} failed: {type(e).__name__}: {e}")
            raise StorageError(f"Could not {action}") from e

    async def _execute(self, stmt, action: str):
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[Store] {action} failed: {type(e).__name__}: {e}")
            raise StorageError(f"Could not {action}") from e

    async def refresh(self, record):
        try:
            await self.db.refresh(record)
        except SQLAlchemyError as e:
            logger.error(f"[Store] reload {type(record).__name__} failed: {type(e).__name__}: {e}")
            raise StorageError("Could not reload record") from e
        return record


class BillInstanceStore(SessionStore):
    """Persistence for bill templates and instances."""

    async def get(self, bill_id: UUID, user_id: Optional[UUID] = None) -> Optional[Bill]:
        stmt = select(Bill).where(Bill.id == bill_id)
        if user_id is not None:
            stmt = stmt.where(Bill.user_id == user_id)
        result = await self._execute(stmt, "load bill")
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: UUID,
        category: Optional[str] = None,
        status: Optional[str] = None,
        is_template: Optional[bool] = None
    ) -> List[Bill]:
        stmt = select(Bill).where(Bill.user_id == user_id)
        if category is not None:
            stmt = stmt.where(Bill.category == category)
        if status is not None:
            stmt = stmt.where(Bill.status == status)
        if is_template is not None:
            stmt = stmt.where(Bill.is_template == is_template)
        stmt = stmt.order_by(Bill.due_date)
        result = await self._execute(stmt, "list bills")
        return list(result.scalars().all())

    async def list_due_until(self, user_id: UUID, end: date) -> List[Bill]:
        """Active instances due on or before ``end``, overdue ones included."""
        stmt = (
            select(Bill)
            .where(Bill.user_id == user_id)
            .where(Bill.is_template == False)
            .where(Bill.status == "active")
            .where(Bill.due_date <= end)
            .order_by(Bill.due_date)
        )
        result = await self._execute(stmt, "list upcoming bills")
        return list(result.scalars().all())

    async def list_active_templates(self, user_id: Optional[UUID] = None) -> List[Bill]:
        stmt = (
            select(Bill)
            .where(Bill.is_template == True)
            .where(Bill.status == "active")
            .where(Bill.recurrence_type.in_([t.value for t in GENERATABLE_TYPES]))
        )
        if user_id is not None:
            stmt = stmt.where(Bill.user_id == user_id)
        result = await self._execute(stmt, "list templates")
        return list(result.scalars().all())

    async def find_latest_by_name(self, bill_name: str, user_id: UUID) -> Optional[Bill]:
        """Most recently due non-template instance sharing the name."""
        stmt = (
            select(Bill)
            .where(Bill.bill_name == bill_name)
            .where(Bill.user_id == user_id)
            .where(Bill.is_template == False)
            .order_by(Bill.due_date.desc())
            .limit(1)
        )
        result = await self._execute(stmt, "find latest bill")
        return result.scalar_one_or_none()

    async def find_for_date(self, bill_name: str, user_id: UUID, due_date: date) -> Optional[Bill]:
        """The non-template instance already occupying ``due_date``, if any."""
        stmt = (
            select(Bill)
            .where(Bill.bill_name == bill_name)
            .where(Bill.user_id == user_id)
            .where(Bill.due_date == due_date)
            .where(Bill.is_template == False)
            .limit(1)
        )
        result = await self._execute(stmt, "find bill for date")
        return result.scalar_one_or_none()

    async def exists_for_date(self, bill_name: str, user_id: UUID, due_date: date) -> bool:
        stmt = select(
            exists()
            .where(Bill.bill_name == bill_name)
            .where(Bill.user_id == user_id)
            .where(Bill.due_date == due_date)
            .where(Bill.is_template == False)
        )
        result = await self._execute(stmt, "check existing bill")
        return bool(result.scalar())

    async def insert(self, bill: Bill) -> Bill:
        self.db.add(bill)
        await self._commit("insert bill")
        await self.db.refresh(bill)
        return bill

    async def insert_many(self, bills: Sequence[Bill]) -> int:
        """All-or-nothing bulk insert."""
        if not bills:
            return 0
        self.db.add_all(bills)
        await self._commit(f"insert {len(bills)} bills")
        return len(bills)

    async def update(self, bill: Bill) -> Bill:
        await self._commit("update bill")
        await self.db.refresh(bill)
        return bill

    async def delete(self, bill: Bill):
        await self.db.delete(bill)
        await self._commit("delete bill")

    async def replace(self, old: Bill, new: Bill) -> Bill:
        """Delete ``old`` and insert ``new`` in a single transaction."""
        await self.db.delete(old)
        self.db.add(new)
        await self._commit("roll bill over")
        await self.db.refresh(new)
        return new

    async def set_event_id(self, bill: Bill, event_id: Optional[str]) -> Bill:
        bill.google_calendar_event_id = event_id
        return await self.update(bill)
