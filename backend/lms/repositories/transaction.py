"""
Repository for Transaction and its history rows.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, false, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.models.enums import (
    ACTIVE_TRANSACTION_STATUSES,
    FineReason,
    ReturnCondition,
    TransactionStatus,
)
from lms.models.transaction import OverdueNotice, Transaction, TransactionRenewal
from lms.repositories.base import BaseRepository


def _to_decimal(value) -> Decimal:
    """SUM() over Numeric may come back as None, float or Decimal."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(Decimal("0.01"))


# Paid-but-reopened fines only owe the difference
UNPAID_BALANCE = Transaction.fine_amount - Transaction.fine_paid_amount


class TransactionRepository(BaseRepository[Transaction]):
    """CRUD and queries for Transaction."""

    def __init__(self, db: AsyncSession):
        super().__init__(Transaction, db)

    async def get_with_relations(self, transaction_id: UUID) -> Transaction | None:
        """
        Fetch a transaction with borrower, book and history.

        ``populate_existing`` refreshes an instance already in the session,
        so history rows added in this unit of work show up.
        """
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ==========================================
    # Eligibility queries (issue)
    # ==========================================

    async def count_active_by_borrower(self, borrower_id: UUID) -> int:
        """Count issued or overdue loans of a borrower."""
        result = await self.db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.borrower_id == borrower_id,
                Transaction.status.in_(ACTIVE_TRANSACTION_STATUSES),
            )
        )
        return result.scalar_one()

    async def has_active_loan(self, borrower_id: UUID, book_id: UUID) -> bool:
        """True if the borrower already holds this book."""
        result = await self.db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.borrower_id == borrower_id,
                Transaction.book_id == book_id,
                Transaction.status.in_(ACTIVE_TRANSACTION_STATUSES),
            )
        )
        return result.scalar_one() > 0

    async def unpaid_fine_total(self, borrower_id: UUID) -> Decimal:
        """Fine still owed over all of a borrower's transactions."""
        result = await self.db.execute(
            select(func.sum(UNPAID_BALANCE)).where(
                Transaction.borrower_id == borrower_id,
                Transaction.fine_amount > 0,
                Transaction.fine_paid.is_(False),
            )
        )
        return _to_decimal(result.scalar_one())

    # ==========================================
    # Listing / reporting
    # ==========================================

    async def search(
        self,
        borrower_id: UUID | None = None,
        book_id: UUID | None = None,
        status: TransactionStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Transaction], int]:
        """
        List transactions with filters and pagination, newest first.

        Returns:
            Tuple (transactions, total)
        """
        conditions = []
        if borrower_id:
            conditions.append(Transaction.borrower_id == borrower_id)
        if book_id:
            conditions.append(Transaction.book_id == book_id)
        if status:
            conditions.append(Transaction.status == status)

        count_result = await self.db.execute(
            select(func.count(Transaction.id)).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(Transaction)
            .where(*conditions)
            .order_by(Transaction.issued_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def get_overdue(self, now: datetime) -> list[Transaction]:
        """
        Loans past their due date and not returned.

        Includes ISSUED rows the sweep has not flipped yet.
        """
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.status.in_(ACTIVE_TRANSACTION_STATUSES),
                Transaction.due_date < now,
                Transaction.returned_at.is_(None),
            )
            .order_by(Transaction.due_date)
        )
        return list(result.scalars().all())

    async def get_due_soon(self, now: datetime, days: int) -> list[Transaction]:
        """Issued loans due within ``days`` whose reminder was not sent yet."""
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.status == TransactionStatus.ISSUED,
                Transaction.due_date >= now,
                Transaction.due_date <= now + timedelta(days=days),
                Transaction.returned_at.is_(None),
                Transaction.reminder_sent.is_(False),
            )
            .order_by(Transaction.due_date)
        )
        return list(result.scalars().all())

    async def get_by_status(self, status: TransactionStatus) -> list[Transaction]:
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.status == status)
            .order_by(Transaction.due_date)
        )
        return list(result.scalars().all())

    async def stats(self) -> dict:
        """
        Aggregate counters for the dashboard.

        Returns:
            Dict with per-status counts, total and unpaid fine sums
        """
        status_rows = await self.db.execute(
            select(Transaction.status, func.count(Transaction.id))
            .group_by(Transaction.status)
        )
        by_status = {status.value: 0 for status in TransactionStatus}
        for status, count in status_rows.all():
            by_status[status.value] = count

        total_fines = await self.db.execute(
            select(func.sum(Transaction.fine_amount)).where(Transaction.fine_amount > 0)
        )
        unpaid_fines = await self.db.execute(
            select(func.sum(UNPAID_BALANCE)).where(
                Transaction.fine_amount > 0,
                Transaction.fine_paid.is_(False),
            )
        )

        return {
            "total_transactions": sum(by_status.values()),
            "by_status": by_status,
            "total_fines": _to_decimal(total_fines.scalar_one()),
            "unpaid_fines": _to_decimal(unpaid_fines.scalar_one()),
        }

    # ==========================================
    # Sweep
    # ==========================================

    async def mark_overdue(self, now: datetime) -> int:
        """
        Flip ISSUED loans past their due date to OVERDUE in one statement.

        Rows already OVERDUE do not match, so re-running is a no-op.

        Returns:
            Number of rows updated
        """
        result = await self.db.execute(
            update(Transaction)
            .where(
                Transaction.status == TransactionStatus.ISSUED,
                Transaction.due_date < now,
                Transaction.returned_at.is_(None),
            )
            .values(status=TransactionStatus.OVERDUE, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    # ==========================================
    # Guarded state changes
    # ==========================================

    async def close(
        self,
        transaction_id: UUID,
        returned_at: datetime,
        returned_by_id: UUID,
        condition: ReturnCondition,
        fine: Decimal,
        notes: str | None = None,
    ) -> bool:
        """
        Atomically mark a loan as returned.

        Only a row that is not RETURNED yet matches, so of two concurrent
        returns of the same loan exactly one closes it. A fine larger than
        the one already paid reopens the payment.

        Returns:
            True if this call closed the loan
        """
        values = {
            "status": TransactionStatus.RETURNED,
            "returned_at": returned_at,
            "actual_returned_at": returned_at,
            "returned_by_id": returned_by_id,
            "condition_at_return": condition,
            "updated_at": returned_at,
        }
        if notes is not None:
            values["notes"] = notes
        if fine > 0:
            values.update(
                fine_amount=fine,
                fine_reason=FineReason.OVERDUE,
                fine_paid=case(
                    (Transaction.fine_amount < fine, false()),
                    else_=Transaction.fine_paid,
                ),
            )

        result = await self.db.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status != TransactionStatus.RETURNED,
                Transaction.returned_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def extend_due_date(
        self,
        transaction_id: UUID,
        new_due_date: datetime,
        max_renewals: int,
        now: datetime,
    ) -> bool:
        """
        Atomically renew an ISSUED loan below ``max_renewals``.

        Returns:
            True if the due date was moved
        """
        result = await self.db.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.ISSUED,
                Transaction.renewal_count < max_renewals,
            )
            .values(
                due_date=new_due_date,
                renewal_count=Transaction.renewal_count + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ==========================================
    # History rows
    # ==========================================

    async def add_renewal(self, **kwargs) -> TransactionRenewal:
        renewal = TransactionRenewal(**kwargs)
        self.db.add(renewal)
        await self.db.flush()
        return renewal

    async def add_overdue_notice(self, **kwargs) -> OverdueNotice:
        notice = OverdueNotice(**kwargs)
        self.db.add(notice)
        await self.db.flush()
        return notice
