"""
Schemas for circulation: issue/return/renew/pay-fine requests and the
transaction views returned by the API.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from lms.models.enums import (
    BookCondition,
    FineReason,
    ReturnCondition,
    TransactionStatus,
)
from lms.models.transaction import Transaction
from lms.schemas.base import BaseSchema


# ==========================================
# Requests
# ==========================================

class IssueRequest(BaseSchema):
    """
    Issue a book to a student.

    ``student_id`` is accepted as an alias for ``borrower_id``.
    """
    borrower_id: UUID = Field(
        ...,
        validation_alias=AliasChoices("borrower_id", "student_id"),
    )
    book_id: UUID
    notes: str | None = Field(None, max_length=500)


class ReturnRequest(BaseSchema):
    """Staff return of a transaction."""
    transaction_id: UUID
    condition: ReturnCondition | None = None
    notes: str | None = Field(None, max_length=500)


class SelfReturnRequest(BaseSchema):
    """Self-service return; the transaction id comes from the path."""
    condition: ReturnCondition | None = None
    notes: str | None = Field(None, max_length=500)


class PayFineRequest(BaseSchema):
    """Amount defaults to the full fine when omitted."""
    amount: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)


# ==========================================
# Views
# ==========================================

class FineRead(BaseModel):
    amount: Decimal
    reason: FineReason
    paid: bool
    paid_at: datetime | None = None
    paid_amount: Decimal
    outstanding: Decimal = Decimal("0.00")


class RenewalRead(BaseSchema):
    old_due_date: datetime
    new_due_date: datetime
    renewed_by_id: UUID | None = None
    renewed_at: datetime


class OverdueNoticeRead(BaseSchema):
    sent_at: datetime
    days_overdue: int


class TransactionRead(BaseSchema):
    """
    Transaction with borrower/book summary and history.

    ``days_overdue`` and ``accrued_fine`` are computed at read time; for
    active loans ``accrued_fine`` is what the return would charge now.
    """
    id: UUID
    borrower_id: UUID
    borrower_name: str | None = None
    borrower_email: str | None = None
    student_code: str | None = None
    book_id: UUID
    book_title: str | None = None
    book_authors: str | None = None
    issued_by_id: UUID
    returned_by_id: UUID | None = None
    issued_at: datetime
    due_date: datetime
    returned_at: datetime | None = None
    actual_returned_at: datetime | None = None
    status: TransactionStatus
    fine: FineRead
    renewal_count: int
    renewals: list[RenewalRead] = []
    overdue_notices: list[OverdueNoticeRead] = []
    condition_at_issue: BookCondition
    condition_at_return: ReturnCondition | None = None
    notes: str | None = None
    reminder_sent: bool
    days_overdue: int = 0
    accrued_fine: Decimal = Decimal("0.00")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_transaction(
        cls,
        transaction: Transaction,
        accrued_fine: Decimal | None = None,
        at: datetime | None = None,
    ) -> "TransactionRead":
        """Build the view from an ORM row loaded with its relationships."""
        borrower = transaction.borrower
        book = transaction.book
        return cls(
            id=transaction.id,
            borrower_id=transaction.borrower_id,
            borrower_name=borrower.name if borrower else None,
            borrower_email=borrower.email if borrower else None,
            student_code=borrower.student_code if borrower else None,
            book_id=transaction.book_id,
            book_title=book.title if book else None,
            book_authors=book.authors if book else None,
            issued_by_id=transaction.issued_by_id,
            returned_by_id=transaction.returned_by_id,
            issued_at=transaction.issued_at,
            due_date=transaction.due_date,
            returned_at=transaction.returned_at,
            actual_returned_at=transaction.actual_returned_at,
            status=transaction.status,
            fine=FineRead(
                amount=transaction.fine_amount,
                reason=transaction.fine_reason,
                paid=transaction.fine_paid,
                paid_at=transaction.fine_paid_at,
                paid_amount=transaction.fine_paid_amount,
                outstanding=transaction.fine_due,
            ),
            renewal_count=transaction.renewal_count,
            renewals=[RenewalRead.model_validate(r) for r in transaction.renewals],
            overdue_notices=[
                OverdueNoticeRead.model_validate(n) for n in transaction.overdue_notices
            ],
            condition_at_issue=transaction.condition_at_issue,
            condition_at_return=transaction.condition_at_return,
            notes=transaction.notes,
            reminder_sent=transaction.reminder_sent,
            days_overdue=transaction.days_overdue(at) if transaction.is_active else 0,
            accrued_fine=(
                accrued_fine if accrued_fine is not None else transaction.fine_amount
            ),
            created_at=transaction.created_at,
            updated_at=transaction.updated_at,
        )


class ReturnResult(BaseModel):
    transaction: TransactionRead
    fine: Decimal
    days_overdue: int


class RenewResult(BaseModel):
    transaction: TransactionRead
    previous_due_date: datetime
    new_due_date: datetime
    renewals_left: int


class TransactionStats(BaseModel):
    """Dashboard counters."""
    total_transactions: int
    by_status: dict[str, int]
    active: int
    total_fines: Decimal
    unpaid_fines: Decimal


class SweepResult(BaseModel):
    """Counts reported by one sweep run."""
    marked_overdue: int = 0
    reminders_sent: int = 0
    overdue_notices_sent: int = 0
    skipped: bool = False
