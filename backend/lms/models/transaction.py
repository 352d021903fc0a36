"""
Circulation models: Transaction (one per loan) and its history rows.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lms.core.fines import days_late
from lms.core.timeutils import utc_now
from lms.db.session import Base
from lms.models.base import UUIDMixin, TimestampMixin, enum_type
from lms.models.enums import (
    ACTIVE_TRANSACTION_STATUSES,
    BookCondition,
    FineReason,
    ReturnCondition,
    TransactionStatus,
)

if TYPE_CHECKING:
    from lms.models.book import Book
    from lms.models.user import User


class Transaction(Base, UUIDMixin, TimestampMixin):
    """
    A book loan.

    Created on issue, mutated on renewal, overdue sweep and return. Rows are
    never deleted; the status carries the lifecycle.

    Invariants:
        - RETURNED implies returned_at is set
        - OVERDUE implies returned_at is null and due_date has passed
        - 0 <= renewal_count <= MAX_RENEWALS
        - fine_amount >= 0

    Attributes:
        borrower_id: Student who holds the book
        book_id: Book on loan
        issued_by_id: Staff member who issued it
        returned_by_id: User who processed the return (null until return)
        issued_at / due_date / returned_at / actual_returned_at: Loan dates
        fine_amount / fine_reason / fine_paid / fine_paid_at / fine_paid_amount: Fine
        renewal_count: Renewals performed
        condition_at_issue / condition_at_return: Book condition
        reminder_sent: Due-soon reminder already sent (at most once)
    """
    __tablename__ = "transactions"

    borrower_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    book_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("books.id", ondelete="RESTRICT"),
        nullable=False,
    )
    issued_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    returned_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
    )

    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    returned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    actual_returned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    status: Mapped[TransactionStatus] = mapped_column(
        enum_type(TransactionStatus, "transaction_status"),
        nullable=False,
        default=TransactionStatus.ISSUED,
    )

    # Fine
    fine_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    fine_reason: Mapped[FineReason] = mapped_column(
        enum_type(FineReason, "fine_reason"),
        nullable=False,
        default=FineReason.OVERDUE,
    )
    fine_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fine_paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    fine_paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    renewal_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    condition_at_issue: Mapped[BookCondition] = mapped_column(
        enum_type(BookCondition, "book_condition"),
        nullable=False,
        default=BookCondition.GOOD,
    )
    condition_at_return: Mapped[Optional[ReturnCondition]] = mapped_column(
        enum_type(ReturnCondition, "return_condition"),
        nullable=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    borrower: Mapped["User"] = relationship(
        "User",
        foreign_keys=[borrower_id],
        lazy="selectin",
    )
    book: Mapped["Book"] = relationship(
        "Book",
        lazy="selectin",
    )
    renewals: Mapped[List["TransactionRenewal"]] = relationship(
        "TransactionRenewal",
        back_populates="transaction",
        lazy="selectin",
        order_by="TransactionRenewal.renewed_at",
    )
    overdue_notices: Mapped[List["OverdueNotice"]] = relationship(
        "OverdueNotice",
        back_populates="transaction",
        lazy="selectin",
        order_by="OverdueNotice.sent_at",
    )

    __table_args__ = (
        CheckConstraint("fine_amount >= 0", name="ck_transactions_fine_amount"),
        CheckConstraint("renewal_count >= 0", name="ck_transactions_renewal_count"),
        Index("ix_transactions_borrower_status", "borrower_id", "status"),
        Index("ix_transactions_book_id", "book_id"),
        Index("ix_transactions_due_date", "due_date"),
        Index("ix_transactions_status", "status"),
        Index("ix_transactions_issued_at", "issued_at"),
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.id} - {self.status.value}>"

    @property
    def is_active(self) -> bool:
        """True while the book is out (issued or overdue)."""
        return self.status in ACTIVE_TRANSACTION_STATUSES

    @property
    def fine_due(self) -> Decimal:
        """Part of the fine still owed."""
        if self.fine_paid:
            return Decimal("0.00")
        return max(self.fine_amount - (self.fine_paid_amount or 0), Decimal("0.00"))

    @property
    def has_unpaid_fine(self) -> bool:
        return self.fine_due > 0

    def assess_overdue_fine(self, amount: Decimal) -> None:
        """
        Record the overdue fine accrued so far.

        A payment made against a smaller fine no longer settles it: the
        transaction goes back to unpaid and only the difference is owed.
        """
        if self.fine_paid and amount > self.fine_amount:
            self.fine_paid = False
        self.fine_amount = amount
        self.fine_reason = FineReason.OVERDUE

    def days_overdue(self, at: datetime | None = None) -> int:
        """Started days past the due date at ``at`` (default: now)."""
        return days_late(self.due_date, at)


class TransactionRenewal(Base, UUIDMixin):
    """One renewal: due date moved from ``old_due_date`` to ``new_due_date``."""
    __tablename__ = "transaction_renewals"

    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    old_due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    new_due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    renewed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    renewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    transaction: Mapped["Transaction"] = relationship(
        "Transaction",
        back_populates="renewals",
    )


class OverdueNotice(Base, UUIDMixin):
    """Overdue notification log entry; at most one per calendar day."""
    __tablename__ = "transaction_overdue_notices"

    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    days_overdue: Mapped[int] = mapped_column(Integer, nullable=False)

    transaction: Mapped["Transaction"] = relationship(
        "Transaction",
        back_populates="overdue_notices",
    )
