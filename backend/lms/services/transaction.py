"""
Circulation service: issue, return, renew and fine payment.

Rules (configurable, see Settings):
    - A student may hold at most MAX_ACTIVE_LOANS issued/overdue books
    - Loan period: LOAN_PERIOD_DAYS from issue or renewal
    - Fine: FINE_PER_DAY per started day past the due date
    - At most MAX_RENEWALS renewals, never with an unpaid fine

Every operation is one unit of work: the stock and borrower counters move
through guarded UPDATEs in the same session as the transaction row and the
session is committed once, or rolled back as a whole.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.cache import CacheService, cache_service
from lms.core.config import Settings, get_settings
from lms.core.exceptions import (
    AccountPendingError,
    AlreadyReturnedError,
    BookNotFoundError,
    BookUnavailableError,
    BorrowLimitReachedError,
    DuplicateLoanError,
    FineAlreadyPaidError,
    NoFineDueError,
    NotApprovedError,
    NotOwnerError,
    NotRenewableError,
    OutstandingFineError,
    RenewalLimitReachedError,
    StudentNotFoundError,
    TransactionNotFoundError,
    UnpaidFineError,
)
from lms.core.timeutils import utc_now
from lms.models.enums import (
    BookCondition,
    ReturnCondition,
    TransactionStatus,
    UserRole,
)
from lms.models.transaction import Transaction
from lms.models.user import User
from lms.repositories.book import BookRepository
from lms.repositories.transaction import TransactionRepository
from lms.repositories.user import UserRepository
from lms.schemas.transaction import (
    IssueRequest,
    RenewResult,
    ReturnResult,
    TransactionRead,
    TransactionStats,
)
from lms.core.fines import calculate_fine, days_late
from lms.services.notification import NotificationService, get_notification_service

logger = logging.getLogger(__name__)


class TransactionService:
    """Service for the loan lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        notifier: NotificationService | None = None,
        cache: CacheService | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.notifier = notifier or get_notification_service()
        self.cache = cache or cache_service
        self.transaction_repo = TransactionRepository(db)
        self.user_repo = UserRepository(db)
        self.book_repo = BookRepository(db)

    # ==========================================
    # Issue
    # ==========================================

    async def issue(self, data: IssueRequest, issued_by: User) -> TransactionRead:
        """
        Issue a book to a student.

        Flow:
            1. Borrower exists, is a student, is approved
            2. Book exists and has a copy on the shelf
            3. Borrower is below the active loan limit
            4. Borrower does not already hold this book
            5. Borrower has no unpaid fine
            6. Take a copy, bump the borrower counter, insert the transaction
            7. Commit, then notify the borrower

        Args:
            data: Borrower, book and optional notes
            issued_by: Staff member issuing the book

        Returns:
            The created transaction

        Raises:
            StudentNotFoundError / BookNotFoundError: Unknown ids
            NotApprovedError, BookUnavailableError, BorrowLimitReachedError,
            DuplicateLoanError, OutstandingFineError: Issue rules
        """
        # 1. Borrower
        student = await self.user_repo.get_by_id(data.borrower_id)
        if student is None or student.role != UserRole.STUDENT:
            raise StudentNotFoundError()
        if not student.is_approved:
            raise NotApprovedError()
        if not student.is_active:
            raise NotApprovedError("Student account is deactivated")

        # 2. Book
        book = await self.book_repo.get_by_id(data.book_id)
        if book is None:
            raise BookNotFoundError()
        if not book.is_available:
            raise BookUnavailableError()

        # 3. Limit
        limit = self.settings.MAX_ACTIVE_LOANS
        active_count = await self.transaction_repo.count_active_by_borrower(student.id)
        if active_count >= limit:
            raise BorrowLimitReachedError(
                f"Student has reached the maximum borrowing limit ({limit} books)"
            )

        # 4. Duplicate
        if await self.transaction_repo.has_active_loan(student.id, book.id):
            raise DuplicateLoanError()

        # 5. Fines
        unpaid = await self.transaction_repo.unpaid_fine_total(student.id)
        if unpaid > 0:
            raise OutstandingFineError(
                f"Student has unpaid fines of ₹{unpaid}. "
                f"Please clear dues before issuing new books."
            )

        # 6. Mutations
        now = utc_now()
        try:
            if not await self.book_repo.take_copy(book.id):
                raise BookUnavailableError()
            if not await self.user_repo.increment_borrowed(student.id, limit):
                raise BorrowLimitReachedError()

            transaction = await self.transaction_repo.add(
                borrower_id=student.id,
                book_id=book.id,
                issued_by_id=issued_by.id,
                issued_at=now,
                due_date=now + timedelta(days=self.settings.LOAN_PERIOD_DAYS),
                status=TransactionStatus.ISSUED,
                condition_at_issue=book.condition or BookCondition.GOOD,
                notes=data.notes,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        # Counters were updated in SQL; reload them
        await self.db.refresh(book)
        await self.db.refresh(student)
        transaction = await self.transaction_repo.get_with_relations(transaction.id)

        logger.info(
            f"Issued book {book.id} to student {student.id} "
            f"(transaction {transaction.id}, due {transaction.due_date:%Y-%m-%d})"
        )
        await self.cache.invalidate_stats()

        # 7. Notify
        self.notifier.dispatch(
            self.notifier.book_issued(
                email=student.email,
                name=student.name,
                book_title=book.title,
                issued_at=transaction.issued_at,
                due_date=transaction.due_date,
            )
        )

        return self._to_read(transaction)

    # ==========================================
    # Return
    # ==========================================

    async def return_book(
        self,
        transaction_id: UUID,
        returned_by: User,
        condition: ReturnCondition | None = None,
        notes: str | None = None,
    ) -> ReturnResult:
        """
        Return a borrowed book.

        Flow:
            1. Load the transaction; students may only return their own
            2. Reject a second return
            3. Fine = started late days * FINE_PER_DAY
            4. Mark returned, put the copy back, decrement the borrower
               counter and add the fine to the borrower's total
            5. Commit, then notify the borrower

        Args:
            transaction_id: Transaction to close
            returned_by: User processing the return
            condition: Condition of the returned copy (default Good)
            notes: Replaces the transaction notes when given

        Returns:
            ReturnResult with the applied fine

        Raises:
            TransactionNotFoundError: Unknown id
            NotOwnerError: A student returning someone else's book
            AlreadyReturnedError: Transaction already returned
        """
        # 1. Load
        transaction = await self.transaction_repo.get_with_relations(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError()
        if not returned_by.is_staff and transaction.borrower_id != returned_by.id:
            raise NotOwnerError()

        # 2. Idempotence
        if transaction.status == TransactionStatus.RETURNED or transaction.returned_at:
            raise AlreadyReturnedError()

        # 3. Fine
        now = utc_now()
        days = days_late(transaction.due_date, now)
        fine = calculate_fine(transaction.due_date, now, self.settings.FINE_PER_DAY)
        condition = condition or ReturnCondition.GOOD

        # 4. Mutations; the guarded close decides between concurrent returns
        try:
            closed = await self.transaction_repo.close(
                transaction.id,
                returned_at=now,
                returned_by_id=returned_by.id,
                condition=condition,
                fine=fine,
                notes=notes,
            )
            if not closed:
                raise AlreadyReturnedError()

            book = transaction.book
            if condition.value in {c.value for c in BookCondition}:
                book.condition = BookCondition(condition.value)
                await self.db.flush()

            if not await self.book_repo.put_back_copy(transaction.book_id):
                logger.warning(
                    f"Book {transaction.book_id} already had all copies on the shelf "
                    f"when transaction {transaction.id} was returned"
                )
            await self.user_repo.record_return(transaction.borrower_id, fine)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(transaction.book)
        await self.db.refresh(transaction.borrower)
        transaction = await self.transaction_repo.get_with_relations(transaction_id)

        logger.info(
            f"Returned transaction {transaction.id} "
            f"({days} day(s) late, fine {fine})"
        )
        await self.cache.invalidate_stats()

        # 5. Notify
        borrower = transaction.borrower
        self.notifier.dispatch(
            self.notifier.book_returned(
                email=borrower.email,
                name=borrower.name,
                book_title=transaction.book.title,
                returned_at=now,
                fine=fine,
            )
        )

        return ReturnResult(
            transaction=self._to_read(transaction),
            fine=fine,
            days_overdue=days,
        )

    # ==========================================
    # Renew
    # ==========================================

    async def renew(self, transaction_id: UUID, renewed_by: User) -> RenewResult:
        """
        Extend the due date of an issued loan.

        Rules:
            1. Students may only renew their own loans and must be approved
            2. Status must be ISSUED (overdue loans cannot be renewed)
            3. renewal_count < MAX_RENEWALS
            4. No unpaid fine on the transaction

        Action:
            - due_date = now + LOAN_PERIOD_DAYS
            - renewal_count += 1
            - history row (old due, new due, actor, now)

        Raises:
            TransactionNotFoundError: Unknown id
            NotOwnerError / AccountPendingError: Caller checks
            NotRenewableError, RenewalLimitReachedError, UnpaidFineError
        """
        transaction = await self.transaction_repo.get_with_relations(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError()

        if not renewed_by.is_staff:
            if transaction.borrower_id != renewed_by.id:
                raise NotOwnerError()
            if not renewed_by.is_approved:
                raise AccountPendingError()

        if transaction.status != TransactionStatus.ISSUED:
            raise NotRenewableError()

        max_renewals = self.settings.MAX_RENEWALS
        if transaction.renewal_count >= max_renewals:
            raise RenewalLimitReachedError(
                f"Maximum renewal limit reached ({max_renewals})"
            )

        if transaction.has_unpaid_fine:
            raise UnpaidFineError()

        now = utc_now()
        previous_due_date = transaction.due_date
        new_due_date = now + timedelta(days=self.settings.LOAN_PERIOD_DAYS)

        try:
            extended = await self.transaction_repo.extend_due_date(
                transaction.id,
                new_due_date=new_due_date,
                max_renewals=max_renewals,
                now=now,
            )
            if not extended:
                raise await self._renewal_conflict(transaction.id, max_renewals)

            await self.transaction_repo.add_renewal(
                transaction_id=transaction.id,
                old_due_date=previous_due_date,
                new_due_date=new_due_date,
                renewed_by_id=renewed_by.id,
                renewed_at=now,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        transaction = await self.transaction_repo.get_with_relations(transaction_id)
        logger.info(
            f"Renewed transaction {transaction.id} "
            f"({transaction.renewal_count}/{max_renewals}, due {new_due_date:%Y-%m-%d})"
        )
        await self.cache.invalidate_stats()

        return RenewResult(
            transaction=self._to_read(transaction),
            previous_due_date=previous_due_date,
            new_due_date=new_due_date,
            renewals_left=max_renewals - transaction.renewal_count,
        )

    # ==========================================
    # Fine payment
    # ==========================================

    async def pay_fine(
        self,
        transaction_id: UUID,
        amount: Decimal | None = None,
    ) -> TransactionRead:
        """
        Mark the fine of a transaction as paid.

        The borrower's total_fines is an accumulated history and is not
        reduced by a payment. When a later, larger fine reopened a paid
        transaction only the difference is due, and the payment adds to
        what was paid before.

        Args:
            transaction_id: Transaction carrying the fine
            amount: Amount received (default: everything still owed)

        Raises:
            TransactionNotFoundError: Unknown id
            NoFineDueError: Fine is zero
            FineAlreadyPaidError: Fine was paid before
        """
        transaction = await self.transaction_repo.get_with_relations(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError()
        if transaction.fine_amount <= 0:
            raise NoFineDueError()
        if transaction.fine_paid:
            raise FineAlreadyPaidError()

        paid = amount or transaction.fine_due
        transaction.fine_paid = True
        transaction.fine_paid_at = utc_now()
        transaction.fine_paid_amount = (transaction.fine_paid_amount or 0) + paid
        await self.db.commit()

        transaction = await self.transaction_repo.get_with_relations(transaction_id)
        logger.info(
            f"Fine paid on transaction {transaction.id}: {transaction.fine_paid_amount}"
        )
        await self.cache.invalidate_stats()
        return self._to_read(transaction)

    # ==========================================
    # Reads
    # ==========================================

    async def get(self, transaction_id: UUID, requested_by: User) -> TransactionRead:
        """
        Fetch one transaction.

        Raises:
            TransactionNotFoundError: Unknown id
            NotOwnerError: A student asking for someone else's transaction
        """
        transaction = await self.transaction_repo.get_with_relations(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError()
        if not requested_by.is_staff and transaction.borrower_id != requested_by.id:
            raise NotOwnerError()
        return self._to_read(transaction)

    async def list_transactions(
        self,
        borrower_id: UUID | None = None,
        book_id: UUID | None = None,
        status: TransactionStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[TransactionRead], int]:
        """
        List transactions with filters and pagination.

        Returns:
            Tuple (transactions, total)
        """
        transactions, total = await self.transaction_repo.search(
            borrower_id=borrower_id,
            book_id=book_id,
            status=status,
            page=page,
            page_size=page_size,
        )
        return [self._to_read(t) for t in transactions], total

    async def student_history(
        self,
        student_id: UUID,
        requested_by: User,
        status: TransactionStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[TransactionRead], int]:
        """
        Transactions of one student; students can only see their own.

        Raises:
            NotOwnerError: A student asking for another student's history
        """
        if not requested_by.is_staff and requested_by.id != student_id:
            raise NotOwnerError("You can only view your own transactions")
        return await self.list_transactions(
            borrower_id=student_id,
            status=status,
            page=page,
            page_size=page_size,
        )

    async def overdue(self) -> list[TransactionRead]:
        """Loans past due and not returned, with the fine accrued so far."""
        transactions = await self.transaction_repo.get_overdue(utc_now())
        return [self._to_read(t) for t in transactions]

    async def due_soon(self, days: int | None = None) -> list[TransactionRead]:
        """Issued loans due within ``days`` that have not been reminded yet."""
        window = days if days is not None else self.settings.DUE_SOON_DAYS
        transactions = await self.transaction_repo.get_due_soon(utc_now(), window)
        return [self._to_read(t) for t in transactions]

    async def stats(self) -> TransactionStats:
        """Dashboard counters, served from the Redis cache when fresh."""
        cached = await self.cache.get_stats()
        if cached is not None:
            return TransactionStats.model_validate(cached)

        raw = await self.transaction_repo.stats()
        by_status = raw["by_status"]
        stats = TransactionStats(
            total_transactions=raw["total_transactions"],
            by_status=by_status,
            active=(
                by_status.get(TransactionStatus.ISSUED.value, 0)
                + by_status.get(TransactionStatus.OVERDUE.value, 0)
            ),
            total_fines=raw["total_fines"],
            unpaid_fines=raw["unpaid_fines"],
        )
        await self.cache.set_stats(stats.model_dump(mode="json"))
        return stats

    # ==========================================
    # Helpers
    # ==========================================

    async def _renewal_conflict(self, transaction_id: UUID, max_renewals: int) -> Exception:
        """Error for a renewal whose guarded update lost to a concurrent change."""
        current = await self.transaction_repo.get_with_relations(transaction_id)
        if current is None or current.status != TransactionStatus.ISSUED:
            return NotRenewableError()
        return RenewalLimitReachedError(
            f"Maximum renewal limit reached ({max_renewals})"
        )

    def accrued_fine(self, transaction: Transaction) -> Decimal:
        """Fine a return would charge right now; the recorded fine once closed."""
        if transaction.is_active:
            return calculate_fine(
                transaction.due_date,
                None,
                self.settings.FINE_PER_DAY,
            )
        return transaction.fine_amount

    def _to_read(self, transaction: Transaction) -> TransactionRead:
        return TransactionRead.from_transaction(
            transaction,
            accrued_fine=self.accrued_fine(transaction),
        )
