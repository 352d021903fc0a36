"""
Integration tests for the loan lifecycle: issue, return, renew and fine
payment against a real (SQLite) database.

The service clock is pinned with ``at(day)`` so due dates and fines are
deterministic.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from conftest import at, make_book, make_user
from lms.core.exceptions import (
    AlreadyReturnedError,
    BookUnavailableError,
    BorrowLimitReachedError,
    DuplicateLoanError,
    NoFineDueError,
    NotApprovedError,
    OutstandingFineError,
    RenewalLimitReachedError,
    UnpaidFineError,
)
from lms.models.enums import TransactionStatus
from lms.models.transaction import Transaction
from lms.schemas.transaction import IssueRequest
from lms.services.notification import NotificationKind
from lms.services.sweep import SweepService
from lms.services.transaction import TransactionService


@pytest.fixture
def clock():
    """Service clock, starts at day 0."""
    with patch("lms.services.transaction.utc_now") as now:
        now.return_value = at(0)
        yield now


@pytest.fixture
def service(test_db, notifier, clock):
    return TransactionService(test_db, notifier=notifier)


async def issue(service, student, book, librarian):
    return await service.issue(
        IssueRequest(borrower_id=student.id, book_id=book.id),
        librarian,
    )


async def count_transactions(db) -> int:
    result = await db.execute(select(func.count(Transaction.id)))
    return result.scalar_one()


# ==========================================
# Issue and return
# ==========================================

class TestIssueAndReturn:

    @pytest.mark.anyio
    async def test_counters_follow_the_loan(
        self, test_db, service, clock, notifier, sender, student, librarian
    ):
        book = await make_book(test_db, copies=2)

        issued = await issue(service, student, book, librarian)

        assert issued.status == TransactionStatus.ISSUED
        assert issued.due_date == at(14)
        assert issued.issued_by_id == librarian.id
        assert book.available_copies == 1
        assert student.currently_borrowed == 1

        clock.return_value = at(5)
        result = await service.return_book(issued.id, librarian)

        assert result.fine == Decimal("0")
        assert result.transaction.status == TransactionStatus.RETURNED
        assert result.transaction.returned_at == at(5)
        assert book.available_copies == 2
        assert student.currently_borrowed == 0

        await notifier.drain()
        kinds = [n.kind for n in sender.sent]
        assert kinds == [NotificationKind.BOOK_ISSUED, NotificationKind.BOOK_RETURNED]

    @pytest.mark.anyio
    async def test_second_return_is_rejected(
        self, test_db, service, clock, student, librarian
    ):
        book = await make_book(test_db, copies=1)
        issued = await issue(service, student, book, librarian)

        clock.return_value = at(20)
        await service.return_book(issued.id, librarian)

        with pytest.raises(AlreadyReturnedError):
            await service.return_book(issued.id, librarian)

        assert book.available_copies == 1
        assert student.currently_borrowed == 0
        assert student.total_fines == Decimal("60")

    @pytest.mark.anyio
    async def test_student_can_return_own_book(
        self, test_db, service, clock, student, librarian
    ):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)

        clock.return_value = at(3)
        result = await service.return_book(issued.id, student)

        assert result.transaction.returned_by_id == student.id

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "return_day, expected_fine",
        [(14, Decimal("0")), (15, Decimal("10")), (20, Decimal("60"))],
        ids=["on-due-date", "one-day-late", "six-days-late"],
    )
    async def test_fine_on_return(
        self, test_db, service, clock, student, librarian, return_day, expected_fine
    ):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)

        clock.return_value = at(return_day)
        result = await service.return_book(issued.id, librarian)

        assert result.fine == expected_fine
        assert result.transaction.fine.amount == expected_fine
        assert student.total_fines == expected_fine

    @pytest.mark.anyio
    async def test_one_second_late_is_a_full_day(
        self, test_db, service, clock, student, librarian
    ):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)

        clock.return_value = at(14) + timedelta(seconds=1)
        result = await service.return_book(issued.id, librarian)

        assert result.days_overdue == 1
        assert result.fine == Decimal("10")


# ==========================================
# Issue rules
# ==========================================

class TestIssueRules:

    @pytest.mark.anyio
    async def test_pending_student_cannot_borrow(self, test_db, service, librarian):
        pending = await make_user(test_db, approved=False)
        book = await make_book(test_db)

        with pytest.raises(NotApprovedError):
            await issue(service, pending, book, librarian)

        assert book.available_copies == 1
        assert await count_transactions(test_db) == 0

    @pytest.mark.anyio
    async def test_last_copy_goes_to_one_student(self, test_db, service, student, librarian):
        other = await make_user(test_db, name="Other Student")
        book = await make_book(test_db, copies=1)

        await issue(service, student, book, librarian)

        with pytest.raises(BookUnavailableError) as exc_info:
            await issue(service, other, book, librarian)

        assert exc_info.value.code == "book_unavailable"
        assert book.available_copies == 0
        assert other.currently_borrowed == 0

    @pytest.mark.anyio
    async def test_same_book_twice(self, test_db, service, student, librarian):
        book = await make_book(test_db, copies=3)
        await issue(service, student, book, librarian)

        with pytest.raises(DuplicateLoanError):
            await issue(service, student, book, librarian)

        assert book.available_copies == 2

    @pytest.mark.anyio
    async def test_borrow_limit(self, test_db, service, student, librarian):
        for i in range(5):
            book = await make_book(test_db, title=f"Volume {i + 1}")
            await issue(service, student, book, librarian)

        sixth = await make_book(test_db, title="Volume 6")
        with pytest.raises(BorrowLimitReachedError):
            await issue(service, student, sixth, librarian)

        assert student.currently_borrowed == 5
        assert sixth.available_copies == 1

    @pytest.mark.anyio
    async def test_outstanding_fine_blocks_issue_until_paid(
        self, test_db, service, clock, student, librarian
    ):
        first = await make_book(test_db, title="Electric Machinery")
        issued = await issue(service, student, first, librarian)
        clock.return_value = at(19)
        returned = await service.return_book(issued.id, librarian)
        assert returned.fine == Decimal("50")

        second = await make_book(test_db, title="Network Analysis")
        with pytest.raises(OutstandingFineError) as exc_info:
            await issue(service, student, second, librarian)

        assert "₹50.00" in exc_info.value.detail
        assert await count_transactions(test_db) == 1
        assert second.available_copies == 1

        await service.pay_fine(issued.id)
        await issue(service, student, second, librarian)

        assert await count_transactions(test_db) == 2


# ==========================================
# Renewals
# ==========================================

class TestRenew:

    @pytest.mark.anyio
    async def test_third_renewal_fails(self, test_db, service, clock, student, librarian):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)

        clock.return_value = at(10)
        first = await service.renew(issued.id, student)
        assert first.previous_due_date == at(14)
        assert first.new_due_date == at(24)
        assert first.renewals_left == 1

        clock.return_value = at(20)
        second = await service.renew(issued.id, student)
        assert second.new_due_date == at(34)
        assert second.renewals_left == 0

        with pytest.raises(RenewalLimitReachedError):
            await service.renew(issued.id, student)

        view = await service.get(issued.id, student)
        assert view.renewal_count == 2
        assert view.due_date == at(34)
        assert [r.new_due_date for r in view.renewals] == [at(24), at(34)]

    @pytest.mark.anyio
    async def test_unpaid_fine_blocks_renewal(self, test_db, service, student, librarian):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)

        transaction = await test_db.get(Transaction, issued.id)
        transaction.fine_amount = Decimal("30.00")
        await test_db.commit()

        with pytest.raises(UnpaidFineError):
            await service.renew(issued.id, student)


# ==========================================
# Fine payment
# ==========================================

class TestPayFine:

    @pytest.mark.anyio
    async def test_nothing_to_pay(self, test_db, service, clock, student, librarian):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)
        clock.return_value = at(7)
        await service.return_book(issued.id, librarian)

        with pytest.raises(NoFineDueError):
            await service.pay_fine(issued.id)

    @pytest.mark.anyio
    async def test_payment_keeps_fine_history(
        self, test_db, service, clock, student, librarian
    ):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)
        clock.return_value = at(16)
        await service.return_book(issued.id, librarian)

        paid = await service.pay_fine(issued.id)

        assert paid.fine.paid is True
        assert paid.fine.paid_amount == Decimal("20")
        assert paid.fine.paid_at == at(16)
        assert student.total_fines == Decimal("20")

    @pytest.mark.anyio
    async def test_stats_reflect_fines(self, test_db, service, clock, student, librarian):
        first = await make_book(test_db, title="Signals and Systems")
        second = await make_book(test_db, title="Digital Design")
        late = await issue(service, student, first, librarian)
        await issue(service, student, second, librarian)
        clock.return_value = at(17)
        await service.return_book(late.id, librarian)

        stats = await service.stats()

        assert stats.total_transactions == 2
        assert stats.active == 1
        assert stats.by_status["returned"] == 1
        assert stats.total_fines == Decimal("30")
        assert stats.unpaid_fines == Decimal("30")

    @pytest.mark.anyio
    async def test_payment_while_overdue_does_not_settle_the_return_fine(
        self, test_db, service, clock, notifier, student, librarian
    ):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)

        sweep = SweepService(test_db, notifier=notifier)
        await sweep.mark_overdue(at(16))
        await sweep.send_overdue_notices(at(16))
        clock.return_value = at(16)
        paid = await service.pay_fine(issued.id)
        assert paid.fine.paid_amount == Decimal("20")

        clock.return_value = at(30)
        returned = await service.return_book(issued.id, librarian)

        assert returned.fine == Decimal("160")
        assert returned.transaction.fine.paid is False
        assert returned.transaction.fine.outstanding == Decimal("140")
        assert await service.transaction_repo.unpaid_fine_total(student.id) == Decimal("140")
        assert (await service.stats()).unpaid_fines == Decimal("140")

        other = await make_book(test_db, title="Network Analysis")
        with pytest.raises(OutstandingFineError) as exc_info:
            await issue(service, student, other, librarian)
        assert "₹140.00" in exc_info.value.detail

        settled = await service.pay_fine(issued.id)

        assert settled.fine.paid_amount == Decimal("160")
        assert settled.fine.outstanding == Decimal("0")
        assert await service.transaction_repo.unpaid_fine_total(student.id) == Decimal("0")


# ==========================================
# Concurrent requests on one loan
# ==========================================

def rival_after_load(service, rival):
    """Run ``rival(transaction_id)`` once, right after ``service`` loads the loan."""
    load = service.transaction_repo.get_with_relations
    pending = [rival]

    async def load_then_rival(transaction_id):
        loaded = await load(transaction_id)
        if pending:
            await pending.pop()(transaction_id)
        return loaded

    return patch.object(
        service.transaction_repo, "get_with_relations", side_effect=load_then_rival
    )


class TestConcurrentRequests:

    @pytest.mark.anyio
    async def test_only_one_of_two_returns_counts(
        self, test_db, session_factory, service, clock, notifier, student, librarian
    ):
        holder = await make_user(test_db, name="Copy Holder")
        book = await make_book(test_db, copies=2)
        issued = await issue(service, student, book, librarian)
        await issue(service, holder, book, librarian)
        assert book.available_copies == 0
        clock.return_value = at(20)

        async with session_factory() as other_session:
            rival = TransactionService(other_session, notifier=notifier)

            async def return_first(transaction_id):
                await rival.return_book(transaction_id, librarian)

            with rival_after_load(service, return_first):
                with pytest.raises(AlreadyReturnedError):
                    await service.return_book(issued.id, librarian)

        await test_db.refresh(book)
        await test_db.refresh(student)
        assert book.available_copies == 1
        assert student.currently_borrowed == 0
        assert student.total_fines == Decimal("60")

    @pytest.mark.anyio
    async def test_renewals_racing_for_the_last_slot(
        self, test_db, session_factory, service, clock, notifier, student, librarian
    ):
        book = await make_book(test_db)
        issued = await issue(service, student, book, librarian)
        clock.return_value = at(5)
        await service.renew(issued.id, student)
        clock.return_value = at(8)

        async with session_factory() as other_session:
            rival = TransactionService(other_session, notifier=notifier)

            async def renew_first(transaction_id):
                await rival.renew(transaction_id, librarian)

            with rival_after_load(service, renew_first):
                with pytest.raises(RenewalLimitReachedError):
                    await service.renew(issued.id, student)

        await test_db.refresh(librarian)
        view = await service.get(issued.id, librarian)
        assert view.renewal_count == 2
        assert len(view.renewals) == 2
        assert view.due_date == at(22)
