"""
Circulation endpoints.

Contracts:
    - POST /transactions/issue: Issue a book (staff)
    - POST /transactions/return: Return a book (staff)
    - PUT /transactions/return/{id}: Self-service return (borrower or staff)
    - PUT /transactions/collect/{id}: Staff-initiated return
    - POST /transactions/{id}/renew: Renew a loan (borrower or staff)
    - POST /transactions/{id}/pay-fine: Record a fine payment (staff)
    - GET /transactions: List with filters (staff)
    - GET /transactions/my: Caller's own transactions
    - GET /transactions/overdue: Overdue loans with accrued fines (staff)
    - GET /transactions/due-soon: Loans due within N days (staff)
    - GET /transactions/stats: Dashboard counters (staff)
    - GET /transactions/student/{id}: A student's history (self or staff)
    - GET /transactions/{id}: One transaction (owner or staff)

Status codes:
    - 200: Success
    - 201: Transaction created
    - 400: Business rule violated (see ``errors`` for the code)
    - 401: Not authenticated
    - 403: Not allowed
    - 404: Unknown transaction, student or book
    - 422: Invalid payload
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from lms.core.deps import CurrentUser, DbSession, StaffUser
from lms.models.enums import TransactionStatus
from lms.schemas.base import ApiResponse, PaginatedResponse
from lms.schemas.transaction import (
    IssueRequest,
    PayFineRequest,
    RenewResult,
    ReturnRequest,
    ReturnResult,
    SelfReturnRequest,
    TransactionRead,
    TransactionStats,
)
from lms.services.transaction import TransactionService

router = APIRouter(prefix="/transactions", tags=["Transactions"])


def _return_message(result: ReturnResult) -> str:
    if result.fine > 0:
        return f"Book returned successfully with fine of ₹{result.fine}"
    return "Book returned successfully"


# ==========================================
# Lifecycle
# ==========================================

@router.post(
    "/issue",
    response_model=ApiResponse[TransactionRead],
    status_code=status.HTTP_201_CREATED,
    summary="Issue a book",
)
async def issue_book(
    data: IssueRequest,
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[TransactionRead]:
    """
    Issue a book to an approved student.

    Fails with not_approved, book_unavailable, borrow_limit_reached,
    duplicate_loan or outstanding_fine and changes nothing in that case.
    """
    service = TransactionService(db)
    transaction = await service.issue(data, issued_by=staff)
    return ApiResponse.ok(transaction, "Book issued successfully")


@router.post(
    "/return",
    response_model=ApiResponse[ReturnResult],
    summary="Return a book",
)
async def return_book(
    data: ReturnRequest,
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[ReturnResult]:
    service = TransactionService(db)
    result = await service.return_book(
        data.transaction_id,
        returned_by=staff,
        condition=data.condition,
        notes=data.notes,
    )
    return ApiResponse.ok(result, _return_message(result))


@router.put(
    "/return/{transaction_id}",
    response_model=ApiResponse[ReturnResult],
    summary="Return my book",
)
async def self_return_book(
    transaction_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    data: SelfReturnRequest | None = None,
) -> ApiResponse[ReturnResult]:
    """Self-service return. Students can only return their own books."""
    data = data or SelfReturnRequest()
    service = TransactionService(db)
    result = await service.return_book(
        transaction_id,
        returned_by=current_user,
        condition=data.condition,
        notes=data.notes,
    )
    return ApiResponse.ok(result, _return_message(result))


@router.put(
    "/collect/{transaction_id}",
    response_model=ApiResponse[ReturnResult],
    summary="Collect a book from a student",
)
async def collect_book(
    transaction_id: UUID,
    db: DbSession,
    staff: StaffUser,
    data: SelfReturnRequest | None = None,
) -> ApiResponse[ReturnResult]:
    data = data or SelfReturnRequest()
    service = TransactionService(db)
    result = await service.return_book(
        transaction_id,
        returned_by=staff,
        condition=data.condition,
        notes=data.notes,
    )
    return ApiResponse.ok(result, _return_message(result))


@router.post(
    "/{transaction_id}/renew",
    response_model=ApiResponse[RenewResult],
    summary="Renew a loan",
)
async def renew_loan(
    transaction_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> ApiResponse[RenewResult]:
    """
    Renew an issued loan for another loan period.

    Fails with not_renewable, renewal_limit_reached or unpaid_fine.
    """
    service = TransactionService(db)
    result = await service.renew(transaction_id, renewed_by=current_user)
    return ApiResponse.ok(
        result,
        f"Book renewed successfully. New due date: {result.new_due_date:%d %b %Y}",
    )


@router.post(
    "/{transaction_id}/pay-fine",
    response_model=ApiResponse[TransactionRead],
    summary="Pay a fine",
)
async def pay_fine(
    transaction_id: UUID,
    db: DbSession,
    staff: StaffUser,
    data: PayFineRequest | None = None,
) -> ApiResponse[TransactionRead]:
    data = data or PayFineRequest()
    service = TransactionService(db)
    transaction = await service.pay_fine(transaction_id, amount=data.amount)
    return ApiResponse.ok(transaction, "Fine paid successfully")


# ==========================================
# Reads
# ==========================================

@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[TransactionRead]],
    summary="List transactions",
)
async def list_transactions(
    db: DbSession,
    staff: StaffUser,
    status_filter: TransactionStatus | None = Query(None, alias="status"),
    borrower_id: UUID | None = Query(None, description="Filter by student"),
    book_id: UUID | None = Query(None, description="Filter by book"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> ApiResponse[PaginatedResponse[TransactionRead]]:
    service = TransactionService(db)
    items, total = await service.list_transactions(
        borrower_id=borrower_id,
        book_id=book_id,
        status=status_filter,
        page=page,
        page_size=page_size,
    )
    return ApiResponse.ok(
        PaginatedResponse[TransactionRead].create(items, total, page, page_size)
    )


@router.get(
    "/my",
    response_model=ApiResponse[PaginatedResponse[TransactionRead]],
    summary="My transactions",
)
async def my_transactions(
    db: DbSession,
    current_user: CurrentUser,
    status_filter: TransactionStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> ApiResponse[PaginatedResponse[TransactionRead]]:
    service = TransactionService(db)
    items, total = await service.list_transactions(
        borrower_id=current_user.id,
        status=status_filter,
        page=page,
        page_size=page_size,
    )
    return ApiResponse.ok(
        PaginatedResponse[TransactionRead].create(items, total, page, page_size)
    )


@router.get(
    "/overdue",
    response_model=ApiResponse[list[TransactionRead]],
    summary="Overdue loans",
)
async def overdue_transactions(
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[list[TransactionRead]]:
    service = TransactionService(db)
    return ApiResponse.ok(await service.overdue())


@router.get(
    "/due-soon",
    response_model=ApiResponse[list[TransactionRead]],
    summary="Loans due soon",
)
async def due_soon_transactions(
    db: DbSession,
    staff: StaffUser,
    days: int | None = Query(None, ge=1, le=30, description="Window in days (default 3)"),
) -> ApiResponse[list[TransactionRead]]:
    service = TransactionService(db)
    return ApiResponse.ok(await service.due_soon(days))


@router.get(
    "/stats",
    response_model=ApiResponse[TransactionStats],
    summary="Transaction statistics",
)
async def transaction_stats(
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[TransactionStats]:
    service = TransactionService(db)
    return ApiResponse.ok(await service.stats())


@router.get(
    "/student/{student_id}",
    response_model=ApiResponse[PaginatedResponse[TransactionRead]],
    summary="A student's transactions",
)
async def student_transactions(
    student_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    status_filter: TransactionStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> ApiResponse[PaginatedResponse[TransactionRead]]:
    service = TransactionService(db)
    items, total = await service.student_history(
        student_id,
        requested_by=current_user,
        status=status_filter,
        page=page,
        page_size=page_size,
    )
    return ApiResponse.ok(
        PaginatedResponse[TransactionRead].create(items, total, page, page_size)
    )


@router.get(
    "/{transaction_id}",
    response_model=ApiResponse[TransactionRead],
    summary="Transaction details",
)
async def get_transaction(
    transaction_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> ApiResponse[TransactionRead]:
    service = TransactionService(db)
    return ApiResponse.ok(await service.get(transaction_id, requested_by=current_user))
