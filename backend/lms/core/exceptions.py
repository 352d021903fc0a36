"""
Domain errors raised by the services.

Each error is an HTTPException carrying a stable ``code`` so the envelope
handler can report it in ``errors`` and clients can branch on it without
parsing messages.

Taxonomy:
    - 404: unknown ids (student, book, transaction)
    - 400: state conflicts (approval, stock, limits, fines, renewals)
    - 403: ownership / role violations
"""

from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for errors with a machine-readable code."""

    code: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None):
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
        )


# ==========================================
# Not found
# ==========================================

class NotFoundError(DomainError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class StudentNotFoundError(NotFoundError):
    code = "student_not_found"
    default_message = "Student not found"


class BookNotFoundError(NotFoundError):
    code = "book_not_found"
    default_message = "Book not found"


class TransactionNotFoundError(NotFoundError):
    code = "transaction_not_found"
    default_message = "Transaction not found"


# ==========================================
# Issue
# ==========================================

class NotApprovedError(DomainError):
    code = "not_approved"
    default_message = "Student account is not approved"


class BookUnavailableError(DomainError):
    code = "book_unavailable"
    default_message = "Book is not available for issue"


class BorrowLimitReachedError(DomainError):
    code = "borrow_limit_reached"
    default_message = "Student has reached the maximum borrowing limit"


class DuplicateLoanError(DomainError):
    code = "duplicate_loan"
    default_message = "Student already has this book issued"


class OutstandingFineError(DomainError):
    code = "outstanding_fine"
    default_message = "Student has unpaid fines. Please clear dues before issuing new books."


# ==========================================
# Return / renew / fines
# ==========================================

class AlreadyReturnedError(DomainError):
    code = "already_returned"
    default_message = "Book is already returned"


class NotRenewableError(DomainError):
    code = "not_renewable"
    default_message = "Only issued books can be renewed"


class RenewalLimitReachedError(DomainError):
    code = "renewal_limit_reached"
    default_message = "Maximum renewal limit reached"


class UnpaidFineError(DomainError):
    code = "unpaid_fine"
    default_message = "Please clear outstanding fines before renewal"


class NoFineDueError(DomainError):
    code = "no_fine_due"
    default_message = "No fine to pay"


class FineAlreadyPaidError(DomainError):
    code = "fine_already_paid"
    default_message = "Fine already paid"


# ==========================================
# Accounts / catalog
# ==========================================

class EmailTakenError(DomainError):
    code = "email_taken"
    default_message = "Email is already registered"


class StudentCodeTakenError(DomainError):
    code = "student_code_taken"
    default_message = "Roll number is already registered"


class InvalidPasswordError(DomainError):
    code = "invalid_password"
    default_message = "Current password is incorrect"


class InvalidBookCountsError(DomainError):
    code = "invalid_book_counts"
    default_message = "Total copies cannot be lower than copies currently on loan"


class ForbiddenError(DomainError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotOwnerError(ForbiddenError):
    code = "not_owner"
    default_message = "You can only act on your own transactions"


class AccountPendingError(ForbiddenError):
    code = "account_pending"
    default_message = "Account pending approval. Please contact the administrator."
