"""
SQLAlchemy models.

Every model is imported here so Alembic sees the full metadata.
"""

from lms.models.enums import (
    AccountStatus,
    BookCategory,
    BookCondition,
    BookStatus,
    FineReason,
    ReturnCondition,
    TransactionStatus,
    UserRole,
)
from lms.models.user import User
from lms.models.book import Book
from lms.models.transaction import OverdueNotice, Transaction, TransactionRenewal

__all__ = [
    "AccountStatus",
    "BookCategory",
    "BookCondition",
    "BookStatus",
    "FineReason",
    "ReturnCondition",
    "TransactionStatus",
    "UserRole",
    "User",
    "Book",
    "Transaction",
    "TransactionRenewal",
    "OverdueNotice",
]
