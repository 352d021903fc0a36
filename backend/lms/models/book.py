"""
Book model. One row per title; copies are tracked as counters.
"""

import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from lms.db.session import Base
from lms.models.base import UUIDMixin, TimestampMixin, enum_type
from lms.models.enums import BookCategory, BookCondition, BookStatus


class Book(Base, UUIDMixin, TimestampMixin):
    """
    Catalog entry.

    ``available_copies`` is owned by the circulation operations: issue
    decrements it and return increments it, both through guarded UPDATEs.
    The table constraint keeps ``0 <= available_copies <= total_copies``.

    Attributes:
        id: Unique UUID
        isbn: ISBN (not unique, several editions share records)
        title: Title
        authors: Comma-separated author names
        category: Department category
        total_copies: Copies owned (1..100)
        available_copies: Copies on the shelf
        condition: Overall condition
        status: active or archived
        added_by_id: Staff member who created the record
    """
    __tablename__ = "books"

    isbn: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    authors: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[BookCategory] = mapped_column(
        enum_type(BookCategory, "book_category"),
        nullable=False,
        index=True,
    )
    subject: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    publisher: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    published_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    edition: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False)
    condition: Mapped[BookCondition] = mapped_column(
        enum_type(BookCondition, "book_condition"),
        nullable=False,
        default=BookCondition.GOOD,
    )
    status: Mapped[BookStatus] = mapped_column(
        enum_type(BookStatus, "book_status"),
        nullable=False,
        default=BookStatus.ACTIVE,
        index=True,
    )
    added_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="ck_books_total_copies"),
        CheckConstraint("available_copies >= 0", name="ck_books_available_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies",
            name="ck_books_available_within_total",
        ),
    )

    def __repr__(self) -> str:
        return f"<Book {self.title} ({self.available_copies}/{self.total_copies})>"

    @property
    def is_available(self) -> bool:
        """True when the book is active and has a copy on the shelf."""
        return self.status == BookStatus.ACTIVE and self.available_copies > 0

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies
