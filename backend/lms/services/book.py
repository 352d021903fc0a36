"""
Catalog service: create, update, archive and search books.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.exceptions import BookNotFoundError, InvalidBookCountsError
from lms.models.book import Book
from lms.models.enums import BookCategory, BookStatus
from lms.models.user import User
from lms.repositories.book import BookRepository
from lms.schemas.book import BookCreate, BookUpdate, join_authors

logger = logging.getLogger(__name__)


class BookService:
    """Service for the book catalog."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = BookRepository(db)

    async def get(self, book_id: UUID, include_archived: bool = False) -> Book:
        """
        Fetch a book.

        Raises:
            BookNotFoundError: Unknown id, or archived and not requested
        """
        book = await self.repo.get_by_id(book_id)
        if book is None:
            raise BookNotFoundError()
        if book.status == BookStatus.ARCHIVED and not include_archived:
            raise BookNotFoundError()
        return book

    async def search(
        self,
        query: str | None = None,
        category: BookCategory | None = None,
        available_only: bool = False,
        include_archived: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Book], int]:
        return await self.repo.search(
            query=query,
            category=category,
            available_only=available_only,
            include_archived=include_archived,
            page=page,
            page_size=page_size,
        )

    async def create(self, data: BookCreate, added_by: User) -> Book:
        """Add a book; every copy starts on the shelf."""
        book = await self.repo.add(
            isbn=data.isbn,
            title=data.title,
            authors=join_authors(data.authors),
            category=data.category,
            subject=data.subject,
            publisher=data.publisher,
            published_year=data.published_year,
            edition=data.edition,
            description=data.description,
            total_copies=data.total_copies,
            available_copies=data.total_copies,
            condition=data.condition,
            status=BookStatus.ACTIVE,
            added_by_id=added_by.id,
        )
        await self.db.commit()
        logger.info(f"Added book {book.id} '{book.title}' ({book.total_copies} copies)")
        return book

    async def update(self, book_id: UUID, data: BookUpdate) -> Book:
        """
        Update a book.

        Changing ``total_copies`` moves ``available_copies`` by the same
        delta, so copies on loan stay accounted for.

        Raises:
            BookNotFoundError: Unknown id
            InvalidBookCountsError: New total below the copies on loan
        """
        book = await self.get(book_id, include_archived=True)
        changes = data.model_dump(exclude_unset=True)

        if "authors" in changes and changes["authors"] is not None:
            changes["authors"] = join_authors(changes["authors"])

        new_total = changes.pop("total_copies", None)
        if new_total is not None and new_total != book.total_copies:
            if new_total < book.copies_on_loan:
                raise InvalidBookCountsError(
                    f"Total copies cannot be lower than the {book.copies_on_loan} "
                    f"copies currently on loan"
                )
            book.available_copies += new_total - book.total_copies
            book.total_copies = new_total

        await self.repo.update(book, **changes)
        await self.db.commit()
        logger.info(f"Updated book {book.id}")
        return book

    async def archive(self, book_id: UUID) -> Book:
        """Archive a book. It disappears from the catalog and cannot be issued."""
        book = await self.get(book_id, include_archived=True)
        book.status = BookStatus.ARCHIVED
        await self.db.commit()
        logger.info(f"Archived book {book.id}")
        return book

    async def categories(self) -> list[tuple[BookCategory, int]]:
        return await self.repo.category_counts()

    async def popular(self, limit: int = 10) -> list[tuple[Book, int]]:
        """Most issued active books, most popular first."""
        return await self.repo.most_issued(limit)
