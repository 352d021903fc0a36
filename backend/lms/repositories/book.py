"""
Repository for Book, including the guarded stock counters.
"""

from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.models.book import Book
from lms.models.enums import BookCategory, BookStatus
from lms.models.transaction import Transaction
from lms.repositories.base import BaseRepository


class BookRepository(BaseRepository[Book]):
    """CRUD for Book plus stock counter updates."""

    def __init__(self, db: AsyncSession):
        super().__init__(Book, db)

    async def search(
        self,
        query: str | None = None,
        category: BookCategory | None = None,
        available_only: bool = False,
        include_archived: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Book], int]:
        """
        Search the catalog with filters and pagination.

        Args:
            query: Partial match on title, authors, subject or ISBN
            category: Category filter
            available_only: Only books with a copy on the shelf
            include_archived: Include archived books (staff views)
            page: Page number
            page_size: Page size

        Returns:
            Tuple (books, total)
        """
        conditions = []
        if not include_archived:
            conditions.append(Book.status == BookStatus.ACTIVE)
        if query:
            pattern = f"%{query}%"
            conditions.append(
                or_(
                    Book.title.ilike(pattern),
                    Book.authors.ilike(pattern),
                    Book.subject.ilike(pattern),
                    Book.isbn.ilike(pattern),
                )
            )
        if category:
            conditions.append(Book.category == category)
        if available_only:
            conditions.append(Book.available_copies > 0)

        count_result = await self.db.execute(
            select(func.count(Book.id)).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(Book)
            .where(*conditions)
            .order_by(Book.title)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def category_counts(self) -> list[tuple[BookCategory, int]]:
        """Categories in use by active books, with the number of titles in each."""
        result = await self.db.execute(
            select(Book.category, func.count(Book.id))
            .where(Book.status == BookStatus.ACTIVE)
            .group_by(Book.category)
            .order_by(Book.category)
        )
        return [(category, count) for category, count in result.all()]

    async def most_issued(self, limit: int = 10) -> list[tuple[Book, int]]:
        """
        Active books ordered by how many times they have been issued.

        Books never issued are included (count 0) so a new catalog still
        fills the list; ties are broken by title.
        """
        times_issued = func.count(Transaction.id)
        result = await self.db.execute(
            select(Book, times_issued)
            .outerjoin(Transaction, Transaction.book_id == Book.id)
            .where(Book.status == BookStatus.ACTIVE)
            .group_by(Book.id)
            .order_by(times_issued.desc(), Book.title)
            .limit(limit)
        )
        return [(book, count) for book, count in result.all()]

    # ==========================================
    # Stock counters
    # ==========================================

    async def take_copy(self, book_id: UUID) -> bool:
        """
        Atomically take one copy off the shelf.

        The UPDATE only matches an active book with ``available_copies > 0``,
        so two concurrent issues cannot both take the last copy.

        Returns:
            True if a copy was taken
        """
        result = await self.db.execute(
            update(Book)
            .where(
                Book.id == book_id,
                Book.status == BookStatus.ACTIVE,
                Book.available_copies > 0,
            )
            .values(available_copies=Book.available_copies - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def put_back_copy(self, book_id: UUID) -> bool:
        """
        Atomically put one copy back on the shelf (never above total).

        Returns:
            True if the counter was incremented
        """
        result = await self.db.execute(
            update(Book)
            .where(
                Book.id == book_id,
                Book.available_copies < Book.total_copies,
            )
            .values(available_copies=Book.available_copies + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
