"""
Repository for User, including the guarded borrower counters.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.models.enums import AccountStatus, UserRole
from lms.models.user import User
from lms.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """CRUD for User plus borrower counter updates."""

    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        return await self.get_by_email(email) is not None

    async def student_code_exists(self, student_code: str) -> bool:
        result = await self.db.execute(
            select(func.count(User.id)).where(User.student_code == student_code)
        )
        return result.scalar_one() > 0

    async def search_students(
        self,
        approved: bool | None = None,
        active: bool | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[User], int]:
        """
        List students with optional approval and text filters.

        Args:
            approved: Only approved (True) or pending (False) students
            active: Only active (True) or deactivated (False) accounts
            search: Partial match on name, email or roll number
            page: Page number (1-based)
            page_size: Page size

        Returns:
            Tuple (students, total)
        """
        conditions = [User.role == UserRole.STUDENT]
        if approved is not None:
            conditions.append(User.is_approved.is_(approved))
        if active is not None:
            status_matches = User.account_status == AccountStatus.ACTIVE
            conditions.append(status_matches if active else ~status_matches)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    User.name.ilike(pattern),
                    User.email.ilike(pattern),
                    User.student_code.ilike(pattern),
                )
            )

        count_result = await self.db.execute(
            select(func.count(User.id)).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def student_stats(self) -> dict:
        """
        Counts over active student accounts.

        Returns:
            Dict with total, approved, pending and by_year (approved
            students per study year, as (year, count) pairs)
        """
        active_students = (
            User.role == UserRole.STUDENT,
            User.account_status == AccountStatus.ACTIVE,
        )

        result = await self.db.execute(
            select(User.is_approved, func.count(User.id))
            .where(*active_students)
            .group_by(User.is_approved)
        )
        by_approval = {bool(approved): count for approved, count in result.all()}

        result = await self.db.execute(
            select(User.year, func.count(User.id))
            .where(*active_students, User.is_approved.is_(True))
            .group_by(User.year)
            .order_by(User.year)
        )
        by_year = [(year, count) for year, count in result.all()]

        approved = by_approval.get(True, 0)
        pending = by_approval.get(False, 0)
        return {
            "total": approved + pending,
            "approved": approved,
            "pending": pending,
            "by_year": by_year,
        }

    # ==========================================
    # Borrower counters
    # ==========================================

    async def increment_borrowed(self, user_id: UUID, limit: int) -> bool:
        """
        Atomically add one to ``currently_borrowed`` if below ``limit``.

        Returns:
            True if the row was updated
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.currently_borrowed < limit)
            .values(currently_borrowed=User.currently_borrowed + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_return(self, user_id: UUID, fine: Decimal) -> bool:
        """
        Atomically decrement ``currently_borrowed`` (floored at 0) and add
        ``fine`` to ``total_fines``.
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                currently_borrowed=case(
                    (User.currently_borrowed > 0, User.currently_borrowed - 1),
                    else_=0,
                ),
                total_fines=User.total_fines + fine,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
