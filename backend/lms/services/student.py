"""
Student administration: listing, approval, rejection, profile updates
and deactivation.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.exceptions import ForbiddenError, StudentNotFoundError
from lms.models.enums import AccountStatus, UserRole
from lms.models.user import User
from lms.repositories.user import UserRepository
from lms.schemas.user import StudentStats, StudentUpdate, YearCount
from lms.services.notification import NotificationService, get_notification_service

logger = logging.getLogger(__name__)


class StudentService:
    """Service for student accounts."""

    def __init__(self, db: AsyncSession, notifier: NotificationService | None = None):
        self.db = db
        self.repo = UserRepository(db)
        self.notifier = notifier or get_notification_service()

    async def get(self, student_id: UUID) -> User:
        """
        Fetch a student.

        Raises:
            StudentNotFoundError: Unknown id or not a student
        """
        student = await self.repo.get_by_id(student_id)
        if student is None or student.role != UserRole.STUDENT:
            raise StudentNotFoundError()
        return student

    async def list_students(
        self,
        approved: bool | None = None,
        active: bool | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[User], int]:
        return await self.repo.search_students(
            approved=approved,
            active=active,
            search=search,
            page=page,
            page_size=page_size,
        )

    async def approve(self, student_id: UUID) -> User:
        """
        Approve a pending student and notify them.

        Approving an already approved student is a no-op.
        """
        student = await self.get(student_id)
        if student.is_approved:
            return student

        student.is_approved = True
        await self.db.commit()
        logger.info(f"Approved student {student.id}")

        self.notifier.dispatch(
            self.notifier.account_approved(student.email, student.name)
        )
        return student

    async def deactivate(self, student_id: UUID) -> User:
        """
        Deactivate a student account.

        The row is kept (transactions reference it); the account can no
        longer log in or borrow.
        """
        student = await self.get(student_id)
        student.account_status = AccountStatus.DEACTIVATED
        await self.db.commit()
        logger.info(f"Deactivated student {student.id}")
        return student

    async def reject(self, student_id: UUID, reason: str | None = None) -> User:
        """
        Reject a registration.

        The account is left unapproved and deactivated, so it drops out of
        the pending list and can no longer log in. The student is notified
        with the reason, if one is given.
        """
        student = await self.get(student_id)
        student.is_approved = False
        student.account_status = AccountStatus.DEACTIVATED
        await self.db.commit()
        logger.info(f"Rejected student {student.id}")

        self.notifier.dispatch(
            self.notifier.account_rejected(student.email, student.name, reason)
        )
        return student

    async def update_profile(
        self,
        student_id: UUID,
        data: StudentUpdate,
        updated_by: User,
    ) -> User:
        """
        Update name, phone or study year.

        Raises:
            ForbiddenError: Caller is neither the student nor an admin
            StudentNotFoundError: Unknown id or not a student
        """
        if updated_by.id != student_id and updated_by.role != UserRole.ADMIN:
            raise ForbiddenError("You can only update your own profile")

        student = await self.get(student_id)
        changes = data.model_dump(exclude_unset=True)
        await self.repo.update(student, **changes)
        await self.db.commit()
        logger.info(f"Updated profile of student {student.id}")
        return student

    async def stats(self) -> StudentStats:
        counts = await self.repo.student_stats()
        return StudentStats(
            total=counts["total"],
            approved=counts["approved"],
            pending=counts["pending"],
            by_year=[YearCount(year=year, count=count) for year, count in counts["by_year"]],
        )
