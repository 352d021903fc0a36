"""
Authentication service: student registration, login and password change.
"""

import logging

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.config import get_settings
from lms.core.exceptions import EmailTakenError, InvalidPasswordError, StudentCodeTakenError
from lms.core.security import create_access_token, hash_password, verify_password
from lms.core.timeutils import utc_now
from lms.models.enums import AccountStatus, UserRole
from lms.models.user import User
from lms.repositories.user import UserRepository
from lms.schemas.user import StudentRegister, TokenResponse, UserRead, UserWithToken
from lms.services.notification import NotificationService, get_notification_service

logger = logging.getLogger(__name__)
settings = get_settings()


class AuthService:
    """Service for authentication."""

    def __init__(self, db: AsyncSession, notifier: NotificationService | None = None):
        self.db = db
        self.user_repo = UserRepository(db)
        self.notifier = notifier or get_notification_service()

    async def register_student(self, data: StudentRegister) -> User:
        """
        Register a student. The account waits for staff approval.

        Raises:
            EmailTakenError: Email already registered
            StudentCodeTakenError: Roll number already registered
        """
        if await self.user_repo.email_exists(data.email):
            raise EmailTakenError()
        if await self.user_repo.student_code_exists(data.student_code):
            raise StudentCodeTakenError()

        user = await self.user_repo.add(
            name=data.name,
            email=data.email,
            password_hash=hash_password(data.password),
            role=UserRole.STUDENT,
            student_code=data.student_code,
            phone=data.phone,
            year=data.year,
            is_approved=False,
            account_status=AccountStatus.ACTIVE,
        )
        await self.db.commit()
        logger.info(f"Registered student {user.id} ({user.student_code}), pending approval")

        self.notifier.dispatch(self.notifier.welcome(user.email, user.name))
        return user

    async def login(self, email: str, password: str) -> UserWithToken:
        """
        Authenticate and issue a JWT.

        Pending students may log in (they can browse the catalog); only
        deactivated accounts are refused.

        Raises:
            HTTPException 401: Wrong credentials or deactivated account
        """
        user = await self.user_repo.get_by_email(email)

        if user is None or not verify_password(password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is deactivated",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user.last_login_at = utc_now()
        await self.db.commit()

        access_token = create_access_token(
            subject=str(user.id),
            extra_data={"role": user.role.value},
        )

        return UserWithToken(
            user=UserRead.model_validate(user),
            token=TokenResponse(
                access_token=access_token,
                token_type="bearer",
                expires_in=settings.JWT_EXPIRES_MINUTES * 60,
            ),
        )

    async def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Replace the password of a logged-in user.

        Raises:
            InvalidPasswordError: ``current_password`` does not match
        """
        if not verify_password(current_password, user.password_hash):
            raise InvalidPasswordError()

        user.password_hash = hash_password(new_password)
        await self.db.commit()
        logger.info(f"Password changed for user {user.id}")
