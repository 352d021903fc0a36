"""
User model (students and library staff).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, Numeric, String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from lms.db.session import Base
from lms.models.base import UUIDMixin, TimestampMixin, enum_type
from lms.models.enums import AccountStatus, UserRole


class User(Base, UUIDMixin, TimestampMixin):
    """
    Library account.

    Students register themselves and must be approved by staff before they
    can borrow. Staff accounts (librarian, admin) are approved on creation.

    Attributes:
        id: Unique UUID
        name: Full name
        email: Unique email, used as login
        password_hash: bcrypt hash
        role: student, librarian or admin
        student_code: 5-digit roll number (students only)
        is_approved: Must be True for a student to borrow
        account_status: active or deactivated
        currently_borrowed: Books currently on loan (0..MAX_ACTIVE_LOANS)
        total_fines: Running total of fines charged on return
    """
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole, "user_role"),
        nullable=False,
        default=UserRole.STUDENT,
        index=True,
    )
    student_code: Mapped[Optional[str]] = mapped_column(
        String(5),
        unique=True,
        nullable=True,
    )
    phone: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    account_status: Mapped[AccountStatus] = mapped_column(
        enum_type(AccountStatus, "account_status"),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )
    currently_borrowed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_fines: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("currently_borrowed >= 0", name="ck_users_currently_borrowed"),
        CheckConstraint("total_fines >= 0", name="ck_users_total_fines"),
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE
