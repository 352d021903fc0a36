"""
Schemas for accounts (registration, login, profiles).
"""

import re
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from lms.models.enums import AccountStatus, UserRole
from lms.schemas.base import BaseSchema, TimestampSchema


def check_password_strength(v: str) -> str:
    if not re.search(r"[A-Za-z]", v):
        raise ValueError("Password must contain at least one letter")
    if not re.search(r"\d", v):
        raise ValueError("Password must contain at least one digit")
    return v


class StudentRegister(BaseSchema):
    """
    Student self-registration. The account starts pending approval.

    Validation:
        - student_code: 5-digit roll number (e.g. 24305)
        - phone: 10 digits
        - year: 1..4
        - password: at least 6 characters with a letter and a digit
    """
    name: str = Field(..., min_length=2, max_length=50, examples=["Ananya Rao"])
    email: EmailStr = Field(..., examples=["ananya@college.edu"])
    password: str = Field(..., min_length=6, max_length=128)
    student_code: str = Field(..., pattern=r"^\d{5}$", examples=["24305"])
    phone: str = Field(..., pattern=r"^\d{10}$", examples=["9876543210"])
    year: int = Field(..., ge=1, le=4)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class UserLogin(BaseSchema):
    email: EmailStr
    password: str


class UserRead(TimestampSchema):
    """Public account view. Never exposes the password hash."""
    id: UUID
    name: str
    email: EmailStr
    role: UserRole
    student_code: str | None = None
    phone: str | None = None
    year: int | None = None
    is_approved: bool
    account_status: AccountStatus
    currently_borrowed: int
    total_fines: Decimal
    last_login_at: datetime | None = None


class TokenResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserWithToken(BaseSchema):
    """Login result."""
    user: UserRead
    token: TokenResponse


class ChangePasswordRequest(BaseSchema):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return check_password_strength(v)


# ==========================================
# Student administration
# ==========================================

class StudentUpdate(BaseSchema):
    """Profile fields a student (or an admin) may change. All optional."""
    name: str | None = Field(None, min_length=2, max_length=50)
    phone: str | None = Field(None, pattern=r"^\d{10}$")
    year: int | None = Field(None, ge=1, le=4)


class StudentReject(BaseSchema):
    reason: str | None = Field(None, max_length=500)


class YearCount(BaseSchema):
    year: int | None
    count: int


class StudentStats(BaseSchema):
    """Counts over active student accounts."""
    total: int
    approved: int
    pending: int
    by_year: list[YearCount]
