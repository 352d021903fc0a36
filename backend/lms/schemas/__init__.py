"""
Pydantic schemas for the API.
"""

from lms.schemas.base import (
    ApiResponse,
    BaseSchema,
    PaginatedResponse,
    TimestampSchema,
)
from lms.schemas.health import HealthResponse
from lms.schemas.user import (
    ChangePasswordRequest,
    StudentRegister,
    StudentReject,
    StudentStats,
    StudentUpdate,
    TokenResponse,
    UserLogin,
    UserRead,
    UserWithToken,
    YearCount,
)
from lms.schemas.book import (
    BookCreate,
    BookRead,
    BookUpdate,
    CategoryCount,
    PopularBook,
)
from lms.schemas.transaction import (
    FineRead,
    IssueRequest,
    OverdueNoticeRead,
    PayFineRequest,
    RenewalRead,
    RenewResult,
    ReturnRequest,
    ReturnResult,
    SelfReturnRequest,
    SweepResult,
    TransactionRead,
    TransactionStats,
)

__all__ = [
    # Base
    "ApiResponse",
    "BaseSchema",
    "PaginatedResponse",
    "TimestampSchema",
    # Health
    "HealthResponse",
    # User
    "ChangePasswordRequest",
    "StudentRegister",
    "StudentReject",
    "StudentStats",
    "StudentUpdate",
    "TokenResponse",
    "UserLogin",
    "UserRead",
    "UserWithToken",
    "YearCount",
    # Book
    "BookCreate",
    "BookRead",
    "BookUpdate",
    "CategoryCount",
    "PopularBook",
    # Transaction
    "FineRead",
    "IssueRequest",
    "OverdueNoticeRead",
    "PayFineRequest",
    "RenewalRead",
    "RenewResult",
    "ReturnRequest",
    "ReturnResult",
    "SelfReturnRequest",
    "SweepResult",
    "TransactionRead",
    "TransactionStats",
]
