"""
Authentication endpoints.

Rate limiting:
    - POST /register: 10 req/min (rate_limit_auth)
    - POST /login: 10 req/min (rate_limit_auth)
    - POST /change-password: 10 req/min (rate_limit_auth)
"""

from fastapi import APIRouter, Depends, status

from lms.core.deps import CurrentUser, DbSession
from lms.core.rate_limit import rate_limit_auth
from lms.schemas.base import ApiResponse
from lms.schemas.user import (
    ChangePasswordRequest,
    StudentRegister,
    UserLogin,
    UserRead,
    UserWithToken,
)
from lms.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=ApiResponse[UserRead],
    status_code=status.HTTP_201_CREATED,
    summary="Register a student",
    dependencies=[Depends(rate_limit_auth)],
)
async def register(
    data: StudentRegister,
    db: DbSession,
) -> ApiResponse[UserRead]:
    """
    Student self-registration.

    - **student_code**: 5-digit roll number, unique
    - **email**: unique, used as login
    - **password**: at least 6 characters with a letter and a digit

    The account can borrow only after staff approval.
    """
    service = AuthService(db)
    user = await service.register_student(data)
    return ApiResponse.ok(
        UserRead.model_validate(user),
        "Registration successful. Your account is pending approval.",
    )


@router.post(
    "/login",
    response_model=ApiResponse[UserWithToken],
    summary="Log in",
    dependencies=[Depends(rate_limit_auth)],
)
async def login(
    data: UserLogin,
    db: DbSession,
) -> ApiResponse[UserWithToken]:
    """
    Returns a JWT for the Authorization header.

    Usage: `Authorization: Bearer <access_token>`
    """
    service = AuthService(db)
    return ApiResponse.ok(await service.login(data.email, data.password), "Login successful")


@router.get(
    "/me",
    response_model=ApiResponse[UserRead],
    summary="Current user",
)
async def get_me(current_user: CurrentUser) -> ApiResponse[UserRead]:
    return ApiResponse.ok(UserRead.model_validate(current_user))


@router.post(
    "/change-password",
    response_model=ApiResponse[None],
    summary="Change password",
    dependencies=[Depends(rate_limit_auth)],
)
async def change_password(
    data: ChangePasswordRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> ApiResponse[None]:
    """
    Requires the current password. The new one follows the registration
    rules (at least 6 characters with a letter and a digit).

    Tokens issued before the change stay valid until they expire.
    """
    service = AuthService(db)
    await service.change_password(current_user, data.current_password, data.new_password)
    return ApiResponse.ok(message="Password changed successfully")
