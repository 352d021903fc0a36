"""
Student administration endpoints.

Contracts:
    - GET /students: List with approval filter and search (staff)
    - GET /students/pending: Active students waiting for approval (staff)
    - GET /students/stats/overview: Approval and study-year counts (staff)
    - GET /students/{id}: Student details (staff)
    - PUT /students/{id}: Update name, phone or year (the student or an admin)
    - PUT /students/{id}/approve: Approve and notify (staff)
    - POST /students/{id}/reject: Reject a registration and notify (staff)
    - PUT /students/{id}/deactivate: Deactivate the account (staff)
"""

from uuid import UUID

from fastapi import APIRouter, Query

from lms.core.deps import CurrentUser, DbSession, StaffUser
from lms.schemas.base import ApiResponse, PaginatedResponse
from lms.schemas.user import StudentReject, StudentStats, StudentUpdate, UserRead
from lms.services.student import StudentService

router = APIRouter(prefix="/students", tags=["Students"])


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[UserRead]],
    summary="List students",
)
async def list_students(
    db: DbSession,
    staff: StaffUser,
    approved: bool | None = Query(None, description="Only approved (true) or pending (false)"),
    search: str | None = Query(None, description="Name, email or roll number"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> ApiResponse[PaginatedResponse[UserRead]]:
    service = StudentService(db)
    students, total = await service.list_students(
        approved=approved,
        search=search,
        page=page,
        page_size=page_size,
    )
    items = [UserRead.model_validate(s) for s in students]
    return ApiResponse.ok(PaginatedResponse[UserRead].create(items, total, page, page_size))


@router.get(
    "/pending",
    response_model=ApiResponse[PaginatedResponse[UserRead]],
    summary="Pending students",
)
async def pending_students(
    db: DbSession,
    staff: StaffUser,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> ApiResponse[PaginatedResponse[UserRead]]:
    service = StudentService(db)
    students, total = await service.list_students(
        approved=False,
        active=True,
        page=page,
        page_size=page_size,
    )
    items = [UserRead.model_validate(s) for s in students]
    return ApiResponse.ok(PaginatedResponse[UserRead].create(items, total, page, page_size))


@router.get(
    "/stats/overview",
    response_model=ApiResponse[StudentStats],
    summary="Student statistics",
)
async def student_stats(
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[StudentStats]:
    service = StudentService(db)
    return ApiResponse.ok(await service.stats())


@router.get(
    "/{student_id}",
    response_model=ApiResponse[UserRead],
    summary="Student details",
)
async def get_student(
    student_id: UUID,
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[UserRead]:
    service = StudentService(db)
    return ApiResponse.ok(UserRead.model_validate(await service.get(student_id)))


@router.put(
    "/{student_id}",
    response_model=ApiResponse[UserRead],
    summary="Update a student profile",
)
async def update_student(
    student_id: UUID,
    data: StudentUpdate,
    db: DbSession,
    current_user: CurrentUser,
) -> ApiResponse[UserRead]:
    """Students may edit their own profile; admins may edit any."""
    service = StudentService(db)
    student = await service.update_profile(student_id, data, updated_by=current_user)
    return ApiResponse.ok(UserRead.model_validate(student), "Profile updated successfully")


@router.put(
    "/{student_id}/approve",
    response_model=ApiResponse[UserRead],
    summary="Approve a student",
)
async def approve_student(
    student_id: UUID,
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[UserRead]:
    service = StudentService(db)
    student = await service.approve(student_id)
    return ApiResponse.ok(UserRead.model_validate(student), "Student approved successfully")


@router.post(
    "/{student_id}/reject",
    response_model=ApiResponse[UserRead],
    summary="Reject a student",
)
async def reject_student(
    student_id: UUID,
    db: DbSession,
    staff: StaffUser,
    data: StudentReject | None = None,
) -> ApiResponse[UserRead]:
    service = StudentService(db)
    student = await service.reject(student_id, reason=data.reason if data else None)
    return ApiResponse.ok(UserRead.model_validate(student), "Student registration rejected")


@router.put(
    "/{student_id}/deactivate",
    response_model=ApiResponse[UserRead],
    summary="Deactivate a student",
)
async def deactivate_student(
    student_id: UUID,
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[UserRead]:
    service = StudentService(db)
    student = await service.deactivate(student_id)
    return ApiResponse.ok(UserRead.model_validate(student), "Student deactivated")
