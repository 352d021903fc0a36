"""
System endpoints (admin).

Contracts:
    - POST /system/sweep: Run the overdue sweep and notifications now

The same jobs run on a schedule (see lms.services.sweep.build_scheduler);
this endpoint runs them in the request's session without the worker lock.
"""

from fastapi import APIRouter

from lms.core.deps import AdminUser, DbSession
from lms.schemas.base import ApiResponse
from lms.schemas.transaction import SweepResult
from lms.services.sweep import SweepService

router = APIRouter(prefix="/system", tags=["System (Admin)"])


@router.post(
    "/sweep",
    response_model=ApiResponse[SweepResult],
    summary="Run the circulation sweep",
)
async def run_sweep(
    db: DbSession,
    admin: AdminUser,
) -> ApiResponse[SweepResult]:
    """
    Runs, in order:
        1. mark overdue loans
        2. due-soon reminders
        3. overdue notices (once per loan per day)
    """
    service = SweepService(db)
    result = await service.run_all()
    return ApiResponse.ok(
        result,
        f"{result.marked_overdue} marked overdue, "
        f"{result.reminders_sent} reminder(s), "
        f"{result.overdue_notices_sent} overdue notice(s)",
    )
