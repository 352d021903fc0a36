"""
API v1 router.
"""

from fastapi import APIRouter

from lms.api.v1.auth import router as auth_router
from lms.api.v1.books import router as books_router
from lms.api.v1.students import router as students_router
from lms.api.v1.system import router as system_router
from lms.api.v1.transactions import router as transactions_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth_router)
api_router.include_router(students_router)
api_router.include_router(books_router)
api_router.include_router(transactions_router)
api_router.include_router(system_router)
