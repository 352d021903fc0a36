"""
Reusable schemas: base config, pagination and the response envelope.
"""

from datetime import datetime
from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base schema with ORM reading and whitespace stripping."""
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
    )


class TimestampSchema(BaseSchema):
    """Schema with timestamps."""
    created_at: datetime
    updated_at: datetime


class PaginatedResponse(BaseModel, Generic[T]):
    """
    Generic paginated list.

    Usage:
        PaginatedResponse[TransactionRead].create(items, total, page, page_size)
    """
    items: List[T]
    total: int
    page: int
    page_size: int
    pages: int
    has_next: bool
    has_prev: bool

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int,
        page_size: int,
    ) -> "PaginatedResponse[T]":
        """Build a page, deriving the page count and navigation flags."""
        pages = (total + page_size - 1) // page_size if page_size > 0 else 0
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            pages=pages,
            has_next=page < pages,
            has_prev=page > 1,
        )


class ApiResponse(BaseModel, Generic[T]):
    """
    Envelope used by every endpoint.

    Success:
        {"success": true, "message": "...", "data": {...}}
    Failure:
        {"success": false, "message": "...", "errors": ["book_unavailable"]}
    """
    success: bool = True
    message: str | None = None
    data: T | None = None
    errors: List[str] | None = None

    @classmethod
    def ok(cls, data: T | None = None, message: str | None = None) -> "ApiResponse[T]":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, errors: List[str] | None = None) -> "ApiResponse[None]":
        return cls(success=False, message=message, errors=errors)
