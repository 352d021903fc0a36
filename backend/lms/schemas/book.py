"""
Schemas for the book catalog.
"""

from uuid import UUID

from pydantic import Field, field_validator

from lms.core.timeutils import utc_now
from lms.models.enums import BookCategory, BookCondition, BookStatus
from lms.schemas.base import BaseSchema, TimestampSchema

AUTHOR_SEPARATOR = ", "


def join_authors(authors: list[str]) -> str:
    return AUTHOR_SEPARATOR.join(a.strip() for a in authors if a.strip())


def _validate_year(v: int | None) -> int | None:
    if v is not None and v > utc_now().year:
        raise ValueError("Published year cannot be in the future")
    return v


class BookCreate(BaseSchema):
    """New catalog entry. Available copies start equal to total copies."""
    isbn: str | None = Field(None, max_length=20)
    title: str = Field(..., min_length=1, max_length=200, examples=["Power System Analysis"])
    authors: list[str] = Field(..., min_length=1, examples=[["Hadi Saadat"]])
    category: BookCategory
    subject: str | None = Field(None, max_length=200)
    publisher: str | None = Field(None, max_length=200)
    published_year: int | None = Field(None, ge=1900)
    edition: str | None = Field(None, max_length=50)
    description: str | None = Field(None, max_length=1000)
    total_copies: int = Field(..., ge=1, le=100)
    condition: BookCondition = BookCondition.GOOD

    @field_validator("published_year")
    @classmethod
    def validate_year(cls, v: int | None) -> int | None:
        return _validate_year(v)


class BookUpdate(BaseSchema):
    """Partial update. Changing total_copies shifts available_copies by the same delta."""
    isbn: str | None = Field(None, max_length=20)
    title: str | None = Field(None, min_length=1, max_length=200)
    authors: list[str] | None = Field(None, min_length=1)
    category: BookCategory | None = None
    subject: str | None = Field(None, max_length=200)
    publisher: str | None = Field(None, max_length=200)
    published_year: int | None = Field(None, ge=1900)
    edition: str | None = Field(None, max_length=50)
    description: str | None = Field(None, max_length=1000)
    total_copies: int | None = Field(None, ge=1, le=100)
    condition: BookCondition | None = None

    @field_validator("published_year")
    @classmethod
    def validate_year(cls, v: int | None) -> int | None:
        return _validate_year(v)


class BookRead(TimestampSchema):
    id: UUID
    isbn: str | None = None
    title: str
    authors: list[str]
    category: BookCategory
    subject: str | None = None
    publisher: str | None = None
    published_year: int | None = None
    edition: str | None = None
    description: str | None = None
    total_copies: int
    available_copies: int
    condition: BookCondition
    status: BookStatus

    @field_validator("authors", mode="before")
    @classmethod
    def split_authors(cls, v):
        if isinstance(v, str):
            return [a for a in v.split(AUTHOR_SEPARATOR) if a]
        return v


class CategoryCount(BaseSchema):
    category: BookCategory
    count: int


class PopularBook(BookRead):
    """Catalog entry with the number of times it has been issued."""
    times_issued: int
