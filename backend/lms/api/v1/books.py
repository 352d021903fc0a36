"""
Catalog endpoints.

Contracts:
    - GET /books: Search (title, author, subject, ISBN), category, available only
    - GET /books/categories/list: Categories in use, with title counts (public)
    - GET /books/popular/list: Most issued books (public)
    - GET /books/{id}: Book details
    - POST /books: Add a book (staff)
    - PUT /books/{id}: Update a book (staff)
    - DELETE /books/{id}: Archive a book (staff)

Students only see active books; staff can pass include_archived.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from lms.core.deps import CurrentUser, DbSession, StaffUser
from lms.models.enums import BookCategory
from lms.schemas.base import ApiResponse, PaginatedResponse
from lms.schemas.book import BookCreate, BookRead, BookUpdate, CategoryCount, PopularBook
from lms.services.book import BookService

router = APIRouter(prefix="/books", tags=["Books"])


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[BookRead]],
    summary="Search books",
)
async def list_books(
    db: DbSession,
    current_user: CurrentUser,
    q: str | None = Query(None, description="Title, author, subject or ISBN"),
    category: BookCategory | None = Query(None),
    available_only: bool = Query(False),
    include_archived: bool = Query(False, description="Staff only"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> ApiResponse[PaginatedResponse[BookRead]]:
    service = BookService(db)
    books, total = await service.search(
        query=q,
        category=category,
        available_only=available_only,
        include_archived=include_archived and current_user.is_staff,
        page=page,
        page_size=page_size,
    )
    items = [BookRead.model_validate(b) for b in books]
    return ApiResponse.ok(PaginatedResponse[BookRead].create(items, total, page, page_size))


@router.get(
    "/categories/list",
    response_model=ApiResponse[list[CategoryCount]],
    summary="Book categories",
)
async def list_categories(db: DbSession) -> ApiResponse[list[CategoryCount]]:
    service = BookService(db)
    categories = await service.categories()
    return ApiResponse.ok(
        [CategoryCount(category=category, count=count) for category, count in categories]
    )


@router.get(
    "/popular/list",
    response_model=ApiResponse[list[PopularBook]],
    summary="Popular books",
)
async def popular_books(
    db: DbSession,
    limit: int = Query(10, ge=1, le=50),
) -> ApiResponse[list[PopularBook]]:
    """Active books ordered by the number of times they have been issued."""
    service = BookService(db)
    ranked = await service.popular(limit)
    return ApiResponse.ok([
        PopularBook(**BookRead.model_validate(book).model_dump(), times_issued=count)
        for book, count in ranked
    ])


@router.get(
    "/{book_id}",
    response_model=ApiResponse[BookRead],
    summary="Book details",
)
async def get_book(
    book_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> ApiResponse[BookRead]:
    service = BookService(db)
    book = await service.get(book_id, include_archived=current_user.is_staff)
    return ApiResponse.ok(BookRead.model_validate(book))


@router.post(
    "",
    response_model=ApiResponse[BookRead],
    status_code=status.HTTP_201_CREATED,
    summary="Add a book",
)
async def create_book(
    data: BookCreate,
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[BookRead]:
    service = BookService(db)
    book = await service.create(data, added_by=staff)
    return ApiResponse.ok(BookRead.model_validate(book), "Book added successfully")


@router.put(
    "/{book_id}",
    response_model=ApiResponse[BookRead],
    summary="Update a book",
)
async def update_book(
    book_id: UUID,
    data: BookUpdate,
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[BookRead]:
    """Changing total_copies shifts available_copies by the same amount."""
    service = BookService(db)
    book = await service.update(book_id, data)
    return ApiResponse.ok(BookRead.model_validate(book), "Book updated successfully")


@router.delete(
    "/{book_id}",
    response_model=ApiResponse[BookRead],
    summary="Archive a book",
)
async def archive_book(
    book_id: UUID,
    db: DbSession,
    staff: StaffUser,
) -> ApiResponse[BookRead]:
    """Soft delete: the book is archived, its transactions are kept."""
    service = BookService(db)
    book = await service.archive(book_id)
    return ApiResponse.ok(BookRead.model_validate(book), "Book archived")
