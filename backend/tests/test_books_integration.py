"""
Integration tests for the catalog endpoints.
"""

import pytest
from httpx import AsyncClient

from conftest import RecordingSender, headers_for, make_book, make_user
from lms.models.enums import BookCategory, BookStatus, UserRole
from lms.schemas.transaction import IssueRequest
from lms.services.notification import NotificationService
from lms.services.transaction import TransactionService

API = "/api/v1/books"


def book_payload(**overrides) -> dict:
    payload = {
        "isbn": "9780070597976",
        "title": "Electrical Machinery",
        "authors": ["P. S. Bimbhra"],
        "category": "Electrical Machines",
        "publisher": "Khanna Publishers",
        "published_year": 2011,
        "total_copies": 4,
    }
    payload.update(overrides)
    return payload


class TestCreateBook:

    @pytest.mark.anyio
    async def test_staff_adds_book(self, client: AsyncClient, librarian):
        response = await client.post(
            API,
            json=book_payload(authors=["A. E. Fitzgerald", "Charles Kingsley"]),
            headers=headers_for(librarian),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["available_copies"] == 4
        assert data["total_copies"] == 4
        assert data["authors"] == ["A. E. Fitzgerald", "Charles Kingsley"]
        assert data["condition"] == "Good"
        assert data["status"] == "active"

    @pytest.mark.anyio
    async def test_student_cannot_add_book(self, client: AsyncClient, student):
        response = await client.post(API, json=book_payload(), headers=headers_for(student))

        assert response.status_code == 403

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"total_copies": 0},
            {"total_copies": 101},
            {"authors": []},
            {"category": "Astrology"},
            {"published_year": 2999},
        ],
        ids=["no-copies", "too-many-copies", "no-authors", "unknown-category", "future-year"],
    )
    async def test_invalid_book(self, client: AsyncClient, librarian, overrides):
        response = await client.post(
            API,
            json=book_payload(**overrides),
            headers=headers_for(librarian),
        )

        assert response.status_code == 422
        assert response.json()["success"] is False


class TestUpdateBook:

    @pytest.mark.anyio
    async def test_total_copies_shift_available(self, client: AsyncClient, test_db, librarian):
        book = await make_book(test_db, copies=5, available=3)

        response = await client.put(
            f"{API}/{book.id}",
            json={"total_copies": 6},
            headers=headers_for(librarian),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_copies"] == 6
        assert data["available_copies"] == 4

    @pytest.mark.anyio
    async def test_total_below_copies_on_loan(self, client: AsyncClient, test_db, librarian):
        book = await make_book(test_db, copies=5, available=1)

        response = await client.put(
            f"{API}/{book.id}",
            json={"total_copies": 3},
            headers=headers_for(librarian),
        )

        assert response.status_code == 400
        assert response.json()["errors"] == ["invalid_book_counts"]


class TestArchiveAndSearch:

    @pytest.mark.anyio
    async def test_archived_book_is_hidden_from_students(
        self, client: AsyncClient, test_db, librarian, student
    ):
        book = await make_book(test_db, title="Obsolete Handbook")

        response = await client.delete(f"{API}/{book.id}", headers=headers_for(librarian))
        assert response.status_code == 200
        assert response.json()["data"]["status"] == BookStatus.ARCHIVED.value

        response = await client.get(f"{API}/{book.id}", headers=headers_for(student))
        assert response.status_code == 404
        assert response.json()["errors"] == ["book_not_found"]

        response = await client.get(f"{API}/{book.id}", headers=headers_for(librarian))
        assert response.status_code == 200

    @pytest.mark.anyio
    async def test_search_filters(self, client: AsyncClient, test_db, student):
        await make_book(test_db, title="Power System Analysis")
        await make_book(test_db, title="Power System Protection", copies=2, available=0)
        await make_book(test_db, title="Network Theory")

        response = await client.get(
            API,
            params={"q": "power"},
            headers=headers_for(student),
        )
        data = response.json()["data"]
        assert data["total"] == 2
        assert [b["title"] for b in data["items"]] == [
            "Power System Analysis",
            "Power System Protection",
        ]

        response = await client.get(
            API,
            params={"q": "power", "available_only": "true"},
            headers=headers_for(student),
        )
        assert [b["title"] for b in response.json()["data"]["items"]] == ["Power System Analysis"]

    @pytest.mark.anyio
    async def test_students_cannot_list_archived(self, client: AsyncClient, test_db, student):
        await make_book(test_db, title="Archived Notes", status=BookStatus.ARCHIVED)

        response = await client.get(
            API,
            params={"include_archived": "true"},
            headers=headers_for(student),
        )

        assert response.json()["data"]["total"] == 0

    @pytest.mark.anyio
    async def test_listing_requires_login(self, client: AsyncClient):
        response = await client.get(API)

        assert response.status_code == 401


class TestCategoriesAndPopular:

    @pytest.mark.anyio
    async def test_categories_in_use(self, client: AsyncClient, test_db):
        await make_book(test_db, title="Power System Analysis")
        await make_book(test_db, title="Power System Protection")
        await make_book(test_db, title="Modern Control", category=BookCategory.CONTROL_SYSTEMS)
        await make_book(
            test_db,
            title="Old Physics Notes",
            category=BookCategory.PHYSICS,
            status=BookStatus.ARCHIVED,
        )

        response = await client.get(f"{API}/categories/list")

        assert response.status_code == 200
        assert response.json()["data"] == [
            {"category": "Control Systems", "count": 1},
            {"category": "Power Systems", "count": 2},
        ]

    @pytest.mark.anyio
    async def test_popular_books_by_times_issued(self, client: AsyncClient, test_db):
        librarian = await make_user(test_db, role=UserRole.LIBRARIAN, name="Librarian")
        favourite = await make_book(test_db, title="Electrical Machinery", copies=3)
        runner_up = await make_book(test_db, title="Network Theory")
        await make_book(test_db, title="Antenna Theory")
        await make_book(test_db, title="Archived Notes", status=BookStatus.ARCHIVED)

        service = TransactionService(test_db, notifier=NotificationService(RecordingSender()))
        for book, name in [
            (favourite, "First Reader"),
            (favourite, "Second Reader"),
            (runner_up, "Third Reader"),
        ]:
            reader = await make_user(test_db, name=name)
            await service.issue(IssueRequest(borrower_id=reader.id, book_id=book.id), librarian)

        response = await client.get(f"{API}/popular/list", params={"limit": 2})

        assert response.status_code == 200
        ranked = response.json()["data"]
        assert [(b["title"], b["times_issued"]) for b in ranked] == [
            ("Electrical Machinery", 2),
            ("Network Theory", 1),
        ]

        response = await client.get(f"{API}/popular/list")
        titles = [b["title"] for b in response.json()["data"]]
        assert titles == ["Electrical Machinery", "Network Theory", "Antenna Theory"]
