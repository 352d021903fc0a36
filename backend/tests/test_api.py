"""
Integration tests for the HTTP API: envelope, authentication, roles and
the circulation endpoints.
"""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient

from conftest import PASSWORD, headers_for, make_book, make_user
from lms.core.timeutils import utc_now
from lms.models.enums import AccountStatus
from lms.models.transaction import Transaction

API = "/api/v1"


# ==========================================
# Auth
# ==========================================

class TestAuth:

    @pytest.mark.anyio
    async def test_register_login_me(self, client: AsyncClient):
        payload = {
            "name": "Ananya Rao",
            "email": "Ananya.Rao@College.edu",
            "password": "Volt4ge9",
            "student_code": "24305",
            "phone": "9876543210",
            "year": 2,
        }

        response = await client.post(f"{API}/auth/register", json=payload)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["email"] == "ananya.rao@college.edu"
        assert body["data"]["is_approved"] is False
        assert "password_hash" not in body["data"]

        response = await client.post(
            f"{API}/auth/login",
            json={"email": "ananya.rao@college.edu", "password": "Volt4ge9"},
        )
        assert response.status_code == 200
        token = response.json()["data"]["token"]["access_token"]

        response = await client.get(
            f"{API}/auth/me",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["student_code"] == "24305"

    @pytest.mark.anyio
    async def test_duplicate_roll_number(self, client: AsyncClient, student):
        payload = {
            "name": "Second Student",
            "email": "second@college.edu",
            "password": "Volt4ge9",
            "student_code": student.student_code,
            "phone": "9876543210",
            "year": 1,
        }

        response = await client.post(f"{API}/auth/register", json=payload)

        assert response.status_code == 400
        assert response.json()["errors"] == ["student_code_taken"]

    @pytest.mark.anyio
    async def test_wrong_password(self, client: AsyncClient, student):
        response = await client.post(
            f"{API}/auth/login",
            json={"email": student.email, "password": "wrong-pass1"},
        )

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "message": "Invalid email or password",
            "data": None,
            "errors": None,
        }

    @pytest.mark.anyio
    async def test_login_with_fixture_password(self, client: AsyncClient, student):
        response = await client.post(
            f"{API}/auth/login",
            json={"email": student.email, "password": PASSWORD},
        )

        assert response.status_code == 200
        assert response.json()["data"]["user"]["id"] == str(student.id)

    @pytest.mark.anyio
    async def test_missing_token(self, client: AsyncClient):
        response = await client.get(f"{API}/auth/me")

        assert response.status_code == 401
        assert response.json()["success"] is False

    @pytest.mark.anyio
    async def test_validation_error_envelope(self, client: AsyncClient):
        response = await client.post(
            f"{API}/auth/register",
            json={"name": "A", "email": "not-an-email", "password": "short"},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert any(error.startswith("name:") for error in body["errors"])
        assert any(error.startswith("student_code:") for error in body["errors"])


# ==========================================
# Roles
# ==========================================

class TestRoles:

    @pytest.mark.anyio
    async def test_student_cannot_issue(self, client: AsyncClient, test_db, student):
        book = await make_book(test_db)

        response = await client.post(
            f"{API}/transactions/issue",
            json={"borrower_id": str(student.id), "book_id": str(book.id)},
            headers=headers_for(student),
        )

        assert response.status_code == 403
        assert response.json()["errors"] == ["forbidden"]

    @pytest.mark.anyio
    async def test_librarian_cannot_run_sweep(self, client: AsyncClient, librarian):
        response = await client.post(f"{API}/system/sweep", headers=headers_for(librarian))

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_admin_runs_sweep(self, client: AsyncClient, admin):
        response = await client.post(f"{API}/system/sweep", headers=headers_for(admin))

        assert response.status_code == 200
        assert response.json()["data"]["marked_overdue"] == 0

    @pytest.mark.anyio
    async def test_staff_approves_student(self, client: AsyncClient, test_db, librarian):
        pending = await make_user(test_db, approved=False)

        response = await client.get(f"{API}/students/pending", headers=headers_for(librarian))
        assert response.status_code == 200
        assert [s["id"] for s in response.json()["data"]["items"]] == [str(pending.id)]

        response = await client.put(
            f"{API}/students/{pending.id}/approve",
            headers=headers_for(librarian),
        )
        assert response.status_code == 200
        assert response.json()["data"]["is_approved"] is True


# ==========================================
# Student administration
# ==========================================

class TestStudents:

    @pytest.mark.anyio
    async def test_rejected_student_leaves_the_queue(
        self, client: AsyncClient, test_db, librarian
    ):
        pending = await make_user(test_db, approved=False)

        response = await client.post(
            f"{API}/students/{pending.id}/reject",
            json={"reason": "Roll number does not match college records"},
            headers=headers_for(librarian),
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["is_approved"] is False
        assert data["account_status"] == "deactivated"

        response = await client.get(f"{API}/students/pending", headers=headers_for(librarian))
        assert response.json()["data"]["total"] == 0

        response = await client.post(
            f"{API}/auth/login",
            json={"email": pending.email, "password": PASSWORD},
        )
        assert response.status_code == 401

    @pytest.mark.anyio
    async def test_reject_without_reason(self, client: AsyncClient, test_db, admin):
        pending = await make_user(test_db, approved=False)

        response = await client.post(
            f"{API}/students/{pending.id}/reject",
            headers=headers_for(admin),
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Student registration rejected"

    @pytest.mark.anyio
    async def test_student_cannot_reject(self, client: AsyncClient, test_db, student):
        pending = await make_user(test_db, approved=False)

        response = await client.post(
            f"{API}/students/{pending.id}/reject",
            headers=headers_for(student),
        )

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_student_updates_own_profile(self, client: AsyncClient, student):
        response = await client.put(
            f"{API}/students/{student.id}",
            json={"phone": "9000012345", "year": 3},
            headers=headers_for(student),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["phone"] == "9000012345"
        assert data["year"] == 3
        assert data["name"] == "Test Student"

    @pytest.mark.anyio
    async def test_profile_of_someone_else(
        self, client: AsyncClient, test_db, student, librarian, admin
    ):
        other = await make_user(test_db, name="Other Student")

        for caller in (student, librarian):
            response = await client.put(
                f"{API}/students/{other.id}",
                json={"name": "Renamed"},
                headers=headers_for(caller),
            )
            assert response.status_code == 403
            assert response.json()["errors"] == ["forbidden"]

        response = await client.put(
            f"{API}/students/{other.id}",
            json={"name": "Renamed Student"},
            headers=headers_for(admin),
        )
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Renamed Student"

    @pytest.mark.anyio
    async def test_invalid_profile_update(self, client: AsyncClient, student):
        response = await client.put(
            f"{API}/students/{student.id}",
            json={"phone": "12345", "year": 7},
            headers=headers_for(student),
        )

        assert response.status_code == 422

    @pytest.mark.anyio
    async def test_stats_overview(self, client: AsyncClient, test_db, librarian):
        await make_user(test_db, name="Second Year")
        await make_user(test_db, name="Another Second Year")
        await make_user(test_db, approved=False, name="Waiting")
        rejected = await make_user(test_db, approved=False, name="Rejected")
        rejected.account_status = AccountStatus.DEACTIVATED
        await test_db.commit()

        response = await client.get(
            f"{API}/students/stats/overview",
            headers=headers_for(librarian),
        )

        assert response.status_code == 200
        assert response.json()["data"] == {
            "total": 3,
            "approved": 2,
            "pending": 1,
            "by_year": [{"year": 2, "count": 2}],
        }


# ==========================================
# Circulation
# ==========================================

class TestCirculation:

    @pytest.mark.anyio
    async def test_issue_and_self_return(
        self, client: AsyncClient, test_db, student, librarian
    ):
        book = await make_book(test_db, copies=2)

        response = await client.post(
            f"{API}/transactions/issue",
            json={"student_id": str(student.id), "book_id": str(book.id)},
            headers=headers_for(librarian),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Book issued successfully"
        transaction_id = body["data"]["id"]
        assert body["data"]["status"] == "issued"
        assert body["data"]["book_title"] == book.title

        response = await client.get(f"{API}/transactions/my", headers=headers_for(student))
        assert response.json()["data"]["total"] == 1

        response = await client.put(
            f"{API}/transactions/return/{transaction_id}",
            headers=headers_for(student),
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Book returned successfully"
        assert response.json()["data"]["fine"] == "0.00"

        response = await client.put(
            f"{API}/transactions/return/{transaction_id}",
            headers=headers_for(student),
        )
        assert response.status_code == 400
        assert response.json()["errors"] == ["already_returned"]

        response = await client.get(f"{API}/books/{book.id}", headers=headers_for(student))
        assert response.json()["data"]["available_copies"] == 2

    @pytest.mark.anyio
    async def test_late_return_and_fine_payment(
        self, client: AsyncClient, test_db, student, librarian
    ):
        book = await make_book(test_db)
        response = await client.post(
            f"{API}/transactions/issue",
            json={"borrower_id": str(student.id), "book_id": str(book.id)},
            headers=headers_for(librarian),
        )
        transaction_id = response.json()["data"]["id"]

        # Back-date the loan three days past due
        transaction = await test_db.get(Transaction, uuid.UUID(transaction_id))
        transaction.due_date = utc_now() - timedelta(days=2, hours=12)
        await test_db.commit()

        response = await client.post(
            f"{API}/transactions/return",
            json={"transaction_id": transaction_id, "condition": "Fair"},
            headers=headers_for(librarian),
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Book returned successfully with fine of ₹30.00"

        other_book = await make_book(test_db, title="Switchgear and Protection")
        response = await client.post(
            f"{API}/transactions/issue",
            json={"borrower_id": str(student.id), "book_id": str(other_book.id)},
            headers=headers_for(librarian),
        )
        assert response.status_code == 400
        assert response.json()["errors"] == ["outstanding_fine"]

        response = await client.post(
            f"{API}/transactions/{transaction_id}/pay-fine",
            headers=headers_for(librarian),
        )
        assert response.status_code == 200
        assert response.json()["data"]["fine"]["paid"] is True

    @pytest.mark.anyio
    async def test_student_renews_own_loan(
        self, client: AsyncClient, test_db, student, librarian
    ):
        book = await make_book(test_db)
        response = await client.post(
            f"{API}/transactions/issue",
            json={"borrower_id": str(student.id), "book_id": str(book.id)},
            headers=headers_for(librarian),
        )
        transaction_id = response.json()["data"]["id"]

        response = await client.post(
            f"{API}/transactions/{transaction_id}/renew",
            headers=headers_for(student),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"].startswith("Book renewed successfully. New due date:")
        assert body["data"]["renewals_left"] == 1

    @pytest.mark.anyio
    async def test_other_student_cannot_see_transaction(
        self, client: AsyncClient, test_db, student, librarian
    ):
        other = await make_user(test_db, name="Other Student")
        book = await make_book(test_db)
        response = await client.post(
            f"{API}/transactions/issue",
            json={"borrower_id": str(student.id), "book_id": str(book.id)},
            headers=headers_for(librarian),
        )
        transaction_id = response.json()["data"]["id"]

        response = await client.get(
            f"{API}/transactions/{transaction_id}",
            headers=headers_for(other),
        )

        assert response.status_code == 403
        assert response.json()["errors"] == ["not_owner"]

    @pytest.mark.anyio
    async def test_unknown_transaction(self, client: AsyncClient, librarian):
        response = await client.get(
            f"{API}/transactions/00000000-0000-0000-0000-000000000000",
            headers=headers_for(librarian),
        )

        assert response.status_code == 404
        assert response.json()["errors"] == ["transaction_not_found"]

    @pytest.mark.anyio
    async def test_stats(self, client: AsyncClient, test_db, student, librarian):
        book = await make_book(test_db)
        await client.post(
            f"{API}/transactions/issue",
            json={"borrower_id": str(student.id), "book_id": str(book.id)},
            headers=headers_for(librarian),
        )

        response = await client.get(f"{API}/transactions/stats", headers=headers_for(librarian))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_transactions"] == 1
        assert data["active"] == 1
        assert data["by_status"]["issued"] == 1
