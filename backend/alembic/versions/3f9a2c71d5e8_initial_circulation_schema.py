"""
Initial schema: users, books, transactions and their history tables.

Enum columns are stored as VARCHAR holding the member values, so new
values only need a model change, not a type migration.

The books check constraints keep 0 <= available_copies <= total_copies;
issue/return rely on them together with guarded UPDATEs.

Revision ID: 3f9a2c71d5e8
Revises:
Create Date: 2026-10-05 09:12:44.318204
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


revision: str = "3f9a2c71d5e8"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(9), nullable=False),
        sa.Column("student_code", sa.String(5), nullable=True),
        sa.Column("phone", sa.String(10), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("is_approved", sa.Boolean(), nullable=False),
        sa.Column("account_status", sa.String(11), nullable=False),
        sa.Column("currently_borrowed", sa.Integer(), nullable=False),
        sa.Column("total_fines", sa.Numeric(10, 2), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("currently_borrowed >= 0", name="ck_users_currently_borrowed"),
        sa.CheckConstraint("total_fines >= 0", name="ck_users_total_fines"),
        sa.UniqueConstraint("student_code"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "books",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("isbn", sa.String(20), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("authors", sa.String(500), nullable=False),
        sa.Column("category", sa.String(22), nullable=False),
        sa.Column("subject", sa.String(200), nullable=True),
        sa.Column("publisher", sa.String(200), nullable=True),
        sa.Column("published_year", sa.Integer(), nullable=True),
        sa.Column("edition", sa.String(50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("total_copies", sa.Integer(), nullable=False),
        sa.Column("available_copies", sa.Integer(), nullable=False),
        sa.Column("condition", sa.String(4), nullable=False),
        sa.Column("status", sa.String(8), nullable=False),
        sa.Column(
            "added_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.CheckConstraint("total_copies >= 1", name="ck_books_total_copies"),
        sa.CheckConstraint("available_copies >= 0", name="ck_books_available_non_negative"),
        sa.CheckConstraint(
            "available_copies <= total_copies",
            name="ck_books_available_within_total",
        ),
    )
    op.create_index("ix_books_isbn", "books", ["isbn"])
    op.create_index("ix_books_title", "books", ["title"])
    op.create_index("ix_books_category", "books", ["category"])
    op.create_index("ix_books_status", "books", ["status"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("borrower_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("book_id", sa.Uuid(), sa.ForeignKey("books.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("issued_by_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("returned_by_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("returned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_returned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(8), nullable=False),
        sa.Column("fine_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("fine_reason", sa.String(7), nullable=False),
        sa.Column("fine_paid", sa.Boolean(), nullable=False),
        sa.Column("fine_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fine_paid_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("renewal_count", sa.Integer(), nullable=False),
        sa.Column("condition_at_issue", sa.String(4), nullable=False),
        sa.Column("condition_at_return", sa.String(7), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("fine_amount >= 0", name="ck_transactions_fine_amount"),
        sa.CheckConstraint("renewal_count >= 0", name="ck_transactions_renewal_count"),
    )
    op.create_index("ix_transactions_borrower_status", "transactions", ["borrower_id", "status"])
    op.create_index("ix_transactions_book_id", "transactions", ["book_id"])
    op.create_index("ix_transactions_due_date", "transactions", ["due_date"])
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_issued_at", "transactions", ["issued_at"])

    op.create_table(
        "transaction_renewals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Uuid(),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("old_due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("new_due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "renewed_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("renewed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_transaction_renewals_transaction_id",
        "transaction_renewals",
        ["transaction_id"],
    )

    op.create_table(
        "transaction_overdue_notices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Uuid(),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("days_overdue", sa.Integer(), nullable=False),
    )
    op.create_index(
        "ix_transaction_overdue_notices_transaction_id",
        "transaction_overdue_notices",
        ["transaction_id"],
    )


def downgrade() -> None:
    """Drop all tables (children first)."""
    op.drop_table("transaction_overdue_notices")
    op.drop_table("transaction_renewals")
    op.drop_table("transactions")
    op.drop_table("books")
    op.drop_table("users")
