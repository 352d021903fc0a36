"""
Seed script for initial data.

Usage:
    python -m lms.db.seed            # admin account
    python -m lms.db.seed --books    # admin account + sample catalog

Existing rows are left untouched, so the script can run on every deploy.
"""

import argparse
import asyncio
import logging

from sqlalchemy import select

from lms.core.config import get_settings
from lms.core.logging import setup_logging
from lms.core.security import hash_password
from lms.db.session import async_session_factory
from lms.models.book import Book
from lms.models.enums import AccountStatus, BookCategory, BookCondition, BookStatus, UserRole
from lms.models.user import User

logger = logging.getLogger(__name__)
settings = get_settings()

SAMPLE_BOOKS = [
    {
        "isbn": "9780070635159",
        "title": "Power System Analysis",
        "authors": "Hadi Saadat",
        "category": BookCategory.POWER_SYSTEMS,
        "publisher": "McGraw-Hill",
        "published_year": 2002,
        "total_copies": 5,
    },
    {
        "isbn": "9780133594140",
        "title": "Modern Control Engineering",
        "authors": "Katsuhiko Ogata",
        "category": BookCategory.CONTROL_SYSTEMS,
        "publisher": "Pearson",
        "published_year": 2010,
        "total_copies": 3,
    },
    {
        "isbn": "9780073380469",
        "title": "Electric Machinery",
        "authors": "A. E. Fitzgerald, Charles Kingsley, Stephen D. Umans",
        "category": BookCategory.ELECTRICAL_MACHINES,
        "publisher": "McGraw-Hill",
        "published_year": 2013,
        "total_copies": 4,
    },
    {
        "isbn": "9780471226932",
        "title": "Power Electronics: Converters, Applications, and Design",
        "authors": "Ned Mohan, Tore M. Undeland, William P. Robbins",
        "category": BookCategory.POWER_ELECTRONICS,
        "publisher": "Wiley",
        "published_year": 2002,
        "total_copies": 2,
    },
    {
        "isbn": "9780132622271",
        "title": "Digital Design",
        "authors": "M. Morris Mano, Michael D. Ciletti",
        "category": BookCategory.DIGITAL_ELECTRONICS,
        "publisher": "Pearson",
        "published_year": 2012,
        "total_copies": 1,
    },
]


async def create_admin() -> User:
    """
    Create the admin account if missing.

    Reads ADMIN_NAME, ADMIN_EMAIL and ADMIN_PASSWORD from the environment.
    """
    async with async_session_factory() as db:
        result = await db.execute(
            select(User).where(User.email == settings.ADMIN_EMAIL.lower())
        )
        existing = result.scalar_one_or_none()

        if existing:
            logger.info(f"Admin already exists: {settings.ADMIN_EMAIL}")
            return existing

        admin = User(
            name=settings.ADMIN_NAME,
            email=settings.ADMIN_EMAIL.lower(),
            password_hash=hash_password(settings.ADMIN_PASSWORD),
            role=UserRole.ADMIN,
            is_approved=True,
            account_status=AccountStatus.ACTIVE,
        )
        db.add(admin)
        await db.commit()

        logger.info(f"Admin created: {settings.ADMIN_EMAIL} (ID: {admin.id})")
        return admin


async def create_sample_books(added_by: User) -> int:
    """Add the sample catalog, skipping ISBNs already present."""
    created = 0
    async with async_session_factory() as db:
        for data in SAMPLE_BOOKS:
            result = await db.execute(select(Book.id).where(Book.isbn == data["isbn"]))
            if result.scalar_one_or_none():
                continue
            db.add(
                Book(
                    **data,
                    available_copies=data["total_copies"],
                    condition=BookCondition.GOOD,
                    status=BookStatus.ACTIVE,
                    added_by_id=added_by.id,
                )
            )
            created += 1
        await db.commit()

    logger.info(f"Sample books created: {created}")
    return created


async def main(with_books: bool = False) -> None:
    """Run all seeds."""
    setup_logging()
    logger.info("Running seeds...")
    admin = await create_admin()
    if with_books:
        await create_sample_books(admin)
    logger.info("Seeds done")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the library database")
    parser.add_argument("--books", action="store_true", help="Also add sample books")
    args = parser.parse_args()
    asyncio.run(main(with_books=args.books))
