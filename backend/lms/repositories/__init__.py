"""
Repositories - data access.
"""

from lms.repositories.base import BaseRepository
from lms.repositories.user import UserRepository
from lms.repositories.book import BookRepository
from lms.repositories.transaction import TransactionRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "BookRepository",
    "TransactionRepository",
]
