"""
Business logic services.
"""

from lms.services.auth import AuthService
from lms.services.book import BookService
from lms.services.notification import NotificationService, get_notification_service
from lms.services.student import StudentService
from lms.services.sweep import SweepService
from lms.services.transaction import TransactionService

__all__ = [
    "AuthService",
    "BookService",
    "NotificationService",
    "StudentService",
    "SweepService",
    "TransactionService",
    "get_notification_service",
]
