"""
Enums used by the models.

Values are stored as lowercase strings (non-native enums) so the same
schema works on PostgreSQL and SQLite.
"""

import enum


class UserRole(str, enum.Enum):
    """Account roles. Librarians and admins are staff."""
    STUDENT = "student"
    LIBRARIAN = "librarian"
    ADMIN = "admin"

    @property
    def is_staff(self) -> bool:
        return self in (UserRole.LIBRARIAN, UserRole.ADMIN)


class AccountStatus(str, enum.Enum):
    """Account tombstone. Deactivated accounts cannot log in."""
    ACTIVE = "active"
    DEACTIVATED = "deactivated"


class BookStatus(str, enum.Enum):
    """Catalog tombstone. Archived books cannot be issued."""
    ACTIVE = "active"
    ARCHIVED = "archived"


class BookCondition(str, enum.Enum):
    """Physical condition of a book."""
    NEW = "New"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class ReturnCondition(str, enum.Enum):
    """Condition recorded when a book comes back."""
    NEW = "New"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    DAMAGED = "Damaged"
    LOST = "Lost"


class TransactionStatus(str, enum.Enum):
    """
    Status of a loan.

    Flow:
        ISSUED -> RETURNED
        ISSUED -> OVERDUE (sweep, due date passed) -> RETURNED
    """
    ISSUED = "issued"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"
    DAMAGED = "damaged"


ACTIVE_TRANSACTION_STATUSES = (TransactionStatus.ISSUED, TransactionStatus.OVERDUE)


class FineReason(str, enum.Enum):
    OVERDUE = "overdue"
    DAMAGE = "damage"
    LOST = "lost"
    OTHER = "other"


class BookCategory(str, enum.Enum):
    """Catalog categories of the department library."""
    ELECTRONICS = "Electronics"
    POWER_SYSTEMS = "Power Systems"
    CONTROL_SYSTEMS = "Control Systems"
    ELECTRICAL_MACHINES = "Electrical Machines"
    POWER_ELECTRONICS = "Power Electronics"
    RENEWABLE_ENERGY = "Renewable Energy"
    CIRCUIT_ANALYSIS = "Circuit Analysis"
    DIGITAL_ELECTRONICS = "Digital Electronics"
    ANALOG_ELECTRONICS = "Analog Electronics"
    MICROPROCESSORS = "Microprocessors"
    SIGNAL_PROCESSING = "Signal Processing"
    COMMUNICATION_SYSTEMS = "Communication Systems"
    ELECTROMAGNETIC_THEORY = "Electromagnetic Theory"
    GENERAL_ENGINEERING = "General Engineering"
    MATHEMATICS = "Mathematics"
    PHYSICS = "Physics"
    RESEARCH_PAPERS = "Research Papers"
    JOURNALS = "Journals"
