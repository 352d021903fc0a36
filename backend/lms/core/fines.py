"""
Fine arithmetic.

A loan is charged for every started day past its due date: returning one
second late costs one day, returning exactly on the due date costs nothing.
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal

from lms.core.timeutils import as_naive_utc, utc_now

CENTS = Decimal("0.01")


def days_late(due_date: datetime, returned_at: datetime | None = None) -> int:
    """Started days between ``due_date`` and ``returned_at`` (default: now)."""
    late = as_naive_utc(returned_at or utc_now()) - as_naive_utc(due_date)
    if late <= timedelta(0):
        return 0
    return math.ceil(late / timedelta(days=1))


def calculate_fine(
    due_date: datetime,
    returned_at: datetime | None,
    fine_per_day: Decimal,
) -> Decimal:
    """
    Fine owed for a loan.

    Args:
        due_date: Due date of the loan
        returned_at: Return instant (None = now)
        fine_per_day: Amount per started late day

    Returns:
        ``days_late * fine_per_day`` rounded to cents, 0 when on time
    """
    days = days_late(due_date, returned_at)
    return (Decimal(days) * Decimal(fine_per_day)).quantize(CENTS)
