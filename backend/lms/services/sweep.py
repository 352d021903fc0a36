"""
Scheduled circulation sweeps.

Jobs:
    - mark_overdue: ISSUED loans past their due date become OVERDUE (hourly)
    - send_due_reminders: one reminder per loan due within DUE_SOON_DAYS (daily)
    - send_overdue_notices: at most one notice per overdue loan per UTC day (daily)

Scheduled runs take a Redis lock so that only one worker process sweeps at a
time. Without Redis the run proceeds unlocked.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.cache import CacheService, cache_service
from lms.core.config import Settings, get_settings
from lms.core.scheduler import PeriodicScheduler
from lms.core.timeutils import as_naive_utc, utc_now
from lms.db.redis import get_redis_client
from lms.db.session import async_session_factory
from lms.models.enums import TransactionStatus
from lms.repositories.transaction import TransactionRepository
from lms.schemas.transaction import SweepResult
from lms.core.fines import calculate_fine
from lms.services.notification import NotificationService, get_notification_service

logger = logging.getLogger(__name__)

LOCK_PREFIX = "lock:sweep"


@asynccontextmanager
async def sweep_lock(name: str, ttl: int) -> AsyncIterator[bool]:
    """
    Hold ``lock:sweep:<name>`` for the duration of the block.

    Yields:
        False if another process holds the lock, True otherwise
    """
    client = get_redis_client()
    if client is None:
        yield True
        return

    key = f"{LOCK_PREFIX}:{name}"
    token = uuid.uuid4().hex
    try:
        acquired = bool(await client.set(key, token, nx=True, ex=ttl))
    except Exception as e:
        logger.warning(f"Sweep lock unavailable, running unlocked: {e}")
        yield True
        return

    try:
        yield acquired
    finally:
        if acquired:
            try:
                if await client.get(key) == token:
                    await client.delete(key)
            except Exception as e:
                logger.warning(f"Failed to release sweep lock {key}: {e}")


class SweepService:
    """Background maintenance of loan state and borrower notifications."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        notifier: NotificationService | None = None,
        cache: CacheService | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.notifier = notifier or get_notification_service()
        self.cache = cache or cache_service
        self.transaction_repo = TransactionRepository(db)

    async def mark_overdue(self, now: datetime | None = None) -> int:
        """
        Flip ISSUED loans past their due date to OVERDUE.

        Returns:
            Number of transactions updated (0 on a repeated run)
        """
        now = now or utc_now()
        count = await self.transaction_repo.mark_overdue(now)
        await self.db.commit()

        if count:
            logger.info(f"Marked {count} transaction(s) overdue")
            await self.cache.invalidate_stats()
        return count

    async def send_due_reminders(
        self,
        days: int | None = None,
        now: datetime | None = None,
    ) -> int:
        """
        Remind borrowers of loans due within ``days``.

        The reminder flag is only set once the send succeeded, so a failed
        reminder is retried on the next run.

        Returns:
            Number of reminders sent
        """
        now = now or utc_now()
        window = days if days is not None else self.settings.DUE_SOON_DAYS
        transactions = await self.transaction_repo.get_due_soon(now, window)

        sent = 0
        for transaction in transactions:
            borrower = transaction.borrower
            notification = self.notifier.due_reminder(
                email=borrower.email,
                name=borrower.name,
                book_title=transaction.book.title,
                due_date=transaction.due_date,
            )
            if await self.notifier.send(notification):
                transaction.reminder_sent = True
                sent += 1

        await self.db.commit()
        logger.info(f"Due reminders: {sent}/{len(transactions)} sent")
        return sent

    async def send_overdue_notices(self, now: datetime | None = None) -> int:
        """
        Notify borrowers of overdue loans, at most once per calendar day.

        Each notice is logged on the transaction and the fine accrued so
        far is recorded as the transaction's overdue fine.

        Returns:
            Number of notices sent
        """
        now = now or utc_now()
        today = now.date()
        transactions = await self.transaction_repo.get_by_status(TransactionStatus.OVERDUE)

        sent = 0
        for transaction in transactions:
            if any(
                as_naive_utc(notice.sent_at).date() == today
                for notice in transaction.overdue_notices
            ):
                continue

            days = transaction.days_overdue(now)
            fine = calculate_fine(transaction.due_date, now, self.settings.FINE_PER_DAY)
            borrower = transaction.borrower
            notification = self.notifier.overdue_notice(
                email=borrower.email,
                name=borrower.name,
                book_title=transaction.book.title,
                days_overdue=days,
                fine=fine,
            )
            if not await self.notifier.send(notification):
                continue

            await self.transaction_repo.add_overdue_notice(
                transaction=transaction,
                sent_at=now,
                days_overdue=days,
            )
            if transaction.fine_amount != fine:
                transaction.assess_overdue_fine(fine)
            sent += 1

        await self.db.commit()
        if sent:
            await self.cache.invalidate_stats()
        logger.info(f"Overdue notices: {sent}/{len(transactions)} sent")
        return sent

    async def run_all(self, now: datetime | None = None) -> SweepResult:
        """Run every job once, in dependency order."""
        now = now or utc_now()
        marked = await self.mark_overdue(now)
        reminders = await self.send_due_reminders(now=now)
        notices = await self.send_overdue_notices(now)
        return SweepResult(
            marked_overdue=marked,
            reminders_sent=reminders,
            overdue_notices_sent=notices,
        )


# ==========================================
# Scheduled jobs
# ==========================================

async def run_overdue_sweep() -> SweepResult:
    """Hourly job: mark overdue loans."""
    settings = get_settings()
    async with sweep_lock("overdue", settings.SWEEP_LOCK_TTL_SECONDS) as acquired:
        if not acquired:
            logger.info("Overdue sweep skipped: another worker holds the lock")
            return SweepResult(skipped=True)
        async with async_session_factory() as db:
            marked = await SweepService(db, settings).mark_overdue()
        return SweepResult(marked_overdue=marked)


async def run_notification_sweep() -> SweepResult:
    """Daily job: due reminders and overdue notices."""
    settings = get_settings()
    async with sweep_lock("notifications", settings.SWEEP_LOCK_TTL_SECONDS) as acquired:
        if not acquired:
            logger.info("Notification sweep skipped: another worker holds the lock")
            return SweepResult(skipped=True)
        async with async_session_factory() as db:
            service = SweepService(db, settings)
            reminders = await service.send_due_reminders()
            notices = await service.send_overdue_notices()
        return SweepResult(reminders_sent=reminders, overdue_notices_sent=notices)


def build_scheduler(settings: Settings | None = None) -> PeriodicScheduler:
    """Scheduler with the circulation jobs registered."""
    settings = settings or get_settings()
    scheduler = PeriodicScheduler()
    scheduler.add_job(
        "overdue-sweep",
        run_overdue_sweep,
        interval=settings.OVERDUE_SWEEP_INTERVAL_SECONDS,
    )
    scheduler.add_job(
        "notification-sweep",
        run_notification_sweep,
        interval=settings.NOTIFICATION_SWEEP_INTERVAL_SECONDS,
    )
    return scheduler
