"""
Scheduled jobs.

* view polling: re-aggregates the message views of users who fetched them
  recently, so ``/sync/{view}`` can answer from memory
* unread reminders: emails users who opted in and have had unread messages
  for longer than their chosen delay
"""
import asyncio
import logging
from datetime import datetime, timedelta
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select, func

from app.config import get_settings
from app.database import async_session
from app.errors import MessagingError
from app.models.message import Message
from app.models.user import User
from app.services.email_service import email_service, unread_reminder_email
from app.services.identity import display_name
from app.services.messaging import MessagingService
from app.services.sync import sync_layer

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def poll_active_views(sync=None, session_factory=None) -> int:
    """Re-aggregate every active view, stale ones first. Returns number of views refreshed."""
    settings = get_settings()
    sync = sync or sync_layer
    session_factory = session_factory or async_session

    refreshed = 0
    for actor_id, view in sync.active_views(settings.sync_view_ttl_seconds):
        async with session_factory() as db:
            try:
                await MessagingService(db, sync=sync).refresh_view(actor_id, view, touch=False)
                refreshed += 1
            except MessagingError as e:
                # Read side: the next poll retries
                logger.warning(f"Refreshing {view.value} for {actor_id} failed: {e}")

    if refreshed:
        logger.debug(f"Refreshed {refreshed} message views")
    return refreshed


async def send_unread_reminders(session_factory=None, now: datetime = None) -> int:
    """Email opted-in users about messages left unread past their delay."""
    session_factory = session_factory or async_session
    now = now or datetime.utcnow()
    settings = get_settings()

    if not email_service.is_configured():
        return 0

    sent = 0
    async with session_factory() as db:
        stmt = (
            select(User, func.count(Message.id), func.min(Message.created_at))
            .join(Message, Message.receiver_id == User.id)
            .where(
                User.unread_reminder_enabled.is_(True),
                User.email_verified.is_(True),
                Message.is_read.is_(False),
                Message.deleted_at.is_(None),
            )
            .group_by(User.id)
        )
        result = await db.execute(stmt)

        for user, unread_count, oldest_unread in result.all():
            delay = timedelta(minutes=user.unread_reminder_delay_min or 60)
            if oldest_unread > now - delay:
                continue
            if user.last_unread_reminder_sent_at and user.last_unread_reminder_sent_at > now - delay:
                continue

            subject, text = unread_reminder_email(display_name(user), unread_count, f"{settings.web_app_url}/messages")
            try:
                await asyncio.to_thread(email_service.send_email, user.email, subject, text)
            except RuntimeError as e:
                logger.error(f"Unread reminder for {user.id} failed: {e}")
                continue
            user.last_unread_reminder_sent_at = now
            sent += 1

        await db.commit()

    if sent:
        logger.info(f"Sent {sent} unread message reminders")
    return sent


def start_scheduler():
    """Start the scheduler with the view polling and reminder jobs."""
    settings = get_settings()
    scheduler.add_job(
        poll_active_views,
        IntervalTrigger(seconds=settings.sync_poll_interval_seconds),
        id='poll_message_views',
        name='Refresh stale message views',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        send_unread_reminders,
        IntervalTrigger(minutes=settings.unread_reminder_check_minutes),
        id='unread_reminders',
        name='Unread message email reminders',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(f"Scheduler started - polling message views every {settings.sync_poll_interval_seconds}s")


def stop_scheduler():
    """Stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
