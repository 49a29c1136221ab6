"""
Tests for the unread reminder job.
"""

from datetime import datetime

import pytest
from sqlalchemy import select

from app import scheduler
from app.models.user import User


@pytest.fixture
def outbox(monkeypatch):
    sent = []
    monkeypatch.setattr(scheduler.email_service, "is_configured", lambda: True)
    monkeypatch.setattr(
        scheduler.email_service,
        "send_email",
        lambda to_email, subject, text_body, html_body=None: sent.append((to_email, subject)),
    )
    return sent


async def reminded_at(session_factory, user_id):
    async with session_factory() as session:
        result = await session.execute(select(User).where(User.id == user_id))
        return result.scalar_one().last_unread_reminder_sent_at


class TestUnreadReminders:

    async def test_reminds_after_delay(self, session_factory, outbox, make_user, make_listing, make_message):
        seller = await make_user("Sam", email_verified=True, unread_reminder_enabled=True, unread_reminder_delay_min=30)
        buyer = await make_user("Bea")
        listing = await make_listing(seller)
        await make_message(buyer, seller, listing=listing, minutes=0)
        await make_message(buyer, seller, listing=listing, minutes=5)
        now = datetime(2026, 3, 1, 13, 0, 0)

        sent = await scheduler.send_unread_reminders(session_factory=session_factory, now=now)

        assert sent == 1
        assert outbox == [(seller.email, "You have 2 unread messages")]
        assert await reminded_at(session_factory, seller.id) == now

    async def test_waits_for_delay(self, session_factory, outbox, make_user, make_listing, make_message):
        seller = await make_user("Sam", email_verified=True, unread_reminder_enabled=True, unread_reminder_delay_min=180)
        buyer = await make_user("Bea")
        listing = await make_listing(seller)
        await make_message(buyer, seller, listing=listing)

        sent = await scheduler.send_unread_reminders(session_factory=session_factory, now=datetime(2026, 3, 1, 13, 0, 0))

        assert sent == 0
        assert outbox == []

    async def test_not_repeated_within_delay(self, session_factory, outbox, make_user, make_listing, make_message):
        seller = await make_user(
            "Sam",
            email_verified=True,
            unread_reminder_enabled=True,
            unread_reminder_delay_min=30,
            last_unread_reminder_sent_at=datetime(2026, 3, 1, 12, 50, 0),
        )
        buyer = await make_user("Bea")
        listing = await make_listing(seller)
        await make_message(buyer, seller, listing=listing)

        sent = await scheduler.send_unread_reminders(session_factory=session_factory, now=datetime(2026, 3, 1, 13, 0, 0))

        assert sent == 0

    async def test_skips_unverified_and_opted_out(self, session_factory, outbox, make_user, make_listing, make_message):
        unverified = await make_user("Uma", email_verified=False, unread_reminder_enabled=True)
        opted_out = await make_user("Oli", email_verified=True, unread_reminder_enabled=False)
        buyer = await make_user("Bea")
        for owner in (unverified, opted_out):
            listing = await make_listing(owner)
            await make_message(buyer, owner, listing=listing)

        sent = await scheduler.send_unread_reminders(session_factory=session_factory, now=datetime(2026, 3, 2))

        assert sent == 0
        assert outbox == []

    async def test_nothing_without_smtp(self, session_factory):
        assert await scheduler.send_unread_reminders(session_factory=session_factory) == 0
