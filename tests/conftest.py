"""
Pytest configuration and shared fixtures.

Settings are read from the environment on first use, so the test database and
secret are set here before anything under ``app`` is imported.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SMTP_HOST"] = ""
os.environ["REDIS_URL"] = ""
os.environ["DAILY_MESSAGE_LIMIT"] = "0"

from app.config import get_settings
get_settings.cache_clear()

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import Listing, Message, User
from app.services.messaging import MessagingService
from app.services.sync import SyncLayer

BASE_TIME = datetime(2026, 3, 1, 12, 0, 0)


class RecordingNotifier:
    """Stands in for the email notifier; keeps what would have been sent."""

    def __init__(self):
        self.sent = []

    def notify(self, to_email, subject, text_body, html_body=None):
        self.sent.append((to_email, subject))


class RecordingConnections:
    """Stands in for the WebSocket connection manager."""

    def __init__(self):
        self.events = []

    async def notify_user(self, user_id, payload):
        self.events.append((user_id, payload))


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def connections():
    return RecordingConnections()


@pytest.fixture
def sync(connections):
    return SyncLayer(connections)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(db, sync, notifier):
    return MessagingService(db, sync=sync, notifier=notifier)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make_user(first_name=None, is_support_desk=False, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=kwargs.pop("email", f"user{n}@example.com"),
            username=kwargs.pop("username", f"user{n}"),
            first_name=first_name,
            is_support_desk=is_support_desk,
            created_at=kwargs.pop("created_at", BASE_TIME + timedelta(seconds=n)),
            **kwargs,
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture
def make_listing(db):
    async def _make_listing(owner, title="Road bike", **kwargs):
        listing = Listing(owner_id=owner.id, title=title, **kwargs)
        db.add(listing)
        await db.commit()
        return listing

    return _make_listing


@pytest.fixture
def make_message(db):
    """Insert a message row directly, with a controllable timestamp."""
    async def _make_message(sender, receiver, content="Hi", listing=None, support_category=None,
                            minutes=0, **kwargs):
        message = Message(
            id=kwargs.pop("id", uuid.uuid4()),
            sender_id=sender.id,
            receiver_id=receiver.id,
            content=content,
            listing_id=listing.id if listing is not None else None,
            support_category=support_category,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            **kwargs,
        )
        db.add(message)
        await db.commit()
        return message

    return _make_message
