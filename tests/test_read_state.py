"""
Tests for read state.

Tests cover:
- Marking a single message read, and doing it twice
- Only the receiver (or the support desk queue) may mark a message read
- Marking a whole conversation read in one update
"""

import uuid

import pytest

from app.errors import MessageNotFound, NotOwner
from app.services.conversations import aggregate
from app.services.message_store import MessageStore
from app.services.read_state import ReadStateManager


def no_desks(user_id):
    return False


@pytest.fixture
def changes():
    return []


@pytest.fixture
def read_state(db, changes):
    async def record(user_ids):
        changes.append(set(user_ids))

    return ReadStateManager(MessageStore(db), on_change=record)


class TestMarkAsRead:

    async def test_receiver_marks_read(self, read_state, make_user, make_listing, make_message, changes):
        seller = await make_user("Sam")
        buyer = await make_user("Bea")
        listing = await make_listing(seller)
        message = await make_message(buyer, seller, listing=listing)

        assert await read_state.mark_as_read(message.id, seller.id, no_desks) is True
        assert message.is_read is True
        assert changes == [{seller.id, buyer.id}]

    async def test_marking_twice_is_a_noop(self, read_state, make_user, make_listing, make_message, changes):
        """Second call reports nothing changed and does not invalidate again."""
        seller = await make_user("Sam")
        buyer = await make_user("Bea")
        listing = await make_listing(seller)
        message = await make_message(buyer, seller, listing=listing)

        await read_state.mark_as_read(message.id, seller.id, no_desks)
        assert await read_state.mark_as_read(message.id, seller.id, no_desks) is False

        assert message.is_read is True
        assert len(changes) == 1

    async def test_sender_cannot_mark_read(self, read_state, make_user, make_listing, make_message):
        seller = await make_user("Sam")
        buyer = await make_user("Bea")
        listing = await make_listing(seller)
        message = await make_message(buyer, seller, listing=listing)

        with pytest.raises(NotOwner):
            await read_state.mark_as_read(message.id, buyer.id, no_desks)

        assert message.is_read is False

    async def test_unknown_message(self, read_state, make_user):
        user = await make_user("Sam")

        with pytest.raises(MessageNotFound):
            await read_state.mark_as_read(uuid.uuid4(), user.id, no_desks)

    async def test_any_desk_marks_support_request_read(self, read_state, make_user, make_message):
        desk_1 = await make_user("Desk one", is_support_desk=True)
        desk_2 = await make_user("Desk two", is_support_desk=True)
        requester = await make_user("Rita")
        request = await make_message(requester, desk_1, support_category="technical")
        desks = {desk_1.id, desk_2.id}.__contains__

        assert await read_state.mark_as_read(request.id, desk_2.id, desks) is True
        assert request.is_read is True


class TestMarkConversationRead:

    async def test_marks_only_messages_to_actor(self, read_state, make_user, make_listing, make_message, changes):
        seller = await make_user("Sam")
        buyer = await make_user("Bea")
        listing = await make_listing(seller)
        first = await make_message(buyer, seller, listing=listing, minutes=0)
        reply = await make_message(seller, buyer, listing=listing, minutes=1)
        second = await make_message(buyer, seller, listing=listing, minutes=2)
        [conversation] = aggregate([first, reply, second], seller.id, is_support_desk=no_desks)
        assert conversation.unread_count == 2

        ids = await read_state.mark_conversation_read(conversation, seller.id, no_desks)

        assert set(ids) == {first.id, second.id}
        assert conversation.unread_count == 0
        assert first.is_read and second.is_read
        assert reply.is_read is False
        assert changes == [{seller.id, buyer.id}]

    async def test_nothing_unread(self, read_state, make_user, make_listing, make_message, changes):
        seller = await make_user("Sam")
        buyer = await make_user("Bea")
        listing = await make_listing(seller)
        message = await make_message(buyer, seller, listing=listing, is_read=True)
        [conversation] = aggregate([message], seller.id, is_support_desk=no_desks)

        assert await read_state.mark_conversation_read(conversation, seller.id, no_desks) == []
        assert changes == []
