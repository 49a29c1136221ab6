"""
Tests for conversation grouping.

Tests cover:
- Conversation keys for listing and support messages
- Message ordering inside a conversation, including timestamp ties
- Conversation ordering by last activity
- Unread counting, including the shared support desk queue
- Placeholder metadata for missing users and listings
- Conversation id parsing
"""

import random
import uuid
from datetime import datetime, timedelta

import pytest

from app.errors import InvalidConversationId
from app.models.message import Message
from app.models.user import User
from app.services.conversations import (
    LISTING,
    SUPPORT,
    ConversationKey,
    aggregate,
    conversation_key,
    is_unread_for,
)
from app.services.identity import SUPPORT_TEAM_NAME, UNKNOWN_USER_NAME
from app.services.listings import ListingSummary, UNKNOWN_LISTING_TITLE

T0 = datetime(2026, 3, 1, 9, 0, 0)

ALICE = uuid.UUID("aaaaaaaa-0000-0000-0000-000000000001")
BOB = uuid.UUID("bbbbbbbb-0000-0000-0000-000000000002")
CAROL = uuid.UUID("cccccccc-0000-0000-0000-000000000003")
DESK_1 = uuid.UUID("dddddddd-0000-0000-0000-000000000004")
DESK_2 = uuid.UUID("dddddddd-0000-0000-0000-000000000005")
LISTING_1 = uuid.UUID("11111111-0000-0000-0000-000000000001")
LISTING_2 = uuid.UUID("22222222-0000-0000-0000-000000000002")

DESKS = {DESK_1, DESK_2}.__contains__


def msg(sender, receiver, listing=None, category=None, minutes=0, is_read=False, deleted=False, id=None):
    return Message(
        id=id or uuid.uuid4(),
        sender_id=sender,
        receiver_id=receiver,
        content="text",
        listing_id=listing,
        support_category=category,
        created_at=T0 + timedelta(minutes=minutes),
        is_read=is_read,
        deleted_at=T0 if deleted else None,
    )


class TestConversationKey:
    """Key derivation relative to the viewing actor."""

    def test_listing_messages_in_both_directions_share_key(self):
        """A buyer's question and the seller's reply land in one thread."""
        question = msg(BOB, ALICE, listing=LISTING_1)
        reply = msg(ALICE, BOB, listing=LISTING_1)

        assert conversation_key(question, ALICE, DESKS) == conversation_key(reply, ALICE, DESKS)
        assert str(conversation_key(question, ALICE, DESKS)) == f"listing:{LISTING_1}:{BOB}"

    def test_listing_key_depends_on_viewer(self):
        message = msg(BOB, ALICE, listing=LISTING_1)

        assert conversation_key(message, ALICE, DESKS).party_id == BOB
        assert conversation_key(message, BOB, DESKS).party_id == ALICE

    def test_support_key_uses_requester(self):
        """Replies from different desk staff join the requester's thread."""
        request = msg(CAROL, DESK_1, category="billing")
        reply_1 = msg(DESK_1, CAROL, category="billing")
        reply_2 = msg(DESK_2, CAROL, category="billing")

        keys = {conversation_key(m, CAROL, DESKS) for m in (request, reply_1, reply_2)}
        assert keys == {ConversationKey(SUPPORT, "billing", str(CAROL))}

    def test_support_key_same_for_requester_and_desk(self):
        request = msg(CAROL, DESK_1, category="technical")

        assert conversation_key(request, CAROL, DESKS) == conversation_key(request, DESK_2, DESKS)

    def test_support_key_between_desks_ignores_direction(self):
        """A desk identity filing its own request keeps one thread."""
        request = msg(DESK_2, DESK_1, category="technical")
        reply = msg(DESK_1, DESK_2, category="technical")

        assert conversation_key(request, DESK_1, DESKS) == conversation_key(reply, DESK_1, DESKS)
        assert conversation_key(request, DESK_2, DESKS) == conversation_key(reply, DESK_2, DESKS)

    def test_support_key_after_desk_flag_revoked(self):
        """Old desk replies from a user no longer flagged as desk stay in the thread."""
        no_desks = set().__contains__
        request = msg(CAROL, BOB, category="billing")
        reply = msg(BOB, CAROL, category="billing", minutes=1)

        [conversation] = aggregate([request, reply], CAROL, is_support_desk=no_desks)
        assert len(conversation.messages) == 2

    def test_support_and_listing_messages_never_share_key(self):
        """Same counterpart on a listing and on support gives two threads."""
        on_listing = msg(BOB, ALICE, listing=LISTING_1)
        on_support = msg(BOB, DESK_1, category="general")

        assert conversation_key(on_listing, BOB, DESKS).kind == LISTING
        assert conversation_key(on_support, BOB, DESKS).kind == SUPPORT


class TestConversationKeyParsing:

    def test_parse_listing_id(self):
        key = ConversationKey.parse(f"listing:{LISTING_1}:{BOB}")

        assert key.listing_id == LISTING_1
        assert key.party_id == BOB
        assert key.support_category is None

    def test_parse_support_id(self):
        key = ConversationKey.parse(f"support:billing:{CAROL}")

        assert key.support_category == "billing"
        assert key.listing_id is None

    @pytest.mark.parametrize("value", [
        "",
        "listing",
        f"listing:not-a-uuid:{BOB}",
        f"support:billing:not-a-uuid",
        f"thread:{LISTING_1}:{BOB}",
        f"support::{BOB}",
        f"listing:{LISTING_1}:{BOB}:extra",
    ])
    def test_parse_rejects_malformed_ids(self, value):
        with pytest.raises(InvalidConversationId):
            ConversationKey.parse(value)


class TestAggregate:
    """Pure aggregation over an in-memory message set."""

    def test_groups_listing_thread(self):
        messages = [
            msg(BOB, ALICE, listing=LISTING_1, minutes=0),
            msg(ALICE, BOB, listing=LISTING_1, minutes=1),
            msg(CAROL, ALICE, listing=LISTING_1, minutes=2),
        ]

        conversations = aggregate(messages, ALICE, is_support_desk=DESKS)

        assert len(conversations) == 2
        by_party = {c.other_party.id: c for c in conversations}
        assert len(by_party[BOB].messages) == 2
        assert len(by_party[CAROL].messages) == 1

    def test_messages_sorted_by_time_then_id(self):
        """Equal timestamps are ordered by id so refreshes never reshuffle."""
        low = uuid.UUID("00000000-0000-0000-0000-000000000001")
        high = uuid.UUID("ffffffff-0000-0000-0000-000000000001")
        messages = [
            msg(BOB, ALICE, listing=LISTING_1, minutes=5),
            msg(BOB, ALICE, listing=LISTING_1, minutes=1, id=high),
            msg(ALICE, BOB, listing=LISTING_1, minutes=1, id=low),
        ]

        [conversation] = aggregate(messages, ALICE, is_support_desk=DESKS)

        assert [m.id for m in conversation.messages[:2]] == [low, high]
        times = [m.created_at for m in conversation.messages]
        assert times == sorted(times)
        assert conversation.last_message is messages[0]
        assert conversation.last_activity == T0 + timedelta(minutes=5)

    def test_conversations_sorted_by_last_activity(self):
        messages = [
            msg(BOB, ALICE, listing=LISTING_1, minutes=1),
            msg(CAROL, ALICE, listing=LISTING_2, minutes=3),
            msg(BOB, ALICE, listing=LISTING_2, minutes=2),
        ]

        conversations = aggregate(messages, ALICE, is_support_desk=DESKS)

        assert [c.last_activity for c in conversations] == [
            T0 + timedelta(minutes=3),
            T0 + timedelta(minutes=2),
            T0 + timedelta(minutes=1),
        ]

    def test_activity_ties_broken_by_key(self):
        messages = [
            msg(CAROL, ALICE, listing=LISTING_2, minutes=1),
            msg(BOB, ALICE, listing=LISTING_1, minutes=1),
        ]

        first = [c.id for c in aggregate(messages, ALICE, is_support_desk=DESKS)]
        second = [c.id for c in aggregate(list(reversed(messages)), ALICE, is_support_desk=DESKS)]

        assert first == second == sorted(first)

    def test_unread_counts_only_messages_to_actor(self):
        messages = [
            msg(BOB, ALICE, listing=LISTING_1, minutes=0),
            msg(BOB, ALICE, listing=LISTING_1, minutes=1, is_read=True),
            msg(BOB, ALICE, listing=LISTING_1, minutes=2, deleted=True),
            msg(ALICE, BOB, listing=LISTING_1, minutes=3),
            msg(BOB, ALICE, listing=LISTING_1, minutes=4),
        ]

        [conversation] = aggregate(messages, ALICE, is_support_desk=DESKS)

        assert conversation.unread_count == 2

    def test_unread_not_counted_when_disabled(self):
        messages = [msg(BOB, ALICE, listing=LISTING_1)]

        [conversation] = aggregate(messages, ALICE, is_support_desk=DESKS, count_unread=False)

        assert conversation.unread_count == 0

    def test_support_desk_shares_unread_queue(self):
        """A request sent to one desk identity is unread for every desk identity."""
        request = msg(CAROL, DESK_1, category="account")

        assert is_unread_for(request, DESK_1, DESKS)
        assert is_unread_for(request, DESK_2, DESKS)
        assert not is_unread_for(request, CAROL, DESKS)
        assert not is_unread_for(request, BOB, DESKS)

    def test_listing_message_to_desk_user_not_shared(self):
        """Desk staff buying and selling privately keep their own unread state."""
        private = msg(BOB, DESK_1, listing=LISTING_1)

        assert is_unread_for(private, DESK_1, DESKS)
        assert not is_unread_for(private, DESK_2, DESKS)

    def test_support_thread_metadata_for_requester(self):
        messages = [msg(CAROL, DESK_1, category="billing"), msg(DESK_1, CAROL, category="billing", minutes=1)]

        [conversation] = aggregate(messages, CAROL, is_support_desk=DESKS)

        assert conversation.other_party.name == SUPPORT_TEAM_NAME
        assert conversation.other_party.id is None
        assert conversation.support_category_name == "Billing Question"
        assert conversation.listing is None
        assert conversation.unread_count == 1

    def test_support_thread_metadata_for_desk(self):
        carol = User(id=CAROL, email="carol@example.com", first_name="Carol", last_name="Jones")
        messages = [msg(CAROL, DESK_1, category="bug_report")]

        [conversation] = aggregate(messages, DESK_2, is_support_desk=DESKS, users={CAROL: carol})

        assert conversation.other_party.name == "Carol Jones"
        assert conversation.other_party.email == "carol@example.com"
        assert conversation.unread_count == 1

    def test_placeholders_for_missing_metadata(self):
        messages = [msg(BOB, ALICE, listing=LISTING_1)]

        [conversation] = aggregate(messages, ALICE, is_support_desk=DESKS, users={}, listings={})

        assert conversation.listing.title == UNKNOWN_LISTING_TITLE
        assert conversation.listing.id == LISTING_1
        assert conversation.other_party.name == UNKNOWN_USER_NAME
        assert conversation.other_party.id == BOB

    def test_listing_metadata_attached(self):
        summary = ListingSummary(id=LISTING_1, title="Road bike", owner_id=ALICE)
        messages = [msg(BOB, ALICE, listing=LISTING_1)]

        [conversation] = aggregate(messages, ALICE, is_support_desk=DESKS, listings={LISTING_1: summary})

        assert conversation.listing == summary

    def test_deleted_flag_only_when_all_deleted(self):
        partly = [msg(BOB, ALICE, listing=LISTING_1, deleted=True), msg(BOB, ALICE, listing=LISTING_1)]
        fully = [msg(BOB, ALICE, listing=LISTING_2, deleted=True)]

        assert not aggregate(partly, ALICE, is_support_desk=DESKS)[0].deleted
        assert aggregate(fully, ALICE, is_support_desk=DESKS)[0].deleted

    def test_support_and_listing_split(self):
        """Same counterpart, one listing message and one support message: two conversations."""
        messages = [
            msg(BOB, ALICE, listing=LISTING_1, minutes=0),
            msg(BOB, ALICE, category="general", minutes=1),
        ]

        conversations = aggregate(messages, ALICE, is_support_desk=DESKS)

        assert sorted(c.kind for c in conversations) == [LISTING, SUPPORT]

    def test_empty_input(self):
        assert aggregate([], ALICE, is_support_desk=DESKS) == []


class TestIncomingPartitionProperty:
    """Randomised message sets: every incoming message lands in exactly one thread."""

    @pytest.mark.parametrize("seed", range(5))
    def test_each_message_in_exactly_one_conversation(self, seed):
        rng = random.Random(seed)
        users = [ALICE, BOB, CAROL]
        messages = []
        for i in range(40):
            sender, receiver = rng.sample(users, 2)
            if rng.random() < 0.3:
                messages.append(msg(sender, receiver, category=rng.choice(["general", "billing"]), minutes=rng.randint(0, 10),
                                    is_read=rng.random() < 0.5, deleted=rng.random() < 0.2))
            else:
                messages.append(msg(sender, receiver, listing=rng.choice([LISTING_1, LISTING_2]), minutes=rng.randint(0, 10),
                                    is_read=rng.random() < 0.5, deleted=rng.random() < 0.2))

        incoming = [m for m in messages if m.receiver_id == ALICE and m.deleted_at is None]
        conversations = aggregate(incoming, ALICE, is_support_desk=DESKS)

        seen = [m.id for c in conversations for m in c.messages]
        assert sorted(seen) == sorted(m.id for m in incoming)
        assert len(seen) == len(set(seen))

        expected_unread = sum(1 for m in incoming if not m.is_read)
        assert sum(c.unread_count for c in conversations) == expected_unread
        for conversation in conversations:
            assert conversation.unread_count == sum(1 for m in conversation.messages if not m.is_read)
