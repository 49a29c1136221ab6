"""
Conversation grouping.

Messages carry no conversation id. A thread is derived from each row and the
viewing actor:

* listing messages: ``(listing_id, counterpart_id)``
* support messages: ``(support_category, requester_id)``, where the requester
  is whichever participant is not a support desk identity, so replies from
  different support staff land in the same thread. When both or neither are
  desk identities the smaller id stands in, so both directions still share
  one key.

``aggregate`` is pure and synchronous. ``ConversationAggregator`` wraps it
with the batched user and listing lookups needed for display metadata.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set
from uuid import UUID

from app.errors import InvalidConversationId, TransientStoreError
from app.models.message import Message
from app.models.user import User
from app.services.identity import IdentityService, Party, SUPPORT_TEAM_NAME, to_party
from app.services.listings import ListingCatalog, ListingSummary
from app.services.support import support_category_name

logger = logging.getLogger(__name__)

LISTING = "listing"
SUPPORT = "support"


@dataclass(frozen=True, order=True)
class ConversationKey:
    kind: str
    scope: str  # listing id or support category
    party: str  # counterpart id (listing) or requester id (support)

    def __str__(self) -> str:
        return f"{self.kind}:{self.scope}:{self.party}"

    @property
    def party_id(self) -> UUID:
        return UUID(self.party)

    @property
    def listing_id(self) -> Optional[UUID]:
        return UUID(self.scope) if self.kind == LISTING else None

    @property
    def support_category(self) -> Optional[str]:
        return self.scope if self.kind == SUPPORT else None

    @classmethod
    def parse(cls, value: str) -> "ConversationKey":
        parts = (value or "").split(":")
        if len(parts) != 3 or parts[0] not in (LISTING, SUPPORT) or not parts[1]:
            raise InvalidConversationId(f"Invalid conversation id: {value!r}")
        kind, scope, party = parts
        try:
            party = str(UUID(party))
            if kind == LISTING:
                scope = str(UUID(scope))
        except ValueError:
            raise InvalidConversationId(f"Invalid conversation id: {value!r}")
        return cls(kind, scope, party)


def message_sort_key(message: Message):
    return (message.created_at, str(message.id))


def conversation_key(message: Message, actor_id: UUID, is_support_desk: Callable[[UUID], bool]) -> ConversationKey:
    if message.support_category is not None:
        sender_is_desk = is_support_desk(message.sender_id)
        if sender_is_desk != is_support_desk(message.receiver_id):
            requester = message.receiver_id if sender_is_desk else message.sender_id
        else:
            # No desk side to tell them apart; pick independently of direction
            requester = min(message.sender_id, message.receiver_id, key=str)
        return ConversationKey(SUPPORT, message.support_category, str(requester))

    counterpart = message.receiver_id if message.sender_id == actor_id else message.sender_id
    return ConversationKey(LISTING, str(message.listing_id), str(counterpart))


def is_unread_for(message: Message, actor_id: UUID, is_support_desk: Callable[[UUID], bool]) -> bool:
    """Unread and addressed to the actor.

    Support desk identities share one queue, so a support message sent to any
    desk identity counts as addressed to every desk identity.
    """
    if message.is_read or message.deleted_at is not None:
        return False
    if message.receiver_id == actor_id:
        return True
    return (
        message.support_category is not None
        and is_support_desk(actor_id)
        and is_support_desk(message.receiver_id)
    )


@dataclass
class Conversation:
    key: ConversationKey
    messages: List[Message]
    other_party: Party
    unread_count: int = 0
    listing: Optional[ListingSummary] = None
    support_category_name: Optional[str] = None
    deleted: bool = False

    @property
    def id(self) -> str:
        return str(self.key)

    @property
    def kind(self) -> str:
        return self.key.kind

    @property
    def support_category(self) -> Optional[str]:
        return self.key.support_category

    @property
    def last_message(self) -> Message:
        return self.messages[-1]

    @property
    def last_activity(self) -> datetime:
        return self.last_message.created_at

    def unread_message_ids(self, actor_id: UUID, is_support_desk: Callable[[UUID], bool]) -> List[UUID]:
        return [m.id for m in self.messages if is_unread_for(m, actor_id, is_support_desk)]


def aggregate(
    messages: Iterable[Message],
    actor_id: UUID,
    *,
    is_support_desk: Callable[[UUID], bool],
    listings: Mapping[UUID, ListingSummary] = None,
    users: Mapping[UUID, User] = None,
    count_unread: bool = True,
) -> List[Conversation]:
    """Group messages into conversations, most recently active first."""
    listings = listings or {}
    users = users or {}

    buckets: Dict[ConversationKey, List[Message]] = {}
    for message in messages:
        key = conversation_key(message, actor_id, is_support_desk)
        buckets.setdefault(key, []).append(message)

    conversations = []
    for key, bucket in buckets.items():
        bucket.sort(key=message_sort_key)

        if key.kind == SUPPORT:
            requester = key.party_id
            if requester == actor_id:
                other = Party(id=None, name=SUPPORT_TEAM_NAME)
            else:
                other = to_party(requester, users.get(requester))
            listing = None
            category_name = support_category_name(key.scope)
        else:
            other = to_party(key.party_id, users.get(key.party_id))
            listing = listings.get(key.listing_id) or ListingSummary.placeholder(key.listing_id)
            category_name = None

        unread = 0
        if count_unread:
            unread = sum(1 for m in bucket if is_unread_for(m, actor_id, is_support_desk))

        conversations.append(Conversation(
            key=key,
            messages=bucket,
            other_party=other,
            unread_count=unread,
            listing=listing,
            support_category_name=category_name,
            deleted=all(m.deleted_at is not None for m in bucket),
        ))

    # Stable: equal timestamps keep key order between refreshes
    conversations.sort(key=lambda c: c.key)
    conversations.sort(key=lambda c: c.last_activity, reverse=True)
    return conversations


class ConversationAggregator:
    """Runs ``aggregate`` with one user and one listing lookup per pass."""

    def __init__(self, identity: IdentityService, catalog: ListingCatalog):
        self.identity = identity
        self.catalog = catalog

    async def support_desk_checker(self, user_ids: Iterable[UUID]) -> Callable[[UUID], bool]:
        desk_ids: Set[UUID] = await self.identity.support_desk_ids(user_ids)
        return desk_ids.__contains__

    async def build(self, messages: List[Message], actor_id: UUID, *, count_unread: bool = True) -> List[Conversation]:
        participant_ids = {actor_id}
        listing_ids = set()
        for message in messages:
            participant_ids.add(message.sender_id)
            participant_ids.add(message.receiver_id)
            if message.listing_id is not None:
                listing_ids.add(message.listing_id)

        # Needed for grouping itself, so failures propagate
        is_support_desk = await self.support_desk_checker(participant_ids)

        # Display metadata degrades to placeholders
        try:
            users = await self.identity.get_users(participant_ids)
        except TransientStoreError as exc:
            logger.warning(f"User metadata unavailable, using placeholders: {exc}")
            users = {}
        try:
            listings = await self.catalog.get_summaries(listing_ids)
        except TransientStoreError as exc:
            logger.warning(f"Listing metadata unavailable, using placeholders: {exc}")
            listings = {}

        return aggregate(
            messages,
            actor_id,
            is_support_desk=is_support_desk,
            listings=listings,
            users=users,
            count_unread=count_unread,
        )
