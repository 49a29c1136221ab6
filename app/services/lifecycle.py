import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Union
from uuid import UUID

from app.errors import ConversationNotFound, InvalidState, MessageNotFound, NotOwner
from app.models.message import Message
from app.models.purged_message import PurgedMessage
from app.services.conversations import ConversationKey, LISTING
from app.services.message_store import MessageFilter, MessageStore

logger = logging.getLogger(__name__)

InvalidateHook = Callable[[Iterable[UUID]], Awaitable[None]]

ACTIVE = "active"
SOFT_DELETED = "soft_deleted"
PURGED = "purged"


def message_state(message: Union[Message, PurgedMessage]) -> str:
    if isinstance(message, PurgedMessage):
        return PURGED
    return SOFT_DELETED if message.deleted_at is not None else ACTIVE


def check_owner(message: Union[Message, PurgedMessage], actor_id: UUID, action: str) -> None:
    if actor_id not in (message.sender_id, message.receiver_id):
        raise NotOwner(f"You can only {action} your own messages")


class LifecycleManager:
    """
    Soft-delete state machine for a single message row.

        active --soft_delete--> soft_deleted --restore--> active
                                soft_deleted --permanently_delete--> purged

    Soft-delete is global: the row is shared by sender and receiver, so both
    parties' views change. Every call that passes the ownership check
    notifies ``on_change`` with both participants.
    """

    def __init__(self, store: MessageStore, on_change: Optional[InvalidateHook] = None):
        self.store = store
        self.on_change = on_change

    async def _load(self, message_id: UUID) -> Union[Message, PurgedMessage]:
        message = await self.store.get(message_id)
        if message is not None:
            return message
        tombstone = await self.store.get_tombstone(message_id)
        if tombstone is not None:
            return tombstone
        raise MessageNotFound(f"Message {message_id} not found")

    async def _changed(self, *participants: UUID) -> None:
        if self.on_change is not None:
            await self.on_change(set(participants))

    async def soft_delete(self, message_id: UUID, actor_id: UUID) -> Message:
        message = await self._load(message_id)
        check_owner(message, actor_id, "delete")
        state = message_state(message)
        if state == PURGED:
            raise InvalidState("Message was permanently deleted")

        if state == ACTIVE:
            await self.store.update(message.id, deleted_at=datetime.utcnow())
            logger.info(f"Message {message.id} soft-deleted by {actor_id}")
        else:
            logger.debug(f"Message {message.id} already deleted, nothing to do")

        await self._changed(message.sender_id, message.receiver_id)
        return message

    async def restore(self, message_id: UUID, actor_id: UUID) -> Message:
        message = await self._load(message_id)
        check_owner(message, actor_id, "restore")
        state = message_state(message)
        if state != SOFT_DELETED:
            raise InvalidState(f"Only deleted messages can be restored (message is {state})")

        await self.store.update(message.id, deleted_at=None)
        logger.info(f"Message {message.id} restored by {actor_id}")
        await self._changed(message.sender_id, message.receiver_id)
        return message

    async def permanently_delete(self, message_id: UUID, actor_id: UUID) -> None:
        message = await self._load(message_id)
        check_owner(message, actor_id, "permanently delete")
        state = message_state(message)
        if state != SOFT_DELETED:
            raise InvalidState(f"Only deleted messages can be permanently deleted (message is {state})")

        sender_id, receiver_id = message.sender_id, message.receiver_id
        if not await self.store.purge(message, actor_id):
            # Lost a race with another purge of the same row
            raise InvalidState("Message was permanently deleted")
        logger.info(f"Message {message_id} permanently deleted by {actor_id}")
        await self._changed(sender_id, receiver_id)

    async def delete_conversation(self, conversation_id: str, actor_id: UUID, is_support_desk: bool = False) -> List[UUID]:
        """Soft-delete every active message of a conversation the actor takes part in."""
        key = ConversationKey.parse(conversation_id)
        if key.kind == LISTING:
            message_filter = MessageFilter(
                participant_id=actor_id,
                counterpart_id=key.party_id,
                listing_id=key.listing_id,
            )
        elif key.party_id == actor_id:
            message_filter = MessageFilter(participant_id=actor_id, support_category=key.scope)
        elif is_support_desk:
            message_filter = MessageFilter(
                participant_id=actor_id,
                counterpart_id=key.party_id,
                support_category=key.scope,
            )
        else:
            raise NotOwner("You can only delete your own conversations")

        messages = await self.store.query(message_filter)
        if not messages:
            raise ConversationNotFound(f"Conversation {conversation_id} not found")

        ids = [m.id for m in messages]
        await self.store.update_many(ids, deleted_at=datetime.utcnow())
        logger.info(f"Conversation {conversation_id} soft-deleted by {actor_id} ({len(ids)} messages)")

        participants = set()
        for message in messages:
            participants.update((message.sender_id, message.receiver_id))
        await self._changed(*participants)
        return ids
