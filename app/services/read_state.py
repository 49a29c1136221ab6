import logging
from typing import Callable, List, Optional
from uuid import UUID

from app.errors import MessageNotFound, NotOwner
from app.services.conversations import Conversation, is_unread_for
from app.services.lifecycle import InvalidateHook
from app.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class ReadStateManager:
    """Moves messages from unread to read. There is no way back to unread."""

    def __init__(self, store: MessageStore, on_change: Optional[InvalidateHook] = None):
        self.store = store
        self.on_change = on_change

    async def mark_as_read(self, message_id: UUID, actor_id: UUID, is_support_desk: Callable[[UUID], bool]) -> bool:
        """Mark one message read. Returns False when it already was."""
        message = await self.store.get(message_id)
        if message is None:
            raise MessageNotFound(f"Message {message_id} not found")

        addressed_to_desk = (
            message.support_category is not None
            and is_support_desk(actor_id)
            and is_support_desk(message.receiver_id)
        )
        if message.receiver_id != actor_id and not addressed_to_desk:
            raise NotOwner("Only the receiver can mark a message as read")

        if message.is_read:
            return False

        await self.store.update(message.id, is_read=True)
        if self.on_change is not None:
            await self.on_change({message.sender_id, message.receiver_id})
        return True

    async def mark_conversation_read(
        self,
        conversation: Conversation,
        actor_id: UUID,
        is_support_desk: Callable[[UUID], bool],
    ) -> List[UUID]:
        """Mark every unread message addressed to the actor in one update."""
        ids = conversation.unread_message_ids(actor_id, is_support_desk)
        if not ids:
            return []

        updated = await self.store.update_many(ids, is_read=True)
        logger.debug(f"Marked {updated} messages read in {conversation.id} for {actor_id}")
        conversation.unread_count = 0

        if self.on_change is not None:
            participants = set()
            for message in conversation.messages:
                participants.update((message.sender_id, message.receiver_id))
            await self.on_change(participants)
        return ids
