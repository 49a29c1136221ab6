import logging
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.errors import (
    ConversationNotFound,
    EmptyContent,
    NotFound,
    SendLimitReached,
    Unauthenticated,
    ValidationError,
)
from app.models.message import Message
from app.models.user import User
from app.schemas.messages import ConversationDto, ViewStateDto, make_conversation_dto
from app.services.conversations import Conversation, ConversationAggregator, ConversationKey
from app.services.email_service import EmailService, email_service, new_message_email
from app.services.identity import IdentityService, display_name
from app.services.lifecycle import LifecycleManager
from app.services.listings import ListingCatalog
from app.services.message_store import MessageFilter, MessageStore
from app.services.read_state import ReadStateManager
from app.services.support import support_category_name, validate_support_category
from app.services.sync import SyncLayer, sync_layer
from app.services.usage_limits import UsageLimiter
from app.services.views import View, partition

logger = logging.getLogger(__name__)


class MessagingService:
    """Public operations of the messaging core, for one database session."""

    def __init__(
        self,
        db: AsyncSession,
        sync: Optional[SyncLayer] = None,
        notifier: Optional[EmailService] = None,
        limiter: Optional[UsageLimiter] = None,
    ):
        self.sync = sync or sync_layer
        self.notifier = notifier or email_service
        self.store = MessageStore(db)
        self.identity = IdentityService(db)
        self.catalog = ListingCatalog(db)
        self.limiter = limiter or UsageLimiter(self.store)
        self.aggregator = ConversationAggregator(self.identity, self.catalog)
        self.lifecycle = LifecycleManager(self.store, on_change=self._invalidate)
        self.read_state = ReadStateManager(self.store, on_change=self._invalidate)

    async def _desk_checker(self, *user_ids: UUID) -> Callable[[UUID], bool]:
        return await self.aggregator.support_desk_checker(user_ids)

    async def _invalidate(self, user_ids) -> None:
        """Mark the participants' views stale.

        Support desk identities share one queue, so when any desk takes part
        every desk identity is invalidated.
        """
        user_ids = set(user_ids)
        if await self.identity.support_desk_ids(user_ids):
            user_ids |= await self.identity.support_desk_ids()
        await self.sync.invalidate(user_ids)

    # Sending

    async def send_message(
        self,
        actor: Optional[User],
        content: str,
        listing_id: Optional[UUID] = None,
        support_category: Optional[str] = None,
        receiver_id: Optional[UUID] = None,
    ) -> Message:
        if actor is None:
            raise Unauthenticated("User must be authenticated to send messages")
        content = (content or "").strip()
        if not content:
            raise EmptyContent("Message content cannot be empty")
        if (listing_id is None) == (support_category is None):
            raise ValidationError("A message needs either a listing or a support category")
        if not await self.limiter.can_send(actor.id):
            raise SendLimitReached("Daily message limit reached")

        listing = None
        if listing_id is not None:
            listing = await self.catalog.get_listing_summary(listing_id)
            receiver_id = receiver_id or listing.owner_id
            if listing.owner_id not in (actor.id, receiver_id):
                raise ValidationError("Listing messages must involve the listing owner")
        else:
            support_category = validate_support_category(support_category)
            if actor.is_support_desk:
                if receiver_id is None:
                    raise ValidationError("Support replies need a receiver")
            else:
                desk = await self.identity.default_support_desk()
                if desk is None:
                    raise NotFound("No support desk available")
                receiver_id = desk.id

        if receiver_id == actor.id:
            raise ValidationError("Cannot message yourself")
        receiver = await self.identity.get_user(receiver_id)
        if receiver is None:
            raise NotFound("Recipient not found")

        message = Message(
            content=content,
            sender_id=actor.id,
            receiver_id=receiver.id,
            listing_id=listing_id,
            support_category=support_category,
        )
        message = await self.store.insert(message)
        logger.info(f"Message {message.id} sent by {actor.id} to {receiver.id}")

        await self._invalidate({actor.id, receiver.id})
        self._notify_receiver(message, actor, receiver, listing.title if listing else None)
        return message

    def _notify_receiver(self, message: Message, sender: User, receiver: User, listing_title: Optional[str]) -> None:
        subject_line = listing_title or support_category_name(message.support_category)
        view = View.SUPPORT if message.support_category else View.INCOMING
        link = f"{get_settings().web_app_url}/messages?view={view.value}"
        subject, text, html = new_message_email(
            display_name(receiver), display_name(sender), subject_line, message.content, link,
        )
        try:
            self.notifier.notify(receiver.email, subject, text, html)
        except Exception:
            logger.exception(f"Could not queue notification for message {message.id}")

    # Reading

    async def get_conversations(self, actor_id: UUID, view: View) -> List[Conversation]:
        is_desk = await self.identity.is_support_desk(actor_id)
        spec = partition(view, actor_id, is_support_desk=is_desk)
        messages = await self.store.query(spec.message_filter)
        return await self.aggregator.build(messages, actor_id, count_unread=spec.count_unread)

    async def get_conversation_dtos(self, actor_id: UUID, view: View) -> List[ConversationDto]:
        is_desk = await self.identity.is_support_desk(actor_id)
        actions = partition(view, actor_id, is_support_desk=is_desk).allowed_actions
        conversations = await self.get_conversations(actor_id, view)
        return [make_conversation_dto(c, actor_id, actions) for c in conversations]

    async def refresh_view(self, actor_id: UUID, view: View, touch: bool = True) -> ViewStateDto:
        return await self.sync.refresh(
            actor_id, view, lambda: self.get_conversation_dtos(actor_id, view), touch=touch,
        )

    async def sync_view(self, actor_id: UUID, view: View) -> ViewStateDto:
        """Cached state when fresh, otherwise a new refresh."""
        state = self.sync.state(actor_id, view)
        if state.stale or state.refreshed_at is None:
            return await self.refresh_view(actor_id, view)
        self.sync.touch(actor_id, view)
        return state

    async def get_conversation(self, actor_id: UUID, view: View, conversation_id: str) -> Conversation:
        target = str(ConversationKey.parse(conversation_id))
        for conversation in await self.get_conversations(actor_id, view):
            if conversation.id == target:
                return conversation
        raise ConversationNotFound(f"Conversation {conversation_id} not found")

    async def open_conversation(self, actor_id: UUID, view: View, conversation_id: str) -> Conversation:
        """Select a conversation and mark what the actor received in it as read."""
        conversation = await self.get_conversation(actor_id, view, conversation_id)
        self.sync.select(actor_id, view, conversation.id)
        participants = {actor_id}
        for message in conversation.messages:
            participants.update((message.sender_id, message.receiver_id))
        is_support_desk = await self._desk_checker(*participants)
        await self.read_state.mark_conversation_read(conversation, actor_id, is_support_desk)
        return conversation

    async def get_unread_count(self, actor_id: UUID) -> int:
        count = await self.store.count(MessageFilter(receiver_id=actor_id, unread_only=True, deleted=False))
        if await self.identity.is_support_desk(actor_id):
            other_desks = await self.identity.support_desk_ids()
            other_desks.discard(actor_id)
            if other_desks:
                count += await self.store.count(MessageFilter(
                    receiver_in=frozenset(other_desks), support_only=True, unread_only=True, deleted=False,
                ))
        return count

    # Mutations

    async def mark_message_as_read(self, actor_id: UUID, message_id: UUID) -> bool:
        message = await self.store.get(message_id)
        receiver = message.receiver_id if message is not None else actor_id
        is_support_desk = await self._desk_checker(actor_id, receiver)
        return await self.read_state.mark_as_read(message_id, actor_id, is_support_desk)

    async def delete_message(self, actor_id: UUID, message_id: UUID) -> Message:
        return await self.lifecycle.soft_delete(message_id, actor_id)

    async def restore_message(self, actor_id: UUID, message_id: UUID) -> Message:
        return await self.lifecycle.restore(message_id, actor_id)

    async def permanently_delete_message(self, actor_id: UUID, message_id: UUID) -> None:
        await self.lifecycle.permanently_delete(message_id, actor_id)

    async def delete_conversation(self, actor_id: UUID, conversation_id: str) -> List[UUID]:
        is_desk = await self.identity.is_support_desk(actor_id)
        return await self.lifecycle.delete_conversation(conversation_id, actor_id, is_support_desk=is_desk)
