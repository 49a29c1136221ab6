from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from uuid import UUID
from decimal import Decimal
from datetime import datetime

from app.models.message import Message
from app.services.conversations import Conversation
from app.services.views import View


def to_camel(string: str) -> str:
    components = string.split('_')
    return components[0] + ''.join(x.title() for x in components[1:])


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
    )


class SendMessageRequest(CamelModel):
    content: str
    listing_id: Optional[UUID] = None
    support_category: Optional[str] = None
    receiver_id: Optional[UUID] = None


class MessageDto(CamelModel):
    id: UUID
    content: str
    sender_id: UUID
    receiver_id: UUID
    listing_id: Optional[UUID] = None
    support_category: Optional[str] = None
    created_at: datetime
    deleted_at: Optional[datetime] = None
    is_read: bool
    is_mine: bool


class PartyDto(CamelModel):
    id: Optional[UUID] = None
    name: str
    email: str = ""


class ListingSummaryDto(CamelModel):
    id: UUID
    title: str
    price: Optional[Decimal] = None
    thumbnail_url: Optional[str] = None
    category_name: Optional[str] = None


class ConversationDto(CamelModel):
    id: str
    kind: str
    listing: Optional[ListingSummaryDto] = None
    support_category: Optional[str] = None
    support_category_name: Optional[str] = None
    other_party: PartyDto
    messages: List[MessageDto]
    last_message: MessageDto
    last_activity: datetime
    unread_count: int = 0
    deleted: bool = False
    allowed_actions: List[str] = []


class UnreadCountDto(CamelModel):
    unread_count: int


class ReadResultDto(CamelModel):
    marked_read: List[UUID]


class LifecycleResultDto(CamelModel):
    success: bool = True
    message_ids: List[UUID] = []


class ViewStateDto(CamelModel):
    """Serializable per-view sync state, one per (actor, view)."""
    view: View
    version: int = 0
    request_id: int = 0
    selected_conversation_id: Optional[str] = None
    conversations: List[ConversationDto] = []
    refreshed_at: Optional[datetime] = None
    stale: bool = True


def make_message_dto(msg: Message, current_user_id: UUID) -> MessageDto:
    return MessageDto(
        id=msg.id,
        content=msg.content,
        sender_id=msg.sender_id,
        receiver_id=msg.receiver_id,
        listing_id=msg.listing_id,
        support_category=msg.support_category,
        created_at=msg.created_at,
        deleted_at=msg.deleted_at,
        is_read=bool(msg.is_read),
        is_mine=msg.sender_id == current_user_id,
    )


def make_conversation_dto(conversation: Conversation, current_user_id: UUID, allowed_actions=()) -> ConversationDto:
    messages = [make_message_dto(m, current_user_id) for m in conversation.messages]
    listing = None
    if conversation.listing is not None:
        listing = ListingSummaryDto(
            id=conversation.listing.id,
            title=conversation.listing.title,
            price=conversation.listing.price,
            thumbnail_url=conversation.listing.thumbnail_url,
            category_name=conversation.listing.category_name,
        )
    party = conversation.other_party
    return ConversationDto(
        id=conversation.id,
        kind=conversation.kind,
        listing=listing,
        support_category=conversation.support_category,
        support_category_name=conversation.support_category_name,
        other_party=PartyDto(id=party.id, name=party.name, email=party.email),
        messages=messages,
        last_message=messages[-1],
        last_activity=conversation.last_activity,
        unread_count=conversation.unread_count,
        deleted=conversation.deleted,
        allowed_actions=sorted(allowed_actions),
    )
