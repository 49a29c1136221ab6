import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select, update, delete, func, or_, and_
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import TransientStoreError, ValidationError
from app.models.message import Message
from app.models.purged_message import PurgedMessage

logger = logging.getLogger(__name__)

# Columns the store lets callers change after insert
MUTABLE_FIELDS = {"is_read", "deleted_at"}


@dataclass(frozen=True)
class MessageFilter:
    """Structured query over the messages table. Unset fields don't filter."""
    participant_id: Optional[UUID] = None  # sender or receiver
    counterpart_id: Optional[UUID] = None  # other side of participant_id
    sender_id: Optional[UUID] = None
    receiver_id: Optional[UUID] = None
    receiver_in: Optional[frozenset] = None
    listing_id: Optional[UUID] = None
    support_category: Optional[str] = None
    support_only: Optional[bool] = None  # True: support, False: listing, None: both
    deleted: Optional[bool] = False  # False: active, True: soft-deleted, None: both
    unread_only: bool = False
    ids: Optional[frozenset] = None
    created_after: Optional[datetime] = None

    def clauses(self) -> list:
        where = []
        if self.participant_id is not None:
            if self.counterpart_id is not None:
                where.append(or_(
                    and_(Message.sender_id == self.participant_id, Message.receiver_id == self.counterpart_id),
                    and_(Message.sender_id == self.counterpart_id, Message.receiver_id == self.participant_id),
                ))
            else:
                where.append(or_(Message.sender_id == self.participant_id, Message.receiver_id == self.participant_id))
        if self.sender_id is not None:
            where.append(Message.sender_id == self.sender_id)
        if self.receiver_id is not None:
            where.append(Message.receiver_id == self.receiver_id)
        if self.receiver_in is not None:
            where.append(Message.receiver_id.in_(self.receiver_in))
        if self.listing_id is not None:
            where.append(Message.listing_id == self.listing_id)
        if self.support_category is not None:
            where.append(Message.support_category == self.support_category)
        if self.support_only is True:
            where.append(Message.support_category.is_not(None))
        elif self.support_only is False:
            where.append(Message.listing_id.is_not(None))
        if self.deleted is True:
            where.append(Message.deleted_at.is_not(None))
        elif self.deleted is False:
            where.append(Message.deleted_at.is_(None))
        if self.unread_only:
            where.append(Message.is_read.is_(False))
        if self.ids is not None:
            where.append(Message.id.in_(self.ids))
        if self.created_after is not None:
            where.append(Message.created_at >= self.created_after)
        return where


class MessageStore:
    """Access layer over the messages table.

    Every write is a single statement committed on its own; the store never
    holds locks or spans transactions across calls.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fail(self, exc: Exception, action: str):
        await self.db.rollback()
        if isinstance(exc, IntegrityError):
            logger.warning(f"Rejected message {action}: {exc.orig}")
            raise ValidationError(f"Message {action} violates a constraint") from exc
        logger.error(f"Message store {action} failed: {exc}")
        raise TransientStoreError(f"Message store unavailable during {action}") from exc

    async def insert(self, message: Message) -> Message:
        try:
            self.db.add(message)
            await self.db.commit()
            await self.db.refresh(message)
        except DBAPIError as exc:
            await self._fail(exc, "insert")
        return message

    async def get(self, message_id: UUID) -> Optional[Message]:
        try:
            result = await self.db.execute(select(Message).where(Message.id == message_id))
        except DBAPIError as exc:
            await self._fail(exc, "read")
        return result.scalar_one_or_none()

    async def query(self, message_filter: MessageFilter) -> List[Message]:
        stmt = (
            select(Message)
            .where(*message_filter.clauses())
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        try:
            result = await self.db.execute(stmt)
        except DBAPIError as exc:
            await self._fail(exc, "query")
        return list(result.scalars().all())

    async def count(self, message_filter: MessageFilter) -> int:
        stmt = select(func.count(Message.id)).where(*message_filter.clauses())
        try:
            result = await self.db.execute(stmt)
        except DBAPIError as exc:
            await self._fail(exc, "count")
        return result.scalar_one()

    async def update(self, message_id: UUID, **values) -> bool:
        """Update mutable fields of one row. Returns False when no row matched."""
        return await self.update_many([message_id], **values) > 0

    async def update_many(self, message_ids: Iterable[UUID], **values) -> int:
        illegal = set(values) - MUTABLE_FIELDS
        if illegal:
            raise ValueError(f"Immutable message fields: {sorted(illegal)}")
        ids = list(message_ids)
        if not ids:
            return 0
        stmt = update(Message).where(Message.id.in_(ids)).values(**values)
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except DBAPIError as exc:
            await self._fail(exc, "update")
        return result.rowcount

    async def delete(self, message_id: UUID) -> bool:
        try:
            result = await self.db.execute(delete(Message).where(Message.id == message_id))
            await self.db.commit()
        except DBAPIError as exc:
            await self._fail(exc, "delete")
        return result.rowcount > 0

    async def purge(self, message: Message, actor_id: UUID) -> bool:
        """Remove the row and leave a tombstone, in one transaction."""
        tombstone = PurgedMessage(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            purged_by=actor_id,
        )
        try:
            result = await self.db.execute(delete(Message).where(Message.id == message.id))
            if result.rowcount:
                self.db.add(tombstone)
            await self.db.commit()
        except DBAPIError as exc:
            await self._fail(exc, "purge")
        return result.rowcount > 0

    async def get_tombstone(self, message_id: UUID) -> Optional[PurgedMessage]:
        try:
            result = await self.db.execute(select(PurgedMessage).where(PurgedMessage.id == message_id))
        except DBAPIError as exc:
            await self._fail(exc, "read")
        return result.scalar_one_or_none()
