from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid, Boolean, String, CheckConstraint, Index
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from app.database import Base


class Message(Base):
    """Directed message between two users, about a listing or a support category.

    There is no conversation table: threads are derived from
    (listing_id, counterpart) or (support_category, requester) on every read.
    """
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True, default=None)

    sender_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    # No ondelete cascade: history outlives the listing
    listing_id = Column(Uuid, nullable=True, index=True)
    support_category = Column(String(50), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(listing_id IS NULL) <> (support_category IS NULL)",
            name="ck_messages_listing_xor_support",
        ),
        Index("ix_messages_deleted_at", "deleted_at"),
    )

    sender = relationship("User", foreign_keys=[sender_id], back_populates="messages_sent")
    receiver = relationship("User", foreign_keys=[receiver_id], back_populates="messages_received")

    @property
    def is_support(self) -> bool:
        return self.support_category is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
