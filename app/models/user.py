from sqlalchemy import Column, String, Boolean, Uuid, Integer, DateTime
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from app.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), nullable=True, index=True)  # Public, visible to others
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    is_support_desk = Column(Boolean, default=False, nullable=False)  # Staff answering support requests
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    email_verified = Column(Boolean, default=False)
    unread_reminder_enabled = Column(Boolean, default=False)
    unread_reminder_delay_min = Column(Integer, default=60)
    last_unread_reminder_sent_at = Column(DateTime, nullable=True)

    # Relationships
    listings = relationship("Listing", back_populates="owner")
    messages_sent = relationship("Message", foreign_keys="Message.sender_id", back_populates="sender")
    messages_received = relationship("Message", foreign_keys="Message.receiver_id", back_populates="receiver")
