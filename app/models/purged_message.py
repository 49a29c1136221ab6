from sqlalchemy import Column, DateTime, Uuid
from datetime import datetime
from app.database import Base


class PurgedMessage(Base):
    """Tombstone left behind when a message row is permanently deleted.

    Only ids and participants are kept, never content, so that later calls on
    the same id can be told apart from ids that never existed.
    """
    __tablename__ = "purged_messages"

    id = Column(Uuid, primary_key=True)
    sender_id = Column(Uuid, nullable=False)
    receiver_id = Column(Uuid, nullable=False)
    purged_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    purged_by = Column(Uuid, nullable=False)
