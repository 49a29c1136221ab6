from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from app.database import Base


class Listing(Base):
    """Classified ad. Owned by the listing catalog, read-only for messaging."""
    __tablename__ = "listings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=True)
    thumbnail_url = Column(String(500), nullable=True)
    category_name = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    owner = relationship("User", back_populates="listings")
