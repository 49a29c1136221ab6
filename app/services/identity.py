import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.errors import TransientStoreError
from app.models.user import User

logger = logging.getLogger(__name__)

SUPPORT_TEAM_NAME = "Support Team"
UNKNOWN_USER_NAME = "Unknown user"


@dataclass(frozen=True)
class Party:
    """Display metadata for the other side of a conversation."""
    id: Optional[UUID]
    name: str
    email: str = ""


def display_name(user: Optional[User]) -> str:
    if user is None:
        return UNKNOWN_USER_NAME
    if user.first_name:
        return f"{user.first_name} {user.last_name or ''}".strip()
    return user.username or user.email or "User"


def to_party(user_id: UUID, user: Optional[User]) -> Party:
    if user is None:
        return Party(id=user_id, name=UNKNOWN_USER_NAME)
    return Party(id=user.id, name=display_name(user), email=user.email or "")


class IdentityService:
    """Lookups against the users table owned by the auth collaborator."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_users(self, user_ids: Iterable[UUID]) -> Dict[UUID, User]:
        ids = {uid for uid in user_ids if uid is not None}
        if not ids:
            return {}
        try:
            result = await self.db.execute(select(User).where(User.id.in_(ids)))
        except DBAPIError as exc:
            await self.db.rollback()
            raise TransientStoreError("User lookup failed") from exc
        return {user.id: user for user in result.scalars().all()}

    async def get_user(self, user_id: UUID) -> Optional[User]:
        return (await self.get_users([user_id])).get(user_id)

    async def is_support_desk(self, user_id: UUID) -> bool:
        user = await self.get_user(user_id)
        return bool(user and user.is_support_desk)

    async def support_desk_ids(self, user_ids: Iterable[UUID] = None) -> Set[UUID]:
        """Support desk identities, optionally restricted to ``user_ids``."""
        stmt = select(User.id).where(User.is_support_desk.is_(True))
        if user_ids is not None:
            stmt = stmt.where(User.id.in_(set(user_ids)))
        try:
            result = await self.db.execute(stmt)
        except DBAPIError as exc:
            await self.db.rollback()
            raise TransientStoreError("Support desk lookup failed") from exc
        return set(result.scalars().all())

    async def default_support_desk(self) -> Optional[User]:
        """Receiver for new support requests."""
        settings = get_settings()
        if settings.support_desk_user_id:
            user = await self.get_user(UUID(settings.support_desk_user_id))
            if user and user.is_support_desk:
                return user
            logger.warning(f"Configured support desk user {settings.support_desk_user_id} is not a support desk")

        stmt = (
            select(User)
            .where(User.is_support_desk.is_(True))
            .order_by(User.created_at.asc(), User.id.asc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
