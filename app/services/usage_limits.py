from datetime import datetime, timedelta
from uuid import UUID

from app.config import get_settings
from app.services.message_store import MessageFilter, MessageStore


class UsageLimiter:
    """Rolling 24h cap on messages a user may send. 0 disables the cap."""

    def __init__(self, store: MessageStore, daily_limit: int = None):
        self.store = store
        self.daily_limit = get_settings().daily_message_limit if daily_limit is None else daily_limit

    async def can_send(self, actor_id: UUID) -> bool:
        if not self.daily_limit:
            return True
        since = datetime.utcnow() - timedelta(days=1)
        sent = await self.store.count(MessageFilter(sender_id=actor_id, deleted=None, created_after=since))
        return sent < self.daily_limit
