"""
Server-side sync state for the message views.

Every (actor, view) pair owns a ``ViewStateDto``. A refresh is tagged with a
per-view request id when it starts; when it finishes its result is applied
only if no newer refresh was started in the meantime. Mutations call
``invalidate`` for every participant they touch, which marks that user's views
stale and pushes a ``messages:invalidate`` hint over the WebSocket channel.
The scheduler re-aggregates every view of recently active users on each poll,
so changes made by someone outside a thread still reach its viewers.
"""
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from app.schemas.messages import ConversationDto, ViewStateDto
from app.services.views import View
from app.ws import ConnectionManager, manager

logger = logging.getLogger(__name__)

INVALIDATE_EVENT = "messages:invalidate"

ViewKey = Tuple[UUID, View]


class SyncLayer:
    def __init__(self, connections: Optional[ConnectionManager] = None):
        self.connections = connections
        self._states: Dict[ViewKey, ViewStateDto] = {}
        self._touched: Dict[ViewKey, datetime] = {}

    def state(self, actor_id: UUID, view: View) -> ViewStateDto:
        key = (actor_id, view)
        if key not in self._states:
            self._states[key] = ViewStateDto(view=view)
        return self._states[key]

    def touch(self, actor_id: UUID, view: View) -> None:
        self._touched[(actor_id, view)] = datetime.utcnow()

    def begin_refresh(self, actor_id: UUID, view: View, touch: bool = True) -> int:
        """Issue the next request id for this view.

        Background polls pass ``touch=False`` so they don't keep idle views alive.
        """
        state = self.state(actor_id, view)
        state.request_id += 1
        if touch:
            self.touch(actor_id, view)
        return state.request_id

    def complete_refresh(self, actor_id: UUID, view: View, request_id: int, conversations: List[ConversationDto]) -> bool:
        """Apply a finished refresh unless a newer one has been issued."""
        state = self.state(actor_id, view)
        if request_id != state.request_id:
            logger.debug(f"Discarding stale refresh {request_id} of {view.value} for {actor_id} (latest {state.request_id})")
            return False
        state.conversations = conversations
        state.refreshed_at = datetime.utcnow()
        state.stale = False
        selected = state.selected_conversation_id
        if selected and not any(c.id == selected for c in conversations):
            state.selected_conversation_id = None
        return True

    async def refresh(
        self,
        actor_id: UUID,
        view: View,
        loader: Callable[[], Awaitable[List[ConversationDto]]],
        touch: bool = True,
    ) -> ViewStateDto:
        request_id = self.begin_refresh(actor_id, view, touch=touch)
        conversations = await loader()
        self.complete_refresh(actor_id, view, request_id, conversations)
        return self.state(actor_id, view)

    def select(self, actor_id: UUID, view: View, conversation_id: Optional[str]) -> ViewStateDto:
        state = self.state(actor_id, view)
        state.selected_conversation_id = conversation_id
        self.touch(actor_id, view)
        return state

    async def invalidate(self, user_ids: Iterable[UUID]) -> None:
        for user_id in set(user_ids):
            for view in View:
                state = self._states.get((user_id, view))
                if state is not None:
                    state.stale = True
                    state.version += 1
            if self.connections is not None:
                await self.connections.notify_user(str(user_id), {"event": INVALIDATE_EVENT})

    def active_views(self, ttl_seconds: int, now: Optional[datetime] = None) -> List[ViewKey]:
        """Views touched within ``ttl_seconds``, stale ones first; idle views are evicted."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(seconds=ttl_seconds)
        active = []
        for key, touched in list(self._touched.items()):
            if touched < cutoff:
                self._touched.pop(key, None)
                self._states.pop(key, None)
                continue
            if key in self._states:
                active.append(key)
        active.sort(key=lambda k: not self._states[k].stale)
        return active


sync_layer = SyncLayer(manager)
