from typing import Any, Dict, Optional, Set
from fastapi import WebSocket
import asyncio
import json
import logging

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

# Cross-instance fan-out of per-user events
EVENTS_CHANNEL = "messages:events"


class ConnectionManager:
    """Open message sockets per user.

    Events pushed here are hints for the browser to refetch; the views
    served over HTTP stay authoritative.
    """

    def __init__(self):
        self.sockets: Dict[str, Set[WebSocket]] = {}
        self.redis: Optional[Any] = None
        self._lock = asyncio.Lock()
        self._listener: Optional[asyncio.Task] = None

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self.sockets.setdefault(user_id, set()).add(websocket)
        logger.debug(f"Socket opened for {user_id}")

    async def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._drop(user_id, [websocket])

    def _drop(self, user_id: str, websockets) -> None:
        user_sockets = self.sockets.get(user_id)
        if not user_sockets:
            return
        user_sockets.difference_update(websockets)
        if not user_sockets:
            self.sockets.pop(user_id, None)

    async def deliver_local(self, user_id: str, payload: dict) -> int:
        """Send to this instance's sockets of the user. Returns sockets reached."""
        dead = []
        reached = 0
        for websocket in list(self.sockets.get(user_id, ())):
            try:
                await websocket.send_json(payload)
                reached += 1
            except Exception:
                dead.append(websocket)
        if dead:
            async with self._lock:
                self._drop(user_id, dead)
        return reached

    async def notify_user(self, user_id: str, payload: dict) -> None:
        """Deliver to the user's sockets on every instance."""
        if self.redis is None:
            await self.deliver_local(user_id, payload)
            return
        # Our own subscription delivers the local copy
        try:
            await self.redis.publish(EVENTS_CHANNEL, json.dumps({"target_user_id": user_id, "payload": payload}))
        except Exception:
            logger.exception(f"Failed to publish event for {user_id}, delivering locally")
            await self.deliver_local(user_id, payload)

    async def listen(self, channel: str = EVENTS_CHANNEL) -> None:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        async for item in pubsub.listen():
            if item is None or item["type"] != "message":
                continue
            try:
                data = json.loads(item["data"])
                target = data.get("target_user_id")
                payload = data.get("payload")
                if target and payload:
                    await self.deliver_local(str(target), payload)
            except Exception:
                logger.exception("Error processing pubsub message")


manager = ConnectionManager()


def init_redis():
    """Connect to Redis and start the event subscription, if REDIS_URL is set."""
    if manager.redis is not None:
        return

    from app.config import get_settings
    redis_url = get_settings().redis_url
    if not redis_url:
        logger.info("REDIS_URL not configured, running without Redis pub/sub")
        return

    try:
        manager.redis = aioredis.from_url(redis_url)
        manager._listener = asyncio.get_running_loop().create_task(manager.listen())
        logger.info(f"Redis initialized: {redis_url}")
    except Exception as e:
        logger.exception(f"Failed to initialize Redis client: {e}")
        manager.redis = None
