"""
Client for the messages API, plus the client-side half of view syncing.

``ConversationFeed`` keeps one view's conversations for a consumer (a UI, a
bot, a test). Every fetch is tagged with a request id and only the newest
fetch may apply its result. Opening a conversation clears its unread count
optimistically and rolls back if the server rejects the read.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from app import errors
from app.services.views import View

logger = logging.getLogger(__name__)

_ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        errors.Unauthenticated,
        errors.NotOwner,
        errors.NotFound,
        errors.MessageNotFound,
        errors.ListingNotFound,
        errors.ConversationNotFound,
        errors.InvalidState,
        errors.ValidationError,
        errors.EmptyContent,
        errors.InvalidSupportCategory,
        errors.InvalidConversationId,
        errors.SendLimitReached,
        errors.TransientStoreError,
    )
}


class MessagesApiClient:
    """Thin async client for ``/api/v1/messages``."""

    def __init__(self, base_url: str, token: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = client or httpx.AsyncClient(timeout=30)
        self.headers = headers

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.client.request(
                method, f"{self.base_url}/api/v1/messages{path}", headers=self.headers, **kwargs
            )
        except httpx.TransportError as exc:
            raise errors.TransientStoreError(f"Messages API unreachable: {exc}") from exc

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            error_cls = _ERRORS_BY_CODE.get(body.get("code"))
            if error_cls is None:
                error_cls = errors.TransientStoreError if response.status_code >= 500 else errors.MessagingError
            raise error_cls(body.get("detail") or f"HTTP {response.status_code}")
        return response.json()

    async def send_message(self, content: str, listing_id: str = None, support_category: str = None,
                           receiver_id: str = None) -> Dict[str, Any]:
        payload = {"content": content}
        if listing_id:
            payload["listingId"] = str(listing_id)
        if support_category:
            payload["supportCategory"] = support_category
        if receiver_id:
            payload["receiverId"] = str(receiver_id)
        return await self._request("POST", "", json=payload)

    async def get_conversations(self, view: View) -> List[Dict[str, Any]]:
        return await self._request("GET", "/conversations", params={"view": view.value})

    async def open_conversation(self, view: View, conversation_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/conversations/{conversation_id}/open", params={"view": view.value})

    async def mark_as_read(self, message_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/{message_id}/read")

    async def delete_message(self, message_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/{message_id}")

    async def restore_message(self, message_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/{message_id}/restore")

    async def permanently_delete_message(self, message_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/{message_id}/permanent")

    async def get_unread_count(self) -> int:
        return (await self._request("GET", "/unread-count"))["unreadCount"]


class ConversationFeed:
    def __init__(self, api: MessagesApiClient, view: View):
        self.api = api
        self.view = view
        self.conversations: List[Dict[str, Any]] = []
        self.selected_id: Optional[str] = None
        self._issued = 0
        self._pending_reads: Dict[str, int] = {}

    @property
    def unread_total(self) -> int:
        return sum(c.get("unreadCount", 0) for c in self.conversations)

    def find(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        for conversation in self.conversations:
            if conversation["id"] == conversation_id:
                return conversation
        return None

    async def refresh(self) -> bool:
        """Fetch the view. Returns False if a newer refresh superseded this one."""
        self._issued += 1
        request_id = self._issued
        conversations = await self.api.get_conversations(self.view)
        if request_id != self._issued:
            logger.debug(f"Dropping {self.view.value} response {request_id}, latest is {self._issued}")
            return False

        # Reads still in flight stay cleared until the server confirms them
        for conversation in conversations:
            if conversation["id"] in self._pending_reads:
                conversation["unreadCount"] = 0
        self.conversations = conversations
        return True

    async def open(self, conversation_id: str) -> Dict[str, Any]:
        self.selected_id = conversation_id
        conversation = self.find(conversation_id)
        previous = conversation.get("unreadCount", 0) if conversation else 0
        if conversation is not None:
            conversation["unreadCount"] = 0
        self._pending_reads[conversation_id] = previous

        try:
            confirmed = await self.api.open_conversation(self.view, conversation_id)
        except errors.MessagingError:
            current = self.find(conversation_id)
            if current is not None:
                current["unreadCount"] = previous
            raise
        finally:
            self._pending_reads.pop(conversation_id, None)

        current = self.find(conversation_id)
        if current is not None:
            current.update(confirmed)
        return confirmed
