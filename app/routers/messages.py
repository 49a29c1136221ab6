import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import TOKEN_COOKIE_NAME, get_current_user, get_messaging_service, user_from_token
from app.errors import MessagingError
from app.models.user import User
from app.schemas.messages import (
    ConversationDto,
    LifecycleResultDto,
    MessageDto,
    ReadResultDto,
    SendMessageRequest,
    UnreadCountDto,
    ViewStateDto,
    make_conversation_dto,
    make_message_dto,
)
from app.services.messaging import MessagingService
from app.services.views import View, partition
from app.ws import manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=MessageDto)
async def send_message(
    body: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    message = await service.send_message(
        current_user,
        body.content,
        listing_id=body.listing_id,
        support_category=body.support_category,
        receiver_id=body.receiver_id,
    )
    return make_message_dto(message, current_user.id)


@router.get("/conversations", response_model=List[ConversationDto])
async def get_conversations(
    view: View = Query(View.INCOMING),
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    state = await service.refresh_view(current_user.id, view)
    return state.conversations


@router.get("/conversations/{conversation_id}", response_model=ConversationDto)
async def get_conversation(
    conversation_id: str,
    view: View = Query(View.INCOMING),
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    conversation = await service.get_conversation(current_user.id, view, conversation_id)
    actions = partition(view, current_user.id, current_user.is_support_desk).allowed_actions
    return make_conversation_dto(conversation, current_user.id, actions)


@router.post("/conversations/{conversation_id}/open", response_model=ConversationDto)
async def open_conversation(
    conversation_id: str,
    view: View = Query(View.INCOMING),
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """Select a conversation and mark its unread messages as read."""
    conversation = await service.open_conversation(current_user.id, view, conversation_id)
    actions = partition(view, current_user.id, current_user.is_support_desk).allowed_actions
    return make_conversation_dto(conversation, current_user.id, actions)


@router.delete("/conversations/{conversation_id}", response_model=LifecycleResultDto)
async def delete_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    ids = await service.delete_conversation(current_user.id, conversation_id)
    return LifecycleResultDto(message_ids=ids)


@router.get("/unread-count", response_model=UnreadCountDto)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return UnreadCountDto(unread_count=await service.get_unread_count(current_user.id))


@router.get("/sync/{view}", response_model=ViewStateDto)
async def sync_view(
    view: View,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """Polled by clients; cheap when nothing changed since the last refresh."""
    return await service.sync_view(current_user.id, view)


@router.post("/{message_id}/read", response_model=ReadResultDto)
async def mark_message_as_read(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.mark_message_as_read(current_user.id, message_id)
    return ReadResultDto(marked_read=[message_id])


@router.delete("/{message_id}", response_model=LifecycleResultDto)
async def delete_message(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.delete_message(current_user.id, message_id)
    return LifecycleResultDto(message_ids=[message_id])


@router.post("/{message_id}/restore", response_model=LifecycleResultDto)
async def restore_message(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.restore_message(current_user.id, message_id)
    return LifecycleResultDto(message_ids=[message_id])


@router.delete("/{message_id}/permanent", response_model=LifecycleResultDto)
async def permanently_delete_message(
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    await service.permanently_delete_message(current_user.id, message_id)
    return LifecycleResultDto(message_ids=[message_id])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, db: AsyncSession = Depends(get_db)):
    """Invalidation hints for the message views. Authenticates using the session cookie."""
    await websocket.accept()
    try:
        user = await user_from_token(websocket.cookies.get(TOKEN_COOKIE_NAME), db)
    except MessagingError:
        await websocket.close(code=1008)
        return

    user_id = str(user.id)
    await manager.connect(user_id, websocket)

    try:
        while True:
            # Clients don't send anything yet; this only keeps the socket open
            await websocket.receive_text()
    except WebSocketDisconnect:
        await manager.disconnect(user_id, websocket)
