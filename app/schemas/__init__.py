from app.schemas.messages import (
	SendMessageRequest, MessageDto, PartyDto, ListingSummaryDto, ConversationDto,
	UnreadCountDto, ReadResultDto, LifecycleResultDto, ViewStateDto,
)

__all__ = [
	"SendMessageRequest", "MessageDto", "PartyDto", "ListingSummaryDto", "ConversationDto",
	"UnreadCountDto", "ReadResultDto", "LifecycleResultDto", "ViewStateDto",
]
