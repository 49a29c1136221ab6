"""Domain errors raised by the messaging services.

Routers don't catch these; a single exception handler in ``app.main`` turns
them into JSON responses with the matching status code.
"""
from typing import Optional


class MessagingError(Exception):
    status_code = 400
    code = "messaging_error"
    retryable = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class Unauthenticated(MessagingError):
    status_code = 401
    code = "unauthenticated"


class NotOwner(MessagingError):
    status_code = 403
    code = "not_owner"


class NotFound(MessagingError):
    status_code = 404
    code = "not_found"


class MessageNotFound(NotFound):
    code = "message_not_found"


class ListingNotFound(NotFound):
    code = "listing_not_found"


class ConversationNotFound(NotFound):
    code = "conversation_not_found"


class InvalidState(MessagingError):
    status_code = 409
    code = "invalid_state"


class ValidationError(MessagingError):
    status_code = 422
    code = "validation_error"


class EmptyContent(ValidationError):
    code = "empty_content"


class InvalidSupportCategory(ValidationError):
    code = "invalid_support_category"


class InvalidConversationId(ValidationError):
    code = "invalid_conversation_id"


class SendLimitReached(MessagingError):
    status_code = 429
    code = "send_limit_reached"


class TransientStoreError(MessagingError):
    status_code = 503
    code = "store_unavailable"
    retryable = True
