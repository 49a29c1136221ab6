from app.models.user import User
from app.models.listing import Listing
from app.models.message import Message
from app.models.purged_message import PurgedMessage

__all__ = [
	"User",
	"Listing",
	"Message",
	"PurgedMessage",
]
