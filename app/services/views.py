import enum
from dataclasses import dataclass
from typing import FrozenSet
from uuid import UUID

from app.services.message_store import MessageFilter

RESTORE = "restore"
PERMANENTLY_DELETE = "permanently_delete"
DELETE = "delete"
REPLY = "reply"
MARK_READ = "mark_read"


class View(str, enum.Enum):
    INCOMING = "incoming"
    SENT = "sent"
    DELETED = "deleted"
    SUPPORT = "support"


@dataclass(frozen=True)
class ViewSpec:
    message_filter: MessageFilter
    count_unread: bool
    allowed_actions: FrozenSet[str]


def partition(view: View, actor_id: UUID, is_support_desk: bool = False) -> ViewSpec:
    """Store filter and presentation rules for one view.

    Each view is aggregated on its own; conversation grouping and unread
    counts are not shared between views.
    """
    if view == View.INCOMING:
        return ViewSpec(
            MessageFilter(receiver_id=actor_id, deleted=False),
            count_unread=True,
            allowed_actions=frozenset({REPLY, MARK_READ, DELETE}),
        )
    if view == View.SENT:
        return ViewSpec(
            MessageFilter(sender_id=actor_id, deleted=False),
            count_unread=False,
            allowed_actions=frozenset({REPLY, DELETE}),
        )
    if view == View.DELETED:
        return ViewSpec(
            MessageFilter(participant_id=actor_id, deleted=True),
            count_unread=False,
            allowed_actions=frozenset({RESTORE, PERMANENTLY_DELETE}),
        )
    if view == View.SUPPORT:
        if is_support_desk:
            # One shared queue across all requesters and all desk staff
            message_filter = MessageFilter(support_only=True, deleted=False)
        else:
            message_filter = MessageFilter(participant_id=actor_id, support_only=True, deleted=False)
        return ViewSpec(
            message_filter,
            count_unread=True,
            allowed_actions=frozenset({REPLY, MARK_READ, DELETE}),
        )
    raise ValueError(f"Unknown view: {view}")
