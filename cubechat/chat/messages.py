"""
Message log: append, one-shot reads and live streams.

The conversation's ``last_message`` summary is written after the message
itself and is best-effort: if that second write fails the message still
stands, and readers reconcile the summary from the log (see ``inbox``).
"""

import logging
from typing import Callable, Optional

from cubechat.blocks.service import is_blocked_either_direction
from cubechat.chat.conversations import get_conversation, require_participant
from cubechat.core.db import MESSAGES, MessagingDb
from cubechat.core.errors import Blocked, TransientIO, ValidationError
from cubechat.core.realtime import LiveQuery

logger = logging.getLogger(__name__)


def append_message(
    db: MessagingDb,
    conversation_id: str,
    sender_id: str,
    recipient_id: str,
    body: str,
) -> str:
    if body is None or not body.strip():
        raise ValidationError("Message cannot be empty.")

    conversation = get_conversation(db, conversation_id)
    require_participant(conversation, sender_id)
    if recipient_id == sender_id or recipient_id not in conversation["participants"]:
        raise ValidationError("Recipient is not the other participant.")

    # Checked before any write, never left to the store to reject.
    if is_blocked_either_direction(db, sender_id, recipient_id):
        raise Blocked("You can't send messages to or receive from this user.")

    message = db.insert_message(
        {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "recipient_id": recipient_id,
            "message": body,
        }
    )

    summary = {
        "message": body,
        "sender_id": sender_id,
        "timestamp": message["timestamp"],
        "is_read": False,
    }
    try:
        db.set_last_message(conversation_id, summary, unread_by=[recipient_id])
    except TransientIO as error:
        logger.warning(
            f"summary_update_failed conversation_id={conversation_id} "
            f"message_id={message['id']} error={error}"
        )

    logger.info(
        f"message_sent conversation_id={conversation_id} message_id={message['id']}"
    )
    return message["id"]


def list_messages(
    db: MessagingDb, conversation_id: str, viewer_id: Optional[str] = None
) -> list[dict]:
    """All messages of a conversation, oldest first."""
    conversation = get_conversation(db, conversation_id)
    if viewer_id is not None:
        require_participant(conversation, viewer_id)
    return db.list_messages(conversation_id)


def stream_messages(
    db: MessagingDb,
    conversation_id: str,
    on_snapshot: Callable[[list[dict]], None],
    viewer_id: Optional[str] = None,
) -> LiveQuery:
    """
    Subscribe to the ordered message list of a conversation.

    ``on_snapshot`` receives the full list immediately and again after every
    change. Close the returned handle to stop.
    """
    conversation = get_conversation(db, conversation_id)
    if viewer_id is not None:
        require_participant(conversation, viewer_id)

    return LiveQuery(
        db,
        [MESSAGES],
        lambda: db.list_messages(conversation_id),
        on_snapshot,
        name=f"messages:{conversation_id}",
    )


def count_unread(db: MessagingDb, user_id: str) -> int:
    return db.count_unread(user_id)


def stream_unread_count(
    db: MessagingDb, user_id: str, on_snapshot: Callable[[int], None]
) -> LiveQuery:
    return LiveQuery(
        db,
        [MESSAGES],
        lambda: db.count_unread(user_id),
        on_snapshot,
        name=f"unread_count:{user_id}",
    )
