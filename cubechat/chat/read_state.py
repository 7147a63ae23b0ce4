import logging

from cubechat.chat.conversations import get_conversation, require_participant
from cubechat.core.db import MessagingDb

logger = logging.getLogger(__name__)


def mark_conversation_read(db: MessagingDb, conversation_id: str, viewer_id: str) -> int:
    """
    Mark every unread message addressed to ``viewer_id`` as read.

    Called once when the viewer opens the conversation. Only the messages in
    the unread snapshot taken here are flipped; one arriving mid-update stays
    unread. The conversation summary is flipped only when at least one message
    was, and only if the viewer is its recipient. Returns the number of
    messages updated, so a repeat call returns 0 and changes nothing.
    """
    conversation = get_conversation(db, conversation_id)
    require_participant(conversation, viewer_id)

    unread = db.list_unread_messages(conversation_id, viewer_id)
    if not unread:
        return 0

    updated = db.mark_messages_read([message["id"] for message in unread])

    summary = conversation.get("last_message")
    if updated and summary is not None and summary.get("sender_id") != viewer_id:
        db.mark_last_message_read(conversation_id, viewer_id)

    logger.info(
        f"conversation_read conversation_id={conversation_id} "
        f"viewer_id={viewer_id} updated={updated}"
    )
    return updated
