import logging

from cubechat.core.db import MessagingDb
from cubechat.core.errors import NotFound, NotParticipant, ValidationError

logger = logging.getLogger(__name__)

CONVERSATION_KEY_SEPARATOR = "_"


def conversation_key(user_a: str, user_b: str) -> str:
    """
    Canonical conversation id for an unordered pair of users.

    Both ids are sorted before joining, so either participant computes the
    same key and repeated first contact converges on one record.
    """
    if not user_a or not user_b:
        raise ValidationError("Both participants are required.")
    if user_a == user_b:
        raise ValidationError("Cannot start a conversation with yourself.")

    u1, u2 = sorted([user_a, user_b])
    return f"{u1}{CONVERSATION_KEY_SEPARATOR}{u2}"


def get_or_create_conversation(
    db: MessagingDb, user_a: str, user_b: str
) -> tuple[str, bool]:
    """
    Return ``(conversation_id, is_new)`` for the pair, creating the record on
    first contact. ``user_a`` is the initiator; ``user_b`` starts unread.
    """
    conversation_id = conversation_key(user_a, user_b)

    created = db.create_conversation_if_absent(
        {
            "id": conversation_id,
            "participants": sorted([user_a, user_b]),
            "last_message": None,
            "unread_by": [user_b],
        }
    )

    if created:
        logger.info(f"conversation_created conversation_id={conversation_id}")

    return conversation_id, created


def ensure_conversation(db: MessagingDb, user_a: str, user_b: str) -> str:
    conversation_id, _ = get_or_create_conversation(db, user_a, user_b)
    return conversation_id


def get_conversation(db: MessagingDb, conversation_id: str) -> dict:
    conversation = db.get_conversation(conversation_id)
    if conversation is None:
        raise NotFound("Conversation not found.")
    return conversation


def require_participant(conversation: dict, user_id: str) -> None:
    if user_id not in conversation["participants"]:
        raise NotParticipant("You are not a member of this conversation.")


def other_participant(conversation: dict, user_id: str) -> str:
    require_participant(conversation, user_id)
    return next(uid for uid in conversation["participants"] if uid != user_id)
