import logging

from fastapi import APIRouter, HTTPException, Depends, WebSocket

from cubechat.blocks.service import has_blocked, is_blocked_either_direction
from cubechat.core.db import MessagingDb
from cubechat.core.dependencies import get_current_user_id, get_db, websocket_user_id
from cubechat.core.errors import MessagingError
from cubechat.core.websockets import serve_snapshots
from cubechat.users.service import get_profile
from cubechat.utils.display_profile import get_display_profile

from . import inbox, messages, read_state
from .conversations import get_conversation, get_or_create_conversation, other_participant
from .schemas import (
    SendMessageModel,
    SendMessageResponseModel,
    CreateDirectConversationModel,
    CreateDirectConversationResponseModel,
    GetConversationsResponseModel,
    ConversationDetailsResponseModel,
    ConversationData,
    GetMessagesResponseModel,
    MarkReadResponseModel,
    MessageData,
    UnreadCountResponseModel,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/conversations/direct",
    response_model=CreateDirectConversationResponseModel,
    status_code=200,
)
def get_or_create_direct_conversation(
    data: CreateDirectConversationModel,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Get or create the direct conversation with another user.

    Used when a buyer contacts a seller from a listing. The conversation id is
    the two user ids sorted and joined with `_`, so either user opening the
    chat lands on the same record, and concurrent calls create it only once.

    **Input**
    - `receiver_id`: id of the user to message

    **Returns**
    - `conversation_id`: canonical conversation id
    - `is_new`: Whether the conversation was newly created

    **Errors**
    - 401: Unauthorized
    - 404: Receiver does not exist
    - 422: Receiver is the caller
    - 503: Database unreachable, retry
    """
    try:
        get_profile(db, data.receiver_id)
        conversation_id, is_new = get_or_create_conversation(
            db, user_id, data.receiver_id
        )
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"conversation_create_failed user_id={user_id}")
        raise HTTPException(
            status_code=500,
            detail="Failed to create or fetch conversation.",
        )

    return {"conversation_id": conversation_id, "is_new": is_new}


@router.post(
    "/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
def send_message(
    data: SendMessageModel,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Send a message to the other participant of a conversation.

    The block list is checked before anything is written: if either user has
    blocked the other the send is rejected and no message is stored.

    **Input**
    - `conversation_id`: Conversation id
    - `content`: Message text

    **Returns**
    - The newly created message record

    **Errors**
    - 401: Unauthorized
    - 403: Blocked, or not a participant of the conversation
    - 404: Conversation not found
    - 422: Empty message
    - 503: Database unreachable, the client should keep the text and retry
    """
    try:
        conversation = get_conversation(db, data.conversation_id)
        recipient_id = other_participant(conversation, user_id)

        message_id = messages.append_message(
            db, data.conversation_id, user_id, recipient_id, data.content
        )
        message = db.get_message(message_id)
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"message_send_failed conversation_id={data.conversation_id}")
        raise HTTPException(
            status_code=500,
            detail="Failed to send message.",
        )

    return {"message": message}


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
def get_conversations(
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Retrieve the authenticated user's inbox.

    Only conversations with at least one message are listed, newest activity
    first. Each entry carries the other participant's username and avatar and
    the latest message summary. A summary that is missing or older than the
    newest message is rebuilt from the message log.

    **Returns**
    - `conversations`: List of conversation objects
        - `id`, `participants`
        - `counterpart`: `{id, username, photo_url}`
        - `last_message`: `{message, sender_id, timestamp, is_read}`
        - `has_unread`: Latest message is unread and was not sent by the caller

    **Errors**
    - 401: Invalid or expired JWT
    - 503: Database unreachable
    """
    try:
        conversations = inbox.list_inbox(db, user_id)
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"inbox_failed user_id={user_id}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversations")

    return {"conversations": conversations}


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetailsResponseModel,
    status_code=200,
)
def get_conversation_details(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Retrieve the other participant's profile and the block state of a
    conversation. Clients disable the composer when `either_blocked` is true.

    **Errors**
    - 403: Not a member of the conversation
    - 404: Conversation does not exist
    """
    try:
        conversation = get_conversation(db, conversation_id)
        counterpart_id = other_participant(conversation, user_id)
        last_message = inbox.reconcile_summary(
            conversation.get("last_message"), db.latest_message(conversation_id)
        )

        return {
            "id": conversation["id"],
            "participants": conversation["participants"],
            "counterpart": get_display_profile(db, counterpart_id),
            "last_message": last_message,
            "blocked_by_me": has_blocked(db, user_id, counterpart_id),
            "either_blocked": is_blocked_either_direction(db, user_id, counterpart_id),
        }
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"conversation_details_failed conversation_id={conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversation")


@router.get(
    "/messages/{conversation_id}",
    response_model=GetMessagesResponseModel,
    status_code=200,
)
def get_messages(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Retrieve all messages of a conversation, ordered oldest to newest.

    **Errors**
    - 401: Invalid or expired authentication token
    - 403: User is not a member of the conversation
    - 404: Conversation does not exist
    """
    try:
        ordered = messages.list_messages(db, conversation_id, viewer_id=user_id)
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"messages_fetch_failed conversation_id={conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to fetch messages")

    return {"messages": ordered}


@router.post(
    "/conversations/{conversation_id}/read",
    response_model=MarkReadResponseModel,
    status_code=200,
)
def mark_conversation_read(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """
    Mark the caller's unread messages in a conversation as read.

    Clients call this once when the conversation screen opens, not when the
    conversation is tapped in the inbox. Calling it with nothing unread does
    nothing.

    **Returns**
    - `updated`: Number of messages flipped to read
    """
    try:
        updated = read_state.mark_conversation_read(db, conversation_id, user_id)
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"mark_read_failed conversation_id={conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to mark conversation read")

    return {"updated": updated}


@router.get("/unread-count", response_model=UnreadCountResponseModel, status_code=200)
def get_unread_count(
    user_id: str = Depends(get_current_user_id),
    db: MessagingDb = Depends(get_db),
):
    """Total unread messages addressed to the caller (tab badge)."""
    try:
        unread_count = messages.count_unread(db, user_id)
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"unread_count_failed user_id={user_id}")
        raise HTTPException(status_code=500, detail="Failed to count unread messages")

    return {"unread_count": unread_count}


def _render_messages(snapshot: list[dict]) -> dict:
    return {
        "messages": [
            MessageData.model_validate(message).model_dump(mode="json")
            for message in snapshot
        ]
    }


def _render_inbox(snapshot: list[dict]) -> dict:
    return {
        "conversations": [
            ConversationData.model_validate(entry).model_dump(mode="json")
            for entry in snapshot
        ]
    }


@router.websocket("/ws/messages/{conversation_id}")
async def stream_conversation_messages(
    websocket: WebSocket,
    conversation_id: str,
    db: MessagingDb = Depends(get_db),
):
    """Live message list of a conversation: `?token=<access token>`."""

    def subscribe(on_snapshot):
        user_id = websocket_user_id(websocket)
        return messages.stream_messages(
            db, conversation_id, on_snapshot, viewer_id=user_id
        )

    await serve_snapshots(websocket, subscribe, _render_messages)


@router.websocket("/ws/unread-count")
async def stream_unread_count(websocket: WebSocket, db: MessagingDb = Depends(get_db)):
    def subscribe(on_snapshot):
        user_id = websocket_user_id(websocket)
        return messages.stream_unread_count(db, user_id, on_snapshot)

    await serve_snapshots(
        websocket, subscribe, lambda count: {"unread_count": count}
    )


@router.websocket("/ws/conversations")
async def stream_conversations(websocket: WebSocket, db: MessagingDb = Depends(get_db)):
    def subscribe(on_snapshot):
        user_id = websocket_user_id(websocket)
        return inbox.stream_inbox(db, user_id, on_snapshot)

    await serve_snapshots(websocket, subscribe, _render_inbox)
