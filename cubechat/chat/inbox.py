"""
Conversation list for a user, with summaries reconciled against the log.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from cubechat.core.db import CONVERSATIONS, MESSAGES, PROFILES, MessagingDb
from cubechat.core.realtime import LiveQuery
from cubechat.utils.display_profile import get_display_profile

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def as_datetime(value) -> datetime:
    """Timestamps come back as datetimes (memory) or ISO strings (PostgREST)."""
    if value is None:
        return _EPOCH
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def summary_from_message(message: dict) -> dict:
    return {
        "message": message["message"],
        "sender_id": message["sender_id"],
        "timestamp": message["timestamp"],
        "is_read": message["is_read"],
    }


def describes(summary: dict, message: dict) -> bool:
    return (
        as_datetime(summary.get("timestamp")) == as_datetime(message["timestamp"])
        and summary.get("sender_id") == message["sender_id"]
        and summary.get("message") == message["message"]
    )


def reconcile_summary(stored: Optional[dict], latest: Optional[dict]) -> Optional[dict]:
    """
    Prefer the stored summary unless it is missing or describes a message
    other than the newest one in the log.
    """
    if latest is None:
        return stored
    if stored is None or not describes(stored, latest):
        return summary_from_message(latest)
    return stored


def has_unread(summary: Optional[dict], user_id: str) -> bool:
    return (
        summary is not None
        and summary.get("is_read") is False
        and summary.get("sender_id") != user_id
    )


def list_inbox(db: MessagingDb, user_id: str) -> list[dict]:
    """
    Conversations the user takes part in that have at least one message,
    newest activity first.
    """
    ranked = []
    for conversation in db.list_conversations(user_id):
        latest = db.latest_message(conversation["id"])
        if latest is None:
            continue

        summary = reconcile_summary(conversation.get("last_message"), latest)
        counterpart_id = next(
            (uid for uid in conversation["participants"] if uid != user_id), user_id
        )

        entry = {
            "id": conversation["id"],
            "participants": conversation["participants"],
            "counterpart": get_display_profile(db, counterpart_id),
            "last_message": summary,
            "has_unread": has_unread(summary, user_id),
        }
        # seq breaks ties between equal timestamps
        ranked.append(((as_datetime(summary["timestamp"]), latest.get("seq") or 0), entry))

    ranked.sort(key=lambda item: item[0], reverse=True)
    return [entry for _, entry in ranked]


def stream_inbox(
    db: MessagingDb, user_id: str, on_snapshot: Callable[[list[dict]], None]
) -> LiveQuery:
    return LiveQuery(
        db,
        [CONVERSATIONS, MESSAGES, PROFILES],
        lambda: list_inbox(db, user_id),
        on_snapshot,
        name=f"inbox:{user_id}",
    )
