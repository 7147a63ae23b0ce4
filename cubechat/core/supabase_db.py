"""
MessagingDb backed by Supabase (PostgREST) tables.

Conversation summaries are stored flat (``last_message_*`` columns) and mapped
to the nested ``last_message`` dict the services work with.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from cubechat.core.db import CONVERSATIONS, MESSAGES, PROFILES, Unwatch
from cubechat.core.errors import AlreadyExists, NotFound, TransientIO

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for a UNIQUE constraint violation
UNIQUE_VIOLATION = "23505"


def _conversation_from_row(row: dict) -> dict:
    last_message = None
    if row.get("last_message_at") is not None:
        last_message = {
            "message": row.get("last_message_body") or "",
            "sender_id": row.get("last_message_sender_id"),
            "timestamp": row["last_message_at"],
            "is_read": bool(row.get("last_message_is_read")),
        }
    return {
        "id": row["id"],
        "participants": list(row.get("participants") or []),
        "created_at": row.get("created_at"),
        "last_message": last_message,
        "unread_by": list(row.get("unread_by") or []),
    }


def _summary_to_row(summary: dict) -> dict:
    return {
        "last_message_body": summary["message"],
        "last_message_sender_id": summary["sender_id"],
        "last_message_at": str(summary["timestamp"]),
        "last_message_is_read": summary["is_read"],
    }


class SupabaseMessagingDb:
    def __init__(self, client: Client, poll_interval: float = 2.0):
        self.client = client
        self.poll_interval = poll_interval

    def _execute(self, query):
        try:
            return query.execute()
        except httpx.TransportError as error:
            logger.warning(f"supabase_unreachable error={error!r}")
            raise TransientIO("Database is unreachable, please retry.") from error

    # profiles
    def get_profile(self, user_id: str) -> Optional[dict]:
        response = self._execute(
            self.client.table(PROFILES).select("*").eq("id", user_id).limit(1)
        )
        return response.data[0] if response.data else None

    def find_profile_id_by_username(self, username: str) -> Optional[str]:
        response = self._execute(
            self.client.table(PROFILES)
            .select("id")
            .eq("username", username)
            .limit(1)
        )
        return response.data[0]["id"] if response.data else None

    def upsert_profile(self, user_id: str, fields: dict) -> dict:
        try:
            response = self._execute(
                self.client.table(PROFILES).upsert(
                    {"id": user_id, **fields}, on_conflict="id"
                )
            )
        except APIError as error:
            # lost a race for the username to another profile
            if error.code == UNIQUE_VIOLATION:
                raise AlreadyExists(
                    "Username is already taken. Please choose another."
                ) from error
            raise
        return response.data[0]

    def delete_profile(self, user_id: str) -> bool:
        response = self._execute(
            self.client.table(PROFILES).delete().eq("id", user_id)
        )
        return bool(response.data)

    def _blocked_users(self, user_id: str) -> list[str]:
        profile = self.get_profile(user_id)
        if profile is None:
            raise NotFound("User profile not found.")
        return list(profile.get("blocked_users") or [])

    def add_blocked_user(self, user_id: str, other_id: str) -> None:
        blocked = self._blocked_users(user_id)
        if other_id in blocked:
            return
        self._execute(
            self.client.table(PROFILES)
            .update({"blocked_users": blocked + [other_id]})
            .eq("id", user_id)
        )

    def remove_blocked_user(self, user_id: str, other_id: str) -> None:
        blocked = self._blocked_users(user_id)
        if other_id not in blocked:
            return
        self._execute(
            self.client.table(PROFILES)
            .update({"blocked_users": [uid for uid in blocked if uid != other_id]})
            .eq("id", user_id)
        )

    # conversations
    def get_conversation(self, conversation_id: str) -> Optional[dict]:
        response = self._execute(
            self.client.table(CONVERSATIONS)
            .select("*")
            .eq("id", conversation_id)
            .limit(1)
        )
        return _conversation_from_row(response.data[0]) if response.data else None

    def create_conversation_if_absent(self, record: dict) -> bool:
        # Rows skipped by ignore_duplicates are not returned.
        response = self._execute(
            self.client.table(CONVERSATIONS).upsert(
                {
                    "id": record["id"],
                    "participants": record["participants"],
                    "unread_by": record.get("unread_by", []),
                },
                on_conflict="id",
                ignore_duplicates=True,
            )
        )
        return bool(response.data)

    def list_conversations(self, user_id: str) -> list[dict]:
        response = self._execute(
            self.client.table(CONVERSATIONS)
            .select("*")
            .contains("participants", [user_id])
        )
        return [_conversation_from_row(row) for row in response.data or []]

    def set_last_message(
        self, conversation_id: str, summary: dict, unread_by: list[str]
    ) -> None:
        response = self._execute(
            self.client.table(CONVERSATIONS)
            .update({**_summary_to_row(summary), "unread_by": unread_by})
            .eq("id", conversation_id)
        )
        if not response.data:
            raise NotFound("Conversation not found.")

    def mark_last_message_read(self, conversation_id: str, viewer_id: str) -> None:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found.")
        self._execute(
            self.client.table(CONVERSATIONS)
            .update(
                {
                    "last_message_is_read": True,
                    "unread_by": [
                        uid for uid in conversation["unread_by"] if uid != viewer_id
                    ],
                }
            )
            .eq("id", conversation_id)
        )

    # messages
    def insert_message(self, record: dict) -> dict:
        response = self._execute(
            self.client.table(MESSAGES).insert({**record, "is_read": False})
        )
        return response.data[0]

    def get_message(self, message_id: str) -> Optional[dict]:
        response = self._execute(
            self.client.table(MESSAGES).select("*").eq("id", message_id).limit(1)
        )
        return response.data[0] if response.data else None

    def list_messages(self, conversation_id: str) -> list[dict]:
        response = self._execute(
            self.client.table(MESSAGES)
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("timestamp", desc=False)
            .order("seq", desc=False)
        )
        return response.data or []

    def latest_message(self, conversation_id: str) -> Optional[dict]:
        response = self._execute(
            self.client.table(MESSAGES)
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("timestamp", desc=True)
            .order("seq", desc=True)
            .limit(1)
        )
        return response.data[0] if response.data else None

    def list_unread_messages(
        self, conversation_id: str, recipient_id: str
    ) -> list[dict]:
        response = self._execute(
            self.client.table(MESSAGES)
            .select("*")
            .eq("conversation_id", conversation_id)
            .eq("recipient_id", recipient_id)
            .eq("is_read", False)
            .order("timestamp", desc=False)
            .order("seq", desc=False)
        )
        return response.data or []

    def mark_messages_read(self, message_ids: list[str]) -> int:
        if not message_ids:
            return 0
        # is_read=false filter keeps the false -> true flip single-shot
        response = self._execute(
            self.client.table(MESSAGES)
            .update({"is_read": True})
            .in_("id", message_ids)
            .eq("is_read", False)
        )
        return len(response.data or [])

    def count_unread(self, recipient_id: str) -> int:
        response = self._execute(
            self.client.table(MESSAGES)
            .select("id", count="exact")
            .eq("recipient_id", recipient_id)
            .eq("is_read", False)
        )
        return response.count or 0

    # change notification
    def watch(self, tables: Iterable[str], callback: Callable[[], None]) -> Unwatch:
        """
        Poll for changes every ``poll_interval`` seconds.

        The sync Supabase client has no realtime channel, so watchers are
        woken on a timer and the live query decides whether anything changed.
        """
        stop = threading.Event()
        name = "-".join(tables)

        def poll():
            while not stop.wait(self.poll_interval):
                try:
                    callback()
                except Exception:
                    logger.exception(f"watch_callback_failed tables={name}")

        thread = threading.Thread(target=poll, name=f"watch-{name}", daemon=True)
        thread.start()
        return stop.set
