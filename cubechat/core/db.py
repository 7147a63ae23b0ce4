"""
Storage abstraction for the messaging tables and an in-memory implementation.

Records are plain dicts shaped like the Supabase rows the services consume:

- profile: ``{id, username, photo_url, push_token, blocked_users, created_at}``
- conversation: ``{id, participants, created_at, last_message, unread_by}``
  where ``last_message`` is ``None`` or ``{message, sender_id, timestamp, is_read}``
- message: ``{id, conversation_id, sender_id, recipient_id, message,
  timestamp, seq, is_read}``
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Protocol

from cubechat.core.errors import NotFound, TransientIO

logger = logging.getLogger(__name__)

PROFILES = "profiles"
CONVERSATIONS = "conversations"
MESSAGES = "messages"

Unwatch = Callable[[], None]


class MessagingDb(Protocol):
    """Interface for the profile, conversation and message tables."""

    # profiles
    def get_profile(self, user_id: str) -> Optional[dict]:
        ...

    def find_profile_id_by_username(self, username: str) -> Optional[str]:
        ...

    def upsert_profile(self, user_id: str, fields: dict) -> dict:
        ...

    def delete_profile(self, user_id: str) -> bool:
        ...

    def add_blocked_user(self, user_id: str, other_id: str) -> None:
        ...

    def remove_blocked_user(self, user_id: str, other_id: str) -> None:
        ...

    # conversations
    def get_conversation(self, conversation_id: str) -> Optional[dict]:
        ...

    def create_conversation_if_absent(self, record: dict) -> bool:
        ...

    def list_conversations(self, user_id: str) -> list[dict]:
        ...

    def set_last_message(
        self, conversation_id: str, summary: dict, unread_by: list[str]
    ) -> None:
        ...

    def mark_last_message_read(self, conversation_id: str, viewer_id: str) -> None:
        ...

    # messages
    def insert_message(self, record: dict) -> dict:
        ...

    def get_message(self, message_id: str) -> Optional[dict]:
        ...

    def list_messages(self, conversation_id: str) -> list[dict]:
        ...

    def latest_message(self, conversation_id: str) -> Optional[dict]:
        ...

    def list_unread_messages(
        self, conversation_id: str, recipient_id: str
    ) -> list[dict]:
        ...

    def mark_messages_read(self, message_ids: list[str]) -> int:
        ...

    def count_unread(self, recipient_id: str) -> int:
        ...

    # change notification
    def watch(self, tables: Iterable[str], callback: Callable[[], None]) -> Unwatch:
        ...


def message_sort_key(message: dict):
    return (message["timestamp"], message["seq"])


class InMemoryMessagingDb:
    """
    Dict-backed store for tests and local development.

    Writes notify watchers synchronously once the store lock is released.
    ``fail_reads`` / ``fail_writes`` make the corresponding operations raise
    ``TransientIO`` to simulate an unreachable backend.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._watchers: dict[str, dict[int, Callable[[], None]]] = defaultdict(dict)
        self._watch_ids = itertools.count(1)
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.profiles: dict[str, dict] = {}
            self.conversations: dict[str, dict] = {}
            self.messages: dict[str, dict] = {}
            self._seq = itertools.count(1)
            self.fail_reads = False
            self.fail_writes = False

    # internals
    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _readable(self) -> None:
        if self.fail_reads:
            raise TransientIO("Message store is unavailable.")

    def _writable(self) -> None:
        if self.fail_writes:
            raise TransientIO("Message store is unavailable.")

    def _notify(self, *tables: str) -> None:
        with self._lock:
            callbacks = [
                callback
                for table in tables
                for callback in self._watchers[table].values()
            ]
        for callback in callbacks:
            callback()

    # profiles
    def get_profile(self, user_id: str) -> Optional[dict]:
        with self._lock:
            self._readable()
            return copy.deepcopy(self.profiles.get(user_id))

    def find_profile_id_by_username(self, username: str) -> Optional[str]:
        with self._lock:
            self._readable()
            for profile in self.profiles.values():
                if profile.get("username") == username:
                    return profile["id"]
        return None

    def upsert_profile(self, user_id: str, fields: dict) -> dict:
        with self._lock:
            self._writable()
            profile = self.profiles.setdefault(
                user_id,
                {
                    "id": user_id,
                    "username": None,
                    "photo_url": None,
                    "push_token": None,
                    "blocked_users": [],
                    "created_at": self._now(),
                },
            )
            profile.update(copy.deepcopy(fields))
            stored = copy.deepcopy(profile)
        self._notify(PROFILES)
        return stored

    def delete_profile(self, user_id: str) -> bool:
        with self._lock:
            self._writable()
            removed = self.profiles.pop(user_id, None) is not None
        if removed:
            self._notify(PROFILES)
        return removed

    def _require_profile(self, user_id: str) -> dict:
        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFound("User profile not found.")
        return profile

    def add_blocked_user(self, user_id: str, other_id: str) -> None:
        with self._lock:
            self._writable()
            blocked = self._require_profile(user_id).setdefault("blocked_users", [])
            if other_id in blocked:
                return
            blocked.append(other_id)
        self._notify(PROFILES)

    def remove_blocked_user(self, user_id: str, other_id: str) -> None:
        with self._lock:
            self._writable()
            blocked = self._require_profile(user_id).setdefault("blocked_users", [])
            if other_id not in blocked:
                return
            blocked.remove(other_id)
        self._notify(PROFILES)

    # conversations
    def get_conversation(self, conversation_id: str) -> Optional[dict]:
        with self._lock:
            self._readable()
            return copy.deepcopy(self.conversations.get(conversation_id))

    def create_conversation_if_absent(self, record: dict) -> bool:
        with self._lock:
            self._writable()
            if record["id"] in self.conversations:
                return False
            self.conversations[record["id"]] = {
                "last_message": None,
                "unread_by": [],
                **copy.deepcopy(record),
                "created_at": self._now(),
            }
        self._notify(CONVERSATIONS)
        return True

    def list_conversations(self, user_id: str) -> list[dict]:
        with self._lock:
            self._readable()
            return [
                copy.deepcopy(conversation)
                for conversation in self.conversations.values()
                if user_id in conversation["participants"]
            ]

    def set_last_message(
        self, conversation_id: str, summary: dict, unread_by: list[str]
    ) -> None:
        with self._lock:
            self._writable()
            conversation = self.conversations.get(conversation_id)
            if conversation is None:
                raise NotFound("Conversation not found.")
            conversation["last_message"] = copy.deepcopy(summary)
            conversation["unread_by"] = list(unread_by)
        self._notify(CONVERSATIONS)

    def mark_last_message_read(self, conversation_id: str, viewer_id: str) -> None:
        with self._lock:
            self._writable()
            conversation = self.conversations.get(conversation_id)
            if conversation is None:
                raise NotFound("Conversation not found.")
            if conversation["last_message"] is not None:
                conversation["last_message"]["is_read"] = True
            conversation["unread_by"] = [
                uid for uid in conversation["unread_by"] if uid != viewer_id
            ]
        self._notify(CONVERSATIONS)

    # messages
    def insert_message(self, record: dict) -> dict:
        with self._lock:
            self._writable()
            message = {
                **copy.deepcopy(record),
                "id": str(uuid.uuid4()),
                "timestamp": self._now(),
                "seq": next(self._seq),
                "is_read": False,
            }
            self.messages[message["id"]] = message
            stored = copy.deepcopy(message)
        self._notify(MESSAGES)
        return stored

    def get_message(self, message_id: str) -> Optional[dict]:
        with self._lock:
            self._readable()
            return copy.deepcopy(self.messages.get(message_id))

    def list_messages(self, conversation_id: str) -> list[dict]:
        with self._lock:
            self._readable()
            found = [
                copy.deepcopy(message)
                for message in self.messages.values()
                if message["conversation_id"] == conversation_id
            ]
        return sorted(found, key=message_sort_key)

    def latest_message(self, conversation_id: str) -> Optional[dict]:
        messages = self.list_messages(conversation_id)
        return messages[-1] if messages else None

    def list_unread_messages(
        self, conversation_id: str, recipient_id: str
    ) -> list[dict]:
        return [
            message
            for message in self.list_messages(conversation_id)
            if message["recipient_id"] == recipient_id and not message["is_read"]
        ]

    def mark_messages_read(self, message_ids: list[str]) -> int:
        updated = 0
        with self._lock:
            self._writable()
            for message_id in message_ids:
                message = self.messages.get(message_id)
                if message is not None and not message["is_read"]:
                    message["is_read"] = True
                    updated += 1
        if updated:
            self._notify(MESSAGES)
        return updated

    def count_unread(self, recipient_id: str) -> int:
        with self._lock:
            self._readable()
            return sum(
                1
                for message in self.messages.values()
                if message["recipient_id"] == recipient_id and not message["is_read"]
            )

    # change notification
    def watch(self, tables: Iterable[str], callback: Callable[[], None]) -> Unwatch:
        tables = tuple(tables)
        with self._lock:
            watch_id = next(self._watch_ids)
            for table in tables:
                self._watchers[table][watch_id] = callback

        def unwatch() -> None:
            with self._lock:
                for table in tables:
                    self._watchers[table].pop(watch_id, None)

        return unwatch

    def watcher_count(self) -> int:
        with self._lock:
            return len(
                {watch_id for table in self._watchers.values() for watch_id in table}
            )
