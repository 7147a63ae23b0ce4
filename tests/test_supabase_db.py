import threading
import unittest
from types import SimpleNamespace
from unittest import mock

import httpx
from postgrest.exceptions import APIError

from cubechat.chat.models import conversations_sql, messages_sql
from cubechat.core.errors import AlreadyExists, NotFound, TransientIO
from cubechat.core.supabase_db import (
    SupabaseMessagingDb,
    _conversation_from_row,
    _summary_to_row,
)
from cubechat.users.models import profiles_sql
from cubechat.users.service import save_profile


def result(data, count=None):
    return SimpleNamespace(data=data, count=count)


class SupabaseMessagingDbTests(unittest.TestCase):
    def setUp(self):
        self.client = mock.MagicMock()
        self.table = self.client.table.return_value
        self.db = SupabaseMessagingDb(self.client, poll_interval=0.01)

    def test_create_if_absent_uses_ignore_duplicates(self):
        self.table.upsert.return_value.execute.return_value = result([{"id": "u1_u2"}])
        record = {"id": "u1_u2", "participants": ["u1", "u2"], "unread_by": ["u2"]}

        self.assertTrue(self.db.create_conversation_if_absent(record))
        self.client.table.assert_called_with("conversations")
        _, kwargs = self.table.upsert.call_args
        self.assertEqual(kwargs, {"on_conflict": "id", "ignore_duplicates": True})

        self.table.upsert.return_value.execute.return_value = result([])
        self.assertFalse(self.db.create_conversation_if_absent(record))

    def test_transport_errors_become_transient(self):
        self.table.select.return_value.eq.return_value.limit.return_value.execute.side_effect = (
            httpx.ConnectError("connection refused")
        )

        with self.assertRaises(TransientIO):
            self.db.get_profile("u1")

    def test_username_race_is_reported_as_taken(self):
        # the pre-check sees the name as free, the UNIQUE constraint then rejects it
        self.table.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
            result([])
        )
        self.table.upsert.return_value.execute.side_effect = APIError(
            {
                "code": "23505",
                "message": "duplicate key value violates unique constraint",
                "details": "Key (username)=(bob) already exists.",
                "hint": None,
            }
        )

        with self.assertRaises(AlreadyExists):
            save_profile(self.db, "u9", "bob")

    def test_other_api_errors_propagate(self):
        self.table.upsert.return_value.execute.side_effect = APIError(
            {"code": "42501", "message": "permission denied", "details": None, "hint": None}
        )

        with self.assertRaises(APIError):
            self.db.upsert_profile("u9", {"push_token": "t"})

    def test_conversation_row_mapping(self):
        row = {
            "id": "u1_u2",
            "participants": ["u1", "u2"],
            "created_at": "2024-05-01T12:00:00+00:00",
            "last_message_body": "hi",
            "last_message_sender_id": "u1",
            "last_message_at": "2024-05-01T12:01:00+00:00",
            "last_message_is_read": False,
            "unread_by": ["u2"],
        }
        self.assertEqual(
            _conversation_from_row(row)["last_message"],
            {
                "message": "hi",
                "sender_id": "u1",
                "timestamp": "2024-05-01T12:01:00+00:00",
                "is_read": False,
            },
        )

        empty = {**row, "last_message_at": None, "unread_by": None}
        self.assertIsNone(_conversation_from_row(empty)["last_message"])
        self.assertEqual(_conversation_from_row(empty)["unread_by"], [])

    def test_mark_messages_read_counts_flipped_rows(self):
        update = self.table.update.return_value.in_.return_value.eq.return_value
        update.execute.return_value = result([{"id": "m1"}, {"id": "m2"}])

        self.assertEqual(self.db.mark_messages_read(["m1", "m2", "m3"]), 2)
        self.table.update.assert_called_with({"is_read": True})
        self.table.update.return_value.in_.assert_called_with("id", ["m1", "m2", "m3"])
        self.assertEqual(self.db.mark_messages_read([]), 0)

    def test_set_last_message_on_missing_conversation(self):
        self.table.update.return_value.eq.return_value.execute.return_value = result([])
        summary = {"message": "hi", "sender_id": "u1", "timestamp": "t", "is_read": False}

        with self.assertRaises(NotFound):
            self.db.set_last_message("u1_u9", summary, unread_by=["u9"])

    def test_count_unread_uses_exact_count(self):
        query = self.table.select.return_value.eq.return_value.eq.return_value
        query.execute.return_value = result([], count=3)

        self.assertEqual(self.db.count_unread("u2"), 3)
        self.table.select.assert_called_with("id", count="exact")

    def test_watch_polls_until_unwatched(self):
        fired = mock.Mock()
        unwatch = self.db.watch(["messages"], fired)

        woken = threading.Event()
        fired.side_effect = woken.set
        self.assertTrue(woken.wait(2))
        unwatch()

        self.assertTrue(fired.called)


class TableDefinitionTests(unittest.TestCase):
    def test_summary_columns_exist(self):
        summary = {"message": "hi", "sender_id": "u1", "timestamp": "t", "is_read": False}
        for column in [*_summary_to_row(summary), "unread_by", "participants"]:
            self.assertIn(f"\n    {column} ", conversations_sql)

    def test_message_and_profile_columns_exist(self):
        message_columns = [
            "seq",
            "conversation_id",
            "sender_id",
            "recipient_id",
            "message",
            "timestamp",
            "is_read",
        ]
        for column in message_columns:
            self.assertIn(f"\n    {column} ", messages_sql)
        for column in ["username", "photo_url", "push_token", "blocked_users"]:
            self.assertIn(f"\n    {column} ", profiles_sql)


if __name__ == "__main__":
    unittest.main()
