import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from cubechat.chat.conversations import ensure_conversation
from cubechat.chat.inbox import as_datetime, list_inbox, reconcile_summary, stream_inbox
from cubechat.chat.messages import append_message
from cubechat.core.db import InMemoryMessagingDb
from cubechat.core.errors import TransientIO


class FlakySummaryDb(InMemoryMessagingDb):
    fail_summary = False

    def set_last_message(self, conversation_id, summary, unread_by):
        if self.fail_summary:
            raise TransientIO("summary write timed out")
        super().set_last_message(conversation_id, summary, unread_by)


class InboxTests(unittest.TestCase):
    def setUp(self):
        self.db = FlakySummaryDb()
        self.db.upsert_profile("u1", {"username": "alice", "photo_url": "https://cdn/a.png"})
        self.db.upsert_profile("u2", {"username": "bob"})

    def test_only_conversations_with_messages(self):
        ensure_conversation(self.db, "u1", "u2")
        self.assertEqual(list_inbox(self.db, "u1"), [])

    def test_entry_shape_and_unread_flag(self):
        conversation_id = ensure_conversation(self.db, "u1", "u2")
        append_message(self.db, conversation_id, "u1", "u2", "is the gan still for sale?")

        (for_sender,) = list_inbox(self.db, "u1")
        (for_recipient,) = list_inbox(self.db, "u2")

        self.assertEqual(for_sender["counterpart"]["username"], "bob")
        self.assertEqual(for_recipient["counterpart"]["photo_url"], "https://cdn/a.png")
        self.assertFalse(for_sender["has_unread"])
        self.assertTrue(for_recipient["has_unread"])
        self.assertEqual(for_recipient["last_message"]["message"], "is the gan still for sale?")

    def test_newest_first(self):
        self.db.upsert_profile("u3", {"username": "carol"})
        older = ensure_conversation(self.db, "u1", "u2")
        newer = ensure_conversation(self.db, "u1", "u3")
        append_message(self.db, older, "u2", "u1", "first")
        append_message(self.db, newer, "u3", "u1", "second")

        self.assertEqual([entry["id"] for entry in list_inbox(self.db, "u1")], [newer, older])

        append_message(self.db, older, "u2", "u1", "third")
        self.assertEqual([entry["id"] for entry in list_inbox(self.db, "u1")], [older, newer])

    def test_equal_timestamps_rank_by_write_order(self):
        self.db.upsert_profile("u3", {"username": "carol"})
        first = ensure_conversation(self.db, "u1", "u2")
        second = ensure_conversation(self.db, "u1", "u3")
        frozen = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        with mock.patch.object(self.db, "_now", return_value=frozen):
            append_message(self.db, first, "u2", "u1", "one")
            append_message(self.db, second, "u3", "u1", "two")
            self.assertEqual(
                [entry["id"] for entry in list_inbox(self.db, "u1")], [second, first]
            )

            append_message(self.db, first, "u2", "u1", "three")
            self.assertEqual(
                [entry["id"] for entry in list_inbox(self.db, "u1")], [first, second]
            )

    def test_stale_summary_is_rebuilt_from_log(self):
        conversation_id = ensure_conversation(self.db, "u1", "u2")
        append_message(self.db, conversation_id, "u1", "u2", "first")

        self.db.fail_summary = True
        append_message(self.db, conversation_id, "u2", "u1", "second")

        stored = self.db.get_conversation(conversation_id)["last_message"]
        self.assertEqual(stored["message"], "first")

        (entry,) = list_inbox(self.db, "u1")
        self.assertEqual(entry["last_message"]["message"], "second")
        self.assertEqual(entry["last_message"]["sender_id"], "u2")
        self.assertTrue(entry["has_unread"])

    def test_missing_summary_is_rebuilt_from_log(self):
        conversation_id = ensure_conversation(self.db, "u1", "u2")
        self.db.fail_summary = True
        append_message(self.db, conversation_id, "u1", "u2", "hello")

        (entry,) = list_inbox(self.db, "u2")
        self.assertEqual(entry["last_message"]["message"], "hello")

    def test_deleted_counterpart_shows_unknown(self):
        conversation_id = ensure_conversation(self.db, "u1", "u2")
        append_message(self.db, conversation_id, "u1", "u2", "hello")
        self.db.delete_profile("u2")

        (entry,) = list_inbox(self.db, "u1")
        self.assertEqual(entry["counterpart"]["username"], "Unknown")

    def test_stream_inbox(self):
        conversation_id = ensure_conversation(self.db, "u1", "u2")
        snapshots = []
        with stream_inbox(self.db, "u2", snapshots.append):
            append_message(self.db, conversation_id, "u1", "u2", "hello")

        self.assertEqual(snapshots[0], [])
        self.assertEqual(snapshots[-1][0]["last_message"]["message"], "hello")
        self.assertEqual(self.db.watcher_count(), 0)


class SummaryHelpersTests(unittest.TestCase):
    def test_as_datetime(self):
        expected = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        self.assertEqual(as_datetime("2024-05-01T12:00:00Z"), expected)
        self.assertEqual(as_datetime("2024-05-01T12:00:00+00:00"), expected)
        self.assertEqual(as_datetime(expected), expected)

    def test_reconcile_prefers_stored_when_current(self):
        now = datetime.now(timezone.utc)
        stored = {"message": "hi", "sender_id": "u1", "timestamp": now, "is_read": True}
        latest = {"message": "hi", "sender_id": "u1", "timestamp": now, "is_read": False}
        self.assertIs(reconcile_summary(stored, latest), stored)
        self.assertIs(reconcile_summary(stored, None), stored)

        newer = {**latest, "message": "again", "timestamp": now + timedelta(seconds=1)}
        self.assertEqual(reconcile_summary(stored, newer)["message"], "again")


if __name__ == "__main__":
    unittest.main()
