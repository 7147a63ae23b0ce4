import copy
import json
import unittest

import httpx

from cubechat.core.db import InMemoryMessagingDb
from cubechat.notifications.dispatcher import (
    PushClient,
    build_push_payload,
    dispatch_new_message,
)

PUSH_URL = "https://push.test/--/api/v2/push/send"

MESSAGE = {
    "conversation_id": "u1_u2",
    "sender_id": "u1",
    "recipient_id": "u2",
    "message": "still have the 3x3?",
}


class RecordingTransport(httpx.MockTransport):
    def __init__(self, status_code=200, fail=False, text=None):
        self.requests = []
        self.status_code = status_code
        self.fail = fail
        self.text = text
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            raise httpx.ConnectError("push service down", request=request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json={"data": {"status": "ok"}})


class DispatcherTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryMessagingDb()
        self.db.upsert_profile("u1", {"username": "alice"})
        self.db.upsert_profile(
            "u2", {"username": "bob", "push_token": "ExponentPushToken[bob]"}
        )

    def _client(self, **kwargs):
        transport = RecordingTransport(**kwargs)
        return transport, PushClient(PUSH_URL, transport=transport)

    def test_payload_shape(self):
        self.assertEqual(
            build_push_payload("ExponentPushToken[bob]", "m1", MESSAGE),
            {
                "to": "ExponentPushToken[bob]",
                "sound": "default",
                "title": "New Message",
                "body": "still have the 3x3?",
                "data": {"messageId": "m1", "senderId": "u1"},
            },
        )

    def test_sends_to_recipient_token(self):
        transport, client = self._client()

        self.assertTrue(dispatch_new_message(self.db, client, "m1", MESSAGE))

        (request,) = transport.requests
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), PUSH_URL)
        self.assertEqual(json.loads(request.content)["to"], "ExponentPushToken[bob]")

    def test_no_token_is_a_noop(self):
        transport, client = self._client()
        message = {**MESSAGE, "sender_id": "u2", "recipient_id": "u1"}

        with self.assertLogs("cubechat.notifications.dispatcher", level="INFO") as logs:
            self.assertFalse(dispatch_new_message(self.db, client, "m1", message))

        self.assertEqual(transport.requests, [])
        self.assertIn("no_token", logs.output[0])

    def test_unknown_recipient_is_a_noop(self):
        transport, client = self._client()
        message = {**MESSAGE, "recipient_id": "ghost"}

        self.assertFalse(dispatch_new_message(self.db, client, "m1", message))
        self.assertEqual(transport.requests, [])

    def test_push_failure_is_logged_not_raised(self):
        for kwargs in [{"fail": True}, {"status_code": 500}]:
            transport, client = self._client(**kwargs)
            with self.assertLogs("cubechat.notifications.dispatcher", level="ERROR"):
                self.assertFalse(dispatch_new_message(self.db, client, "m1", MESSAGE))
            # not retried
            self.assertEqual(len(transport.requests), 1)

    def test_non_json_push_response_is_logged_not_raised(self):
        transport, client = self._client(text="<html>gateway</html>")

        with self.assertLogs("cubechat.notifications.dispatcher", level="ERROR") as logs:
            self.assertFalse(dispatch_new_message(self.db, client, "m1", MESSAGE))

        self.assertEqual(len(transport.requests), 1)
        self.assertIn("push_response_unreadable", logs.output[0])

    def test_duplicate_trigger_only_repeats_the_push(self):
        transport, client = self._client()
        before = copy.deepcopy((self.db.profiles, self.db.messages, self.db.conversations))

        dispatch_new_message(self.db, client, "m1", MESSAGE)
        dispatch_new_message(self.db, client, "m1", MESSAGE)

        self.assertEqual(len(transport.requests), 2)
        self.assertEqual(
            before, (self.db.profiles, self.db.messages, self.db.conversations)
        )


if __name__ == "__main__":
    unittest.main()
