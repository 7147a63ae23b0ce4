import asyncio
import threading
import unittest

from fastapi import FastAPI, WebSocket
from fastapi.testclient import TestClient

from cubechat.core.websockets import serve_snapshots


class RecordingSubscription:
    name = "recording"

    def __init__(self):
        self.closed = threading.Event()
        self.closed_on_loop = None

    def close(self):
        try:
            asyncio.get_running_loop()
            self.closed_on_loop = True
        except RuntimeError:
            self.closed_on_loop = False
        self.closed.set()


class ServeSnapshotsTests(unittest.TestCase):
    def setUp(self):
        self.subscription = RecordingSubscription()
        app = FastAPI()

        def subscribe(on_snapshot):
            on_snapshot(1)
            return self.subscription

        @app.websocket("/ws")
        async def snapshots(websocket: WebSocket):
            await serve_snapshots(websocket, subscribe, lambda value: {"value": value})

        self.client = TestClient(app)

    def test_disconnect_closes_subscription_off_the_event_loop(self):
        with self.client.websocket_connect("/ws") as websocket:
            self.assertEqual(websocket.receive_json(), {"value": 1})

        self.assertTrue(self.subscription.closed.wait(2))
        self.assertFalse(self.subscription.closed_on_loop)


if __name__ == "__main__":
    unittest.main()
