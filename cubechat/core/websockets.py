import asyncio
import logging
from typing import Any, Callable

from fastapi import WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from cubechat.core.errors import MessagingError
from cubechat.core.realtime import LiveQuery

logger = logging.getLogger(__name__)


async def serve_snapshots(
    websocket: WebSocket,
    subscribe: Callable[[Callable[[Any], None]], LiveQuery],
    render: Callable[[Any], dict],
):
    """
    Forward every snapshot of a live query to a websocket as JSON.

    ``subscribe`` is called with the snapshot callback and must return the
    live query. The subscription is closed as soon as the client disconnects.
    """
    loop = asyncio.get_running_loop()
    snapshots: asyncio.Queue = asyncio.Queue()

    def on_snapshot(snapshot):
        # Store callbacks arrive on worker threads.
        loop.call_soon_threadsafe(snapshots.put_nowait, snapshot)

    try:
        subscription = await run_in_threadpool(subscribe, on_snapshot)
    except MessagingError as error:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=error.detail)
        return

    await websocket.accept()

    async def forward():
        while True:
            snapshot = await snapshots.get()
            await websocket.send_json(render(snapshot))

    sender = asyncio.create_task(forward())
    try:
        while True:
            # Client messages are ignored; this only waits for the disconnect.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as error:
            logger.warning(
                f"websocket_send_failed subscription={subscription.name} error={error!r}"
            )
        # close() waits for an in-flight refresh, keep it off the loop
        await run_in_threadpool(subscription.close)
        logger.info(f"websocket_closed subscription={subscription.name}")
