"""
Push notification for newly created messages.

Invoked by the database webhook once per inserted message, possibly more than
once. The only side effect is a best-effort push, so duplicate deliveries are
harmless; failed pushes are logged and not retried here.
"""

import logging
from typing import Optional

import httpx

from cubechat.core.db import MessagingDb

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "New Message"


class PushClient:
    """Thin client for an Expo-compatible push-delivery endpoint."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.endpoint = endpoint
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def send(self, payload: dict) -> dict:
        response = self._client.post(
            self.endpoint,
            json=payload,
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self._client.close()


def build_push_payload(push_token: str, message_id: str, message: dict) -> dict:
    return {
        "to": push_token,
        "sound": "default",
        "title": NOTIFICATION_TITLE,
        "body": message["message"],
        "data": {
            "messageId": message_id,
            "senderId": message["sender_id"],
        },
    }


def dispatch_new_message(
    db: MessagingDb, push_client: PushClient, message_id: str, message: dict
) -> bool:
    """Send a push for ``message`` to its recipient. Returns True if sent."""
    recipient_id = message["recipient_id"]

    profile = db.get_profile(recipient_id)
    push_token = profile.get("push_token") if profile else None
    if not push_token:
        logger.info(f"push_skipped reason=no_token recipient_id={recipient_id}")
        return False

    payload = build_push_payload(push_token, message_id, message)

    try:
        response = push_client.send(payload)
    except httpx.HTTPError as error:
        logger.error(f"push_failed message_id={message_id} error={error!r}")
        return False
    except ValueError as error:
        # delivered, but the endpoint answered with a non-JSON body
        logger.error(f"push_response_unreadable message_id={message_id} error={error!r}")
        return False

    logger.info(f"push_sent message_id={message_id} response={response}")
    return True
