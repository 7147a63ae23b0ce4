import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from typing import Optional

from cubechat.core.db import MessagingDb
from cubechat.core.dependencies import get_db, get_push_client
from cubechat.core.errors import MessagingError
from cubechat.utils.env_helper import env_none_or_str

from .dispatcher import PushClient, dispatch_new_message
from .schemas import MessageCreatedEvent, MessageCreatedResponseModel


logger = logging.getLogger(__name__)
router = APIRouter()


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(default=None)):
    expected = env_none_or_str("NOTIFICATION_WEBHOOK_SECRET")
    if expected is None:
        return
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid webhook secret.")


@router.post(
    "/message-created",
    response_model=MessageCreatedResponseModel,
    status_code=200,
    dependencies=[Depends(verify_webhook_secret)],
)
def message_created(
    event: MessageCreatedEvent,
    db: MessagingDb = Depends(get_db),
    push_client: PushClient = Depends(get_push_client),
):
    """
    Send a push notification for a newly inserted message.

    Called by the Supabase database webhook on every insert into `messages`.
    Delivery is at-least-once, so this only ever sends a (possibly duplicate)
    push and never writes.

    **Input**
    - Supabase webhook payload: `type`, `table`, `record`

    **Returns**
    - `dispatched`: Whether a push was handed to the delivery service

    **Errors**
    - 401: Missing or wrong `X-Webhook-Secret`
    - 503: Recipient lookup failed, the webhook may retry
    """
    if event.type != "INSERT" or event.table != "messages" or event.record is None:
        logger.info(f"webhook_ignored type={event.type} table={event.table}")
        return {"dispatched": False}

    record = event.record

    try:
        dispatched = dispatch_new_message(
            db, push_client, record.id, record.model_dump()
        )
    except MessagingError:
        raise
    except Exception:
        logger.exception(f"dispatch_failed message_id={record.id}")
        raise HTTPException(status_code=500, detail="Failed to dispatch notification.")

    return {"dispatched": dispatched}
