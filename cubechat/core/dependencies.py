import os
import jwt
import logging
from dotenv import load_dotenv
from fastapi import Depends, HTTPException, WebSocket
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from cubechat.core.db import InMemoryMessagingDb, MessagingDb
from cubechat.core.errors import Unauthorized
from cubechat.utils.env_helper import env_bool, env_float

load_dotenv()
logger = logging.getLogger(__name__)

security = HTTPBearer()

DEFAULT_PUSH_ENDPOINT = "https://exp.host/--/api/v2/push/send"

_db: MessagingDb | None = None
_push_client = None


def decode_access_token(token: str) -> dict:
    """Verify a Supabase access token and return its claims."""
    supabase_url = os.getenv("PUBLIC_SUPABASE_URL")

    try:
        return jwt.decode(
            token,
            os.getenv("SUPABASE_JWT_SECRET"),
            algorithms=["HS256"],
            issuer=f"{supabase_url}/auth/v1" if supabase_url else None,
            options={"verify_aud": False},
            leeway=60,
        )

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")

    except jwt.InvalidTokenError as e:
        logger.info(f"jwt_verification_failed error={e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    return decode_access_token(credentials.credentials)


def get_current_user_id(payload: dict = Depends(verify_token)) -> str:
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Token has no subject.")
    return str(user_id)


def websocket_user_id(websocket: WebSocket) -> str:
    """Websockets carry the access token as a ``token`` query parameter."""
    token = websocket.query_params.get("token")
    if not token:
        raise Unauthorized("Missing access token.")
    try:
        payload = decode_access_token(token)
    except HTTPException as error:
        raise Unauthorized(error.detail)
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Token has no subject.")
    return str(user_id)


def get_db() -> MessagingDb:
    """
    Return a singleton store client so subscriptions share one change feed.
    """
    global _db
    if _db is not None:
        return _db

    if env_bool("CUBECHAT_USE_IN_MEMORY_DB") or not os.getenv("PUBLIC_SUPABASE_URL"):
        logger.info("messaging_db backend=memory")
        _db = InMemoryMessagingDb()
    else:
        from cubechat.core.supabase_client import get_supabase
        from cubechat.core.supabase_db import SupabaseMessagingDb

        logger.info("messaging_db backend=supabase")
        _db = SupabaseMessagingDb(
            get_supabase(),
            poll_interval=env_float("REALTIME_POLL_INTERVAL", 2.0),
        )
    return _db


def get_push_client():
    global _push_client
    if _push_client is not None:
        return _push_client

    from cubechat.notifications.dispatcher import PushClient

    _push_client = PushClient(
        endpoint=os.getenv("PUSH_ENDPOINT_URL", DEFAULT_PUSH_ENDPOINT),
        timeout=env_float("PUSH_TIMEOUT_SECONDS", 10.0),
    )
    return _push_client
