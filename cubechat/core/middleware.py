import time
import uuid
import logging
from fastapi import Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def logging_middleware(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    started = time.perf_counter()

    logger.info(f"[REQ {request_id}] {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"[REQ {request_id}] Unhandled error")
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"[REQ {request_id}] {response.status_code} ({elapsed_ms:.1f}ms)")
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
