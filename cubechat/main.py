import logging
from dotenv import load_dotenv

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .users import routers as users_router
from .blocks import routers as blocks_router
from .chat import routers as chat_router
from .notifications import routers as notifications_router

from .core.errors import MessagingError
from .core.middleware import logging_middleware
from .utils.env_helper import env_list
from .utils.logging_config import setup_logging

load_dotenv()
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="cubechat")
app.include_router(users_router.router, prefix="/profiles", tags=["Profiles"])
app.include_router(blocks_router.router, prefix="/blocks", tags=["Blocks"])
app.include_router(chat_router.router, prefix="/chat", tags=["Chat"])
app.include_router(
    notifications_router.router, prefix="/notifications", tags=["Notifications"]
)


origins = env_list(
    "CORS_ORIGINS",
    [
        "http://localhost:8081",
        "http://localhost:19006",
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(logging_middleware)


@app.exception_handler(MessagingError)
async def messaging_error_handler(request: Request, error: MessagingError):
    if error.status_code >= 500:
        logger.warning(f"messaging_error path={request.url.path} detail={error.detail}")
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": error.detail, "retryable": error.retryable},
    )


@app.get("/health")
def health():
    return {"status": "ok"}
