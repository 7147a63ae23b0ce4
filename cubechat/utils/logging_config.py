import logging
from logging.config import dictConfig

from cubechat.utils.env_helper import env_none_or_str

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str | None = None):
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": LOG_FORMAT,
                },
                "json": {  # optional structured logs for prod
                    "format": '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": env_none_or_str("LOG_FORMATTER", "default"),
                },
            },
            "root": {
                "level": level or env_none_or_str("LOG_LEVEL", "INFO"),
                "handlers": ["console"],
            },
        }
    )
