# /tgauth/utils/logging.py

import logging
import sys
import structlog
from tgauth.config.settings import settings

# Structured logging (JSON outside development) shared by the API, the bot
# dispatcher and the Telegram poller. Bot API URLs embed the bot token, so
# every rendered line is scrubbed of it, and `phone` fields are masked.

PHONE_FIELDS = ("phone", "phone_number")


def mask_phone(phone: str | None) -> str:
    """Shortens a phone number for log lines."""
    if not phone:
        return ""
    return f"{phone[:4]}..."


def mask_phone_fields(logger, method_name, event_dict):
    for field in PHONE_FIELDS:
        if event_dict.get(field):
            event_dict[field] = mask_phone(str(event_dict[field]))
    return event_dict


def scrub_bot_token(logger, method_name, event_dict):
    token = settings.bot_token
    if token:
        for field, value in event_dict.items():
            if isinstance(value, str) and token in value:
                event_dict[field] = value.replace(token, "<bot-token>")
    return event_dict


def setup_logging():
    """Routes stdlib and structlog records through one structlog formatter."""
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        mask_phone_fields,
        scrub_bot_token,
    ]

    if settings.environment == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    ))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level.upper())

    # httpx logs every request URL, which carries the bot token; getUpdates
    # long polling would also flood the log.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
