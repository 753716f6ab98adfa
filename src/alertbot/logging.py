"""structlog setup for the alert engine.

Events carry key/value context; user cycles bind ``user_id`` through
structlog.contextvars so it follows the coroutine across awaits.

Finnhub authenticates with a ``token`` query parameter, so transport errors
can echo the full request URL. ``redact_secrets`` runs before rendering and
masks credentials in event keys and in any string value.
"""

import logging
import os
import re

import structlog

REDACTED = "***"

_SECRET_KEYS = frozenset({"token", "api_key", "x-api-key", "authorization"})
_TOKEN_IN_TEXT = re.compile(r"((?:token|api_key)=)[^&\s'\"]+", re.IGNORECASE)

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("aiohttp.access", "uvicorn.access", "aiosqlite")


def redact_secrets(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Mask credential values before the event is rendered."""
    for key, value in event_dict.items():
        if key.lower() in _SECRET_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, str) and "=" in value:
            event_dict[key] = _TOKEN_IN_TEXT.sub(rf"\1{REDACTED}", value)
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str | None = None) -> None:
    """Configure structlog and route stdlib logging through it.

    ``log_format`` is "json" or "console"; when None the LOG_FORMAT
    environment variable decides (console by default).
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Stdlib records (aiohttp, uvicorn) go through the shared processors too
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
