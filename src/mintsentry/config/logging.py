"""structlog setup for the detection service."""

import logging
import re
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

from mintsentry.config.settings import get_settings

# httpx error strings embed the request URL, api key included.
_API_KEY_PATTERN = re.compile(r"(api[-_]key=)[^&\s'\"]+", re.IGNORECASE)

# Chatty libraries and the least verbose level they may log at.
_LIBRARY_FLOORS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "websockets": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def redact_api_keys(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask provider api keys in every string value of the event."""
    for key, value in event_dict.items():
        if isinstance(value, str) and "key=" in value.lower():
            event_dict[key] = _API_KEY_PATTERN.sub(r"\1***", value)
    return event_dict


def configure_logging(level: str | None = None, *, json_logs: bool | None = None) -> None:
    """Configure structlog and the stdlib loggers used by httpx and websockets.

    Args:
        level: Override for ``settings.log_level``.
        json_logs: Force JSON (True) or console (False) output. Defaults to
            console output in debug mode and JSON otherwise.
    """
    settings = get_settings()
    log_level = logging.getLevelName(level or settings.log_level)
    if json_logs is None:
        json_logs = not settings.debug

    renderer: Any = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_api_keys,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(name)s %(message)s", stream=sys.stdout, level=log_level)
    for name, floor in _LIBRARY_FLOORS.items():
        logging.getLogger(name).setLevel(max(log_level, floor))
