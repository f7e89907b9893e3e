"""
Gateway logging: structlog on top of the stdlib logging handlers.

Events are rendered as JSON or console text depending on ``LOG_FORMAT``.
Provider credentials never reach a handler; see :func:`mask_credentials`.
"""
import sys
import logging
from pathlib import Path
from typing import Any, List
import structlog
from structlog.types import EventDict, Processor

from aiproxy.core.config import settings

# Event keys whose values are provider credentials
SECRET_KEYS = frozenset({"api_key", "authorization", "headers"})

# Chatty third-party loggers kept at WARNING unless debugging
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")


def mask_secret(value: str) -> str:
    """Keep the first four characters of a credential."""
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}***"


def mask_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credentials bound to a log event."""
    for key in SECRET_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, dict):
            event_dict[key] = {
                name: mask_secret(str(item)) if name.lower() == "authorization" else item
                for name, item in value.items()
            }
        elif value is not None:
            event_dict[key] = mask_secret(str(value))
    return event_dict


def add_gateway_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every event with the gateway name and environment."""
    event_dict["app"] = settings.app_name
    event_dict["env"] = settings.app_env
    return event_dict


def _build_handlers() -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    # An empty LOG_FILE keeps the gateway on stdout only
    if settings.log_file:
        log_file = Path(settings.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_file), encoding="utf-8"))
    return handlers


def setup_logging() -> None:
    """Configure stdlib handlers and the structlog processor chain."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=level, handlers=_build_handlers())

    if not settings.app_debug:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_gateway_context,
        mask_credentials,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
    ]

    if settings.log_format == "json":
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False)
        ])
    else:
        processors.extend([
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=settings.is_development)
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


setup_logging()
