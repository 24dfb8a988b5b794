"""
structlog setup shared by the gateway modules

Events are snake_case names with keyword context, e.g.
    logger.info("cache_miss", key="indices:IBM")
Provider credentials never reach the output: any event field named like an
API key is masked before rendering.
"""

import sys
import logging
from typing import Any, List, Optional
import structlog
from structlog.processors import JSONRenderer
from structlog.typing import EventDict, Processor

from ..config.settings import mask_secret, settings

SECRET_FIELDS = frozenset({"apikey", "api_key", "apiKey", "x-cg-demo-api-key", "x-cg-pro-api-key"})


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values of credential-looking fields"""
    for field in SECRET_FIELDS.intersection(event_dict):
        event_dict[field] = mask_secret(str(event_dict[field] or ""))
    return event_dict


def _processors(format_type: str) -> List[Processor]:
    renderer: Processor = JSONRenderer() if format_type == "json" else structlog.dev.ConsoleRenderer()
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    service_name: Optional[str] = None
) -> None:
    """
    Configure stdlib logging and structlog for the process

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (settings.log_level)
        log_format: 'json' or 'text' (settings.log_format)
        service_name: Bound as `service` on every event
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=_processors(log_format or settings.log_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if service_name:
        structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Logger for a module, optionally pre-bound (e.g. component="rate_limiter")"""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger
