"""Structured logging for the proxy, built on structlog over stdlib logging.

Production renders one JSON object per line; development renders colored
console output. Third-party libraries log through the same formatter.

The proxy handles raw prompts and API keys, so a scrubbing processor masks
known sensitive fields on every event, including events from foreign
loggers. Redaction code itself only binds lengths, entity types and counts.
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

APP_NAME = "pii-redaction-proxy"

# Event keys whose values must never reach a log sink
SENSITIVE_KEYS = frozenset(
    {"authorization", "x-api-key", "api_key", "text", "content", "messages", "body", "session_id"}
)
MASK = "***"

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "transformers", "faker", "urllib3")


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["app"] = APP_NAME
    return event_dict


def scrub_sensitive_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values bound under sensitive keys (case-insensitive)."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = MASK
    return event_dict


def _processors(is_production: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        scrub_sensitive_fields,
    ]
    if is_production:
        processors.append(structlog.processors.format_exc_info)
    return processors


def configure_logging(log_level: str = "INFO", environment: str = "development") -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        environment: "production" selects the JSON renderer
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    is_production = environment.lower() == "production"
    shared = _processors(is_production)
    renderer: Processor = (
        structlog.processors.JSONRenderer() if is_production else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    # Replace handlers so repeated calls (tests, reloads) do not duplicate output
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        log_level=logging.getLevelName(level),
        environment=environment,
        renderer="json" if is_production else "console",
    )
