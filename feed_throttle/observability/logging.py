"""
Structured logging configuration using structlog.

Every log line carries the execution context it came from (``page``,
``coordinator``, ``settings`` or ``cli`` when nothing is bound) and the
storage area it works on. Modules keep logging through
``logging.getLogger(__name__)`` with %-style arguments; their records go
through the same processor chain as structlog loggers, so bound context
shows up on both.

Production renders JSON, development a colored console.
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from feed_throttle.config.settings import get_settings

PACKAGE_PREFIX = "feed_throttle."
DEFAULT_CONTEXT = "cli"

_HANDLER_NAME = "feed_throttle"
_NOISY_LOGGERS = ("asyncio", "redis")


class ExecutionContextAdder:
    """Fill in ``context`` and ``area`` on events that were not bound to any."""

    def __init__(self, area: str, context: str = DEFAULT_CONTEXT):
        self.area = area
        self.context = context

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("context", self.context)
        event_dict.setdefault("area", self.area)
        return event_dict


def shorten_logger_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Drop the package prefix: ``feed_throttle.sync.page`` logs as ``sync.page``."""
    name = event_dict.get("logger")
    if isinstance(name, str) and name.startswith(PACKAGE_PREFIX):
        event_dict["logger"] = name[len(PACKAGE_PREFIX):]
    return event_dict


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Safe to call more than once: the handler installed by a previous call
    is replaced. No handler is added when the root logger already has
    handlers from elsewhere (a test runner, an embedding application).

    Args:
        level: Log level overriding the configured ``LOG_LEVEL``
    """
    settings = get_settings()
    level = level or settings.log_level

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        ExecutionContextAdder(area=settings.storage_area),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        shorten_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        renderers: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
        )
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)
    # Like logging.basicConfig, leave a root configured elsewhere alone
    if not root.handlers:
        root.addHandler(handler)
    root.setLevel(getattr(logging, level))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger."""
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Bind context variables to all subsequent log messages."""
    structlog.contextvars.bind_contextvars(**kwargs)


def bind_execution_context(context: str, area: str) -> None:
    """Tag subsequent log lines with the context name and storage area."""
    bind_context(context=context, area=area)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
