from logging import DEBUG, INFO, WARNING, StreamHandler, getLogger

from structlog import configure
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    add_log_level,
    format_exc_info,
)
from structlog.stdlib import LoggerFactory, ProcessorFormatter, add_logger_name

__all__ = ["setup_logging"]

# LoggingMiddleware already writes one event per request.
QUIET_LOGGERS = ("uvicorn.access",)


def setup_logging(config, *args, **kwargs):
    """Configure structlog on top of the stdlib root logger.

    Request scoped values (request id, session id, payroll class) are bound
    with ``structlog.contextvars`` by the middleware and merged into every
    event emitted inside that request. ``DEV`` renders for a console, every
    other environment writes one JSON object per line.
    """
    renderer = ConsoleRenderer() if config.ENVIRONMENT == "DEV" else JSONRenderer()

    configure(
        processors=[
            merge_contextvars,
            add_log_level,
            add_logger_name,
            StackInfoRenderer(),
            TimeStamper(fmt="iso", utc=True),
            format_exc_info,
            ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            processors=[ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(DEBUG if config.DEBUG else INFO)
    for name in QUIET_LOGGERS:
        getLogger(name).setLevel(WARNING)
