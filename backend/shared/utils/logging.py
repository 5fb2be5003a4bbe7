"""
structlog setup for the API and seed processes.

Every record carries the process name and instance id; inside a request the
middleware also binds `request_id`, so workflow logs (status changes,
confirmations, notification failures) can be joined to the HTTP line.
"""
from __future__ import annotations

import logging
import sys

import structlog
from shared.config import Environment, Settings, get_settings

# Third-party loggers kept at WARNING: access lines duplicate http_request
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio", "aiosqlite", "sqlalchemy.engine")

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _renderer(settings: Settings) -> structlog.types.Processor:
    if settings.environment in (Environment.DEV, Environment.TEST):
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging(process: str) -> None:
    """Route stdlib and structlog output through one stdout handler for `process` (api, seed)."""
    settings = get_settings()

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer(settings)],
            foreign_pre_chain=_PRE_CHAIN,
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(process=process, instance_id=settings.instance_id)


def bind_request(request_id: str) -> None:
    structlog.contextvars.bind_contextvars(request_id=request_id)


def unbind_request() -> None:
    structlog.contextvars.unbind_contextvars("request_id")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
