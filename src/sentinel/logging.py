"""Structured logging: structlog events rendered through stdlib logging.

Library records (ccxt, aiohttp, aiosqlite) pass through the same renderer
as the sentinel's own events, so one process writes one log format.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# Third-party loggers that flood DEBUG output during a 400-symbol fan-out
_QUIET_LOGGERS = ("ccxt", "aiohttp", "aiosqlite", "asyncio")


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog and the root logger once at startup.

    Args:
        log_level: Root level name (DEBUG, INFO, ...).
        log_format: "json" for one JSON object per line, anything else for
            human-readable console output.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: structlog.types.Processor
    if log_format.lower() == "json":
        renderer = structlog.processors.JSONRenderer()
        pre_chain.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root_logger.level, logging.WARNING))


@contextmanager
def symbol_context(symbol: str) -> Iterator[None]:
    """Attach ``symbol`` to every event logged inside the block.

    Context variables are copied per asyncio task, so a binding made inside
    one fan-out task never shows up in its siblings.
    """
    with structlog.contextvars.bound_contextvars(symbol=symbol):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
