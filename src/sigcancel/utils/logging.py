"""structlog setup shared by the library and the demo script."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, cast

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import Processor

SERVICE_NAME_DEFAULT = "sigcancel"


def _level_number(level: str | int) -> int:
    if isinstance(level, int):
        return level
    try:
        return logging.getLevelNamesMapping()[level.strip().upper()]
    except KeyError:
        raise ValueError(f"Invalid log level: {level}") from None


def _pre_chain() -> list[Processor]:
    # Runs for structlog events and for foreign stdlib records alike.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def configure_logging(level: str | int = "INFO", json_output: bool = True) -> None:
    """
    Route structlog through stdlib logging and render one line per event.

    The library never calls this itself; applications call it once at startup,
    typically with ``ShutdownConfig.log_level`` and ``ShutdownConfig.log_json``.
    """
    pre_chain = _pre_chain()
    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    logging.basicConfig(level=_level_number(level), handlers=[handler], force=True)
    logging.captureWarnings(True)


def get_logger(name: str) -> BoundLogger:
    """Return a lazy structlog logger with service metadata bound.

    Binding goes through ``get_logger`` initial values so module-level loggers
    pick up whatever configuration is in place when they first emit.
    """
    from sigcancel import __version__

    service_name = os.getenv("SERVICE_NAME", SERVICE_NAME_DEFAULT)
    version = os.getenv("APP_VERSION", __version__)
    return cast(
        BoundLogger,
        structlog.get_logger(name, service_name=service_name, version=version),
    )


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind ``kwargs`` to every event logged in this block.

    Bindings live in contextvars, so inside a task they stay local to it and
    are inherited by tasks created within the block.
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
