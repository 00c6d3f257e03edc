"""Structured logging for Parley.

structlog renders both its own events and stdlib records (uvicorn, httpx,
SQLAlchemy) through one formatter. Per-turn fields (``conversation_id``,
``placeholder_id``) are carried in contextvars so every event logged while a
turn streams, including decoder warnings, is tagged with them.
"""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import FilteringBoundLogger, Processor

TRUTHY = ("true", "1", "yes", "on")

# Libraries that log every request or statement at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "limits")

# Applied to stdlib records before rendering
FOREIGN_PRE_CHAIN: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def build_renderer(log_format: str = "pretty", colors: bool = True) -> Processor:
    if log_format.lower() == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=colors)


def configure_structlog(
    level: str = "INFO", log_format: str = "pretty", colors: bool = True
) -> None:
    """(Re)configure logging. Safe to call again once settings are loaded."""
    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=build_renderer(log_format, colors),
            foreign_pre_chain=FOREIGN_PRE_CHAIN,
        )
    )
    logging.root.handlers = [handler]
    logging.root.setLevel(level.upper())
    logging.captureWarnings(True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Import-time defaults; main.py reconfigures from Settings after loading config
configure_structlog(
    level=os.getenv("LOG_LEVEL", "INFO"),
    log_format=os.getenv("LOG_FORMAT", "pretty"),
    colors=os.getenv("LOG_COLORS", "true").lower() in TRUTHY,
)


@contextmanager
def turn_context(conversation_id: str, placeholder_id: int) -> Iterator[None]:
    """Tag every event logged inside the block with the turn's identifiers."""
    with structlog.contextvars.bound_contextvars(
        conversation_id=conversation_id, placeholder_id=placeholder_id
    ):
        yield


def request_log(
    logger: FilteringBoundLogger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **kwargs,
):
    logger.info(
        "Request handled",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration_ms, 1),
        **kwargs,
    )


def frame_log(logger: FilteringBoundLogger, kind: str, text: str | None = None):
    """Debug trace of one decoded frame, text clipped."""
    logger.debug("Frame decoded", kind=kind, text=text[:300] if text else None)


def get_logger(name: str) -> FilteringBoundLogger:
    return structlog.get_logger(name)


logger = get_logger("parley")
api_logger = get_logger("parley.api")
stream_logger = get_logger("parley.stream")
store_logger = get_logger("parley.store")
