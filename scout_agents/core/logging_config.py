"""Structured logging setup for the Scout engine.

Call ``configure_logging()`` once at process start. Library modules only do
``structlog.get_logger(__name__)`` and never configure logging themselves.
"""

from __future__ import annotations

import logging

import structlog

from .config import settings

_configured = False


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
    force: bool = False,
) -> None:
    """Configure structlog and bridge stdlib logging through it.

    Args:
        level: Log level name (defaults to settings.LOG_LEVEL)
        log_format: "json" or "text" (defaults to settings.LOG_FORMAT)
        force: Reconfigure even if already configured (tests/scripts)
    """
    global _configured
    if _configured and not force:
        return

    level_name = (level or settings.LOG_LEVEL).upper()
    fmt = (log_format or settings.LOG_FORMAT).lower()

    if fmt == "text":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # stdlib records (httpx, sqlalchemy, openai) share the same renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _configured = True


def bind_scout_context(game: str, run_id: str | None = None) -> None:
    """Bind per-invocation identifiers into structlog contextvars."""
    payload = {"game": game}
    if run_id:
        payload["run_id"] = run_id
    structlog.contextvars.bind_contextvars(**payload)


def clear_scout_context() -> None:
    """Drop identifiers bound by ``bind_scout_context``."""
    structlog.contextvars.unbind_contextvars("game", "run_id")
