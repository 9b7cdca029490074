"""
Structured logging setup using structlog.
Console output in development, JSON lines everywhere else.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor

from src.core.config import settings


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Stamp every entry with the application name and environment."""
    event_dict["app"] = settings.app_name
    event_dict["env"] = settings.app_env
    return event_dict


def setup_logging(log_level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """
    Configure structlog on top of the standard library logging module.

    Args:
        log_level: Overrides settings.log_level
        json_output: Force JSON (True) or console (False) rendering;
            defaults to console in development only
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    use_json = (not settings.is_development) if json_output is None else json_output

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
        add_app_context,
    ]

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # SQL echo goes through its own flag, keep the engine quiet otherwise
    for logger_name in ["uvicorn.access", "sqlalchemy.engine", "aiosqlite"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("Issue updated", issue_id="iss_1", fields=["title"])
    """
    return structlog.get_logger(name)


class LogContext:
    """
    Context manager that binds request-scoped values to every log entry.

    Example:
        with LogContext(team_id="team_1", actor_id="user_1"):
            logger.info("Review decision")  # carries team_id and actor_id
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = {k: v for k, v in kwargs.items() if v is not None}

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
