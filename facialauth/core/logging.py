"""Structured logging for the facial authentication framework.

structlog renders through the stdlib root logger, so records from SQLAlchemy,
uvicorn and insightface share one handler and one format.
"""
import logging
import sys
from typing import List, Optional

import structlog
from structlog.stdlib import ProcessorFormatter

from facialauth.core.config import Settings, settings as default_settings

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "insightface", "onnxruntime")


def _build_processors(config: Settings) -> List[structlog.types.Processor]:
    processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if config.ENVIRONMENT != "development":
        processors.append(structlog.processors.format_exc_info)
    processors.append(ProcessorFormatter.wrap_for_formatter)
    return processors


def _build_renderer(config: Settings) -> structlog.types.Processor:
    if config.ENVIRONMENT == "development":
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure structlog and the root logger from ``config``.

    Development gets a console renderer. Every other environment logs one
    JSON object per line.
    """
    config = config or default_settings

    structlog.configure(
        processors=_build_processors(config),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(processor=_build_renderer(config)))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    get_logger(__name__).debug(
        "Logging configured", environment=config.ENVIRONMENT, level=config.LOG_LEVEL
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)
