# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Structured logging setup.

Modules log through ``structlog.get_logger(__name__)`` with snake_case event
names and key/value context. Call :func:`setup_logging` once from the host
application; without it structlog's defaults apply.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from .config import LoggingSettings, TreeSettings


def setup_logging(settings: TreeSettings | LoggingSettings | None = None) -> None:
    """Configure structlog and the stdlib root handler.

    Args:
        settings: Tree settings or just their logging part. Defaults to
            LoggingSettings().
    """
    if settings is None:
        config = LoggingSettings()
    elif isinstance(settings, TreeSettings):
        config = settings.logging
    else:
        config = settings

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, config.level),
        force=True,
    )


def get_logger(name: str | None = None, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to initial_values."""
    return structlog.get_logger(name, **initial_values)
