# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for mail-courier.

Modules obtain named loggers through :func:`get_logger`. Handlers, level and
format are configured once, at the entry point, by :func:`configure_logging`
to avoid duplicate handlers.

Example:
    Typical usage in a module::

        from mail_courier.logger import get_logger

        logger = get_logger("transport")
        logger.info("Frame sent: %d bytes", size)
"""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "mail_courier") -> logging.Logger:
    """Retrieve a logger under the ``mail_courier`` namespace.

    Args:
        name: Logger name. Names without the ``mail_courier`` prefix are
            nested below it so a single level setting covers the package.

    Returns:
        A ``logging.Logger`` instance bound to the given name.

    Example:
        >>> logger = get_logger("publisher")
        >>> logger.name
        'mail_courier.publisher'
    """
    if name != "mail_courier" and not name.startswith("mail_courier."):
        name = f"mail_courier.{name}"
    return logging.getLogger(name)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for a command-line run.

    Args:
        level: Level name (DEBUG, INFO, ...). Falls back to ``GMC_LOG_LEVEL``
            and then to INFO. Unknown names resolve to INFO.
    """
    level_name = (level or os.getenv("GMC_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        force=True,  # Force reconfiguration to avoid duplicate handlers
    )
