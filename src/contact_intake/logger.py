"""Logging utilities for the contact intake service.

This module provides a centralized logging helper. Handlers and format are
installed once by the entry point through :func:`configure_logging`; library
modules only ask for named loggers.

Example:
    Typical usage in a module::

        from contact_intake.logger import get_logger

        logger = get_logger("contact_intake.core")
        logger.info("Submission accepted")
"""

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "ContactIntake") -> logging.Logger:
    """Retrieve a logger instance.

    Args:
        name: The logger name. Defaults to "ContactIntake".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler used by the server and the CLI.

    Unknown level names fall back to INFO.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,
    )
