"""
Logging configuration for dockerrun.

Handlers live on the ``dockerrun`` logger only; module loggers obtained
through ``get_logger(__name__)`` propagate to it.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

SERVICE_LOGGER_NAME = "dockerrun"
LOG_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger, configuring the service logger on first use.

    Args:
        name: Logger name, usually ``__name__``. Defaults to the service logger.

    Returns:
        Logger instance.
    """
    service_logger = logging.getLogger(SERVICE_LOGGER_NAME)
    if not service_logger.handlers:
        configure_logger(service_logger)

    if name is None or name == SERVICE_LOGGER_NAME:
        return service_logger
    if not name.startswith(SERVICE_LOGGER_NAME + "."):
        name = f"{SERVICE_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logger(
    logger_instance: logging.Logger,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> None:
    """
    Replace the handlers of ``logger_instance`` with a stdout handler and,
    when a log file is configured, a file handler.

    ``level`` and ``log_file`` fall back to DOCKERRUN_LOG_LEVEL and
    DOCKERRUN_LOG_FILE.
    """
    level_name = (level or os.environ.get("DOCKERRUN_LOG_LEVEL", "INFO")).upper()
    logger_instance.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in list(logger_instance.handlers):
        logger_instance.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    log_file = log_file or os.environ.get("DOCKERRUN_LOG_FILE")
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            logger_instance.addHandler(file_handler)
        except OSError as e:
            # If file logging fails, just use console
            print(f"Warning: Could not set up file logging: {e}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger_instance.addHandler(console_handler)


logger = get_logger()

__all__ = ["get_logger", "logger", "configure_logger"]
