"""Logging setup for the translation API and its packages."""

import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from common.config import settings
from common.utils import DateTimeUtils

CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
FILE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Top-level packages whose module loggers share the service handlers
APP_PACKAGES = ("manager", "translator", "common")

# Libraries that are chatty at INFO
THIRD_PARTY_LOGGERS = ("openai", "httpx", "httpcore", "redis", "asyncio", "multipart")


def get_log_file_path(service_name: str) -> str:
    """Daily log file of a service, e.g. ``./logs/manager_20240101.log``."""
    date_string = DateTimeUtils.get_date_string_for_log_file()
    return f"./logs/{service_name}_{date_string}.log"


def build_handlers(level: int, log_file: Optional[str] = None) -> List[logging.Handler]:
    """
    Console handler plus an optional file handler.

    Args:
        level: Numeric log level for every handler
        log_file: Path of the log file; its directory is created if needed

    Returns:
        Handlers ready to attach to a logger
    """
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    handlers: List[logging.Handler] = [console_handler]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_logging(
    logger_names: Iterable[str],
    log_file: Optional[str] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Attach one shared set of handlers to each named logger.

    Existing handlers are replaced, so calling this twice does not duplicate
    output. The loggers stop propagating to the root logger.

    Args:
        logger_names: Logger names, usually top-level package names
        log_file: Optional log file path; console only when None
        log_level: Level name override; defaults to settings.log_level
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    handlers = build_handlers(level, log_file)

    for name in logger_names:
        package_logger = logging.getLogger(name)
        package_logger.setLevel(level)
        package_logger.handlers.clear()
        for handler in handlers:
            package_logger.addHandler(handler)
        package_logger.propagate = False


def configure_third_party_loggers(level: str = "WARNING") -> None:
    """Raise the level of noisy library loggers."""
    log_level = getattr(logging, level.upper(), logging.WARNING)
    for logger_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(log_level)


def setup_service_logging(
    service_name: str,
    enable_file_logging: bool = True,
    packages: Iterable[str] = APP_PACKAGES,
) -> logging.Logger:
    """
    Configure logging for a service process.

    Module loggers of every package in ``packages`` write to the same console
    (and, if enabled, the same daily file named after ``service_name``).

    Args:
        service_name: Name of the service, also used for the log file name
        enable_file_logging: Whether to also write to ./logs
        packages: Package loggers to configure

    Returns:
        The service's own logger
    """
    configure_third_party_loggers()
    log_file = get_log_file_path(service_name) if enable_file_logging else None
    names = list(dict.fromkeys([service_name, *packages]))
    setup_logging(names, log_file)
    return logging.getLogger(service_name)
