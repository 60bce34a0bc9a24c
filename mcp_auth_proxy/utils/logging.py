"""Logging configuration for the MCP auth proxy."""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


def get_log_directory() -> str:
    """Get the logs directory at the project root, creating it if needed"""
    log_dir = os.getenv("AUTH_PROXY_LOG_DIR") or os.path.abspath(
        os.path.join(os.path.dirname(__file__), "../../logs")
    )
    os.makedirs(log_dir, exist_ok=True)
    return log_dir


def configure_logging(log_level: Optional[str] = None, log_to_file: bool = True):
    """
    Configure root logging for the application.

    Args:
        log_level: Level name for file output (defaults to LOG_LEVEL env var or INFO)
        log_to_file: Also write a rotating log file under the logs directory

    Returns:
        The configured root logger
    """
    log_level_str = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, log_level_str, logging.INFO)

    # Console gets INFO or higher unless DEBUG was asked for explicitly
    console_level = logging.DEBUG if log_level_str == "DEBUG" else max(logging.INFO, level)

    root_logger = logging.getLogger()
    root_logger.setLevel(min(level, console_level))

    # Remove any existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter("%(asctime)s [%(levelname)s] [%(name)s] %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(console_level)
    root_logger.addHandler(console_handler)

    if log_to_file:
        file_handler = RotatingFileHandler(
            os.path.join(get_log_directory(), "app.log"),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    # Third-party loggers log at the file level through our handlers
    for logger_name in ["aiohttp", "httpx", "asyncio"]:
        third_party_logger = logging.getLogger(logger_name)
        third_party_logger.setLevel(level)
        third_party_logger.propagate = True

    return root_logger
