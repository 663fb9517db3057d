"""
Logging configuration for the Match Screenshot Recognition service.
Console output plus an optional log file; module loggers hang off one root.
"""

import logging
import sys
import time
from contextlib import contextmanager
from config import LogConfig

ROOT_NAME = "matchscan"


def setup_logger(name: str = ROOT_NAME) -> logging.Logger:
    """
    Set up and return a configured logger instance.

    Args:
        name: Logger name (default: "matchscan")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    level = getattr(logging, LogConfig.LEVEL.upper(), logging.INFO)
    logger.setLevel(level)

    formatter = logging.Formatter(
        fmt=LogConfig.FORMAT,
        datefmt=LogConfig.DATE_FORMAT
    )

    # Console handler (always enabled)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (optional)
    if LogConfig.FILE:
        file_handler = logging.FileHandler(LogConfig.FILE)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


app_logger = setup_logger(ROOT_NAME)


def debug(msg: str, *args, **kwargs):
    """Log debug message."""
    app_logger.debug(msg, *args, **kwargs)


def info(msg: str, *args, **kwargs):
    """Log info message."""
    app_logger.info(msg, *args, **kwargs)


def warning(msg: str, *args, **kwargs):
    """Log warning message."""
    app_logger.warning(msg, *args, **kwargs)


def error(msg: str, *args, **kwargs):
    """Log error message."""
    app_logger.error(msg, *args, **kwargs)


def critical(msg: str, *args, **kwargs):
    """Log critical message."""
    app_logger.critical(msg, *args, **kwargs)


def get_logger(module_name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Module loggers carry no handlers of their own and propagate to the
    "matchscan" root, so each record is written once.

    Args:
        module_name: Name of the module (e.g., "worker", "ocr.tesseract")

    Returns:
        Logger instance for the module
    """
    return logging.getLogger(f"{ROOT_NAME}.{module_name}")


def configure_worker_logging() -> logging.Logger:
    """Set up logging inside a spawned worker process."""
    setup_logger(ROOT_NAME)
    return get_logger("worker")


@contextmanager
def log_duration(logger: logging.Logger, stage: str, label: str = ""):
    """Log how long a pipeline stage took at DEBUG level."""
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{stage} {label} took {elapsed_ms:.1f} ms".replace("  ", " "))
