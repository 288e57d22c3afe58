"""
Logging Configuration
Sets up and tears down the logger for the 'cctools' namespace.
"""
import logging
import os
import sys
from datetime import datetime
from typing import Optional

PACKAGE_LOGGER = "cctools"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
) -> Optional[str]:
    """
    Configures the logger for the 'cctools' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
        log_dir: Optional directory; a timestamped log file is created inside it.
            Ignored when log_file is given.

    Returns:
        Path of the log file, or None when logging to the console only.
    """
    # Get the logger for our package
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    # Check if handlers already exist to avoid duplicate logs during re-initialization
    if logger.hasHandlers():
        _close_handlers(logger)

    # 1. Console Handler (stdout)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    # Format: Time - Module - Level - Message
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

    # 2. File Handler (Optional)
    if log_file is None and log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        log_file = os.path.join(log_dir, f"log_{timestamp}.txt")

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.info("Logging initialized.")
    return log_file


def teardown_logging() -> None:
    """Flushes, closes and removes every handler of the package logger."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.debug("Logging shut down.")
    _close_handlers(logger)


def enable_trace() -> None:
    """Log everything, including debug output of the interpolation."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)
    for handler in logger.handlers:
        handler.setLevel(logging.DEBUG)


def deactivate() -> None:
    """Disable all logging output of the package."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    _close_handlers(logger)
    logger.addHandler(logging.NullHandler())


def format_scientific(value: float) -> str:
    """
    Format a float for log messages.

    Values between 1e-4 and 1e4 (in magnitude) are printed normally,
    everything else in scientific notation.
    """
    if 1e-4 < abs(value) < 1e4:
        return f"{value:f}"
    return f"{value:e}"


def _close_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.flush()
        handler.close()
        logger.removeHandler(handler)
