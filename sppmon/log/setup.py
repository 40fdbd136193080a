import sys
import logging
from pathlib import Path
from typing import Optional, Union


class MainFormatter(logging.Formatter):
    """Formatter shared by the console and file handlers."""

    FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'

    def __init__(self) -> None:
        super().__init__(self.FORMAT)


def setup_logging(console_level: int = logging.INFO, log_file: Optional[Union[str, Path]] = None) -> None:
    """
    Configures the root logger for the application.
    This sets up a console handler and, optionally, a file handler,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_file: Optional path of a file receiving every record at DEBUG level.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler (stderr, stdout is reserved for command output) ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- File Handler (conditional) ---
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MainFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler at '{log_file}': {e}")


def set_console_level(level: int) -> bool:
    """
    Reconfigures the console handler's level directly.

    :return: True if a console handler was found and updated.
    """
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)
            return True
    return False
