"""Logging configuration for keyrotate."""

import logging
import sys
from typing import Optional


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Setup logging configuration for the CLI.

    Args:
        verbose: Enable verbose/debug logging
        log_file: Optional log file path
    """
    level = logging.DEBUG if verbose else logging.WARNING

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if log_file else level)

    # Repeated invocations in one process (tests, embedding) must not stack handlers
    for handler in list(root_logger.handlers):
        if getattr(handler, "_keyrotate", False):
            root_logger.removeHandler(handler)
            handler.close()

    console_handler._keyrotate = True  # type: ignore[attr-defined]
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler._keyrotate = True  # type: ignore[attr-defined]
        root_logger.addHandler(file_handler)

    logging.getLogger("keyrotate").setLevel(logging.DEBUG if (verbose or log_file) else logging.INFO)
