"""Logging helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{message}</cyan>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} {level} {name} {message}"


def setup_logging(level: str = "INFO", log_file: Optional[Union[str, Path]] = None) -> None:
    """Replace loguru's default sink with a console sink and an optional rotating file."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=CONSOLE_FORMAT)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(path),
            level=level.upper(),
            format=FILE_FORMAT,
            rotation="2 MB",
            retention=3,
            enqueue=True,
        )
