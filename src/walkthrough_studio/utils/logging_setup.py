"""Handler setup for the command-line and web entry points."""

import logging
from typing import Optional, Union

from ..config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[Union[str, int]] = None) -> logging.Logger:
    """Attach one stream handler to the package logger.

    Calling it again only changes the level.
    """
    level = level or Config.LOG_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger("walkthrough_studio")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
