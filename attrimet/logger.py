"""
Logging configuration
"""
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logger(level: str = "INFO", colorize: bool = True):
    """Replace loguru's default handler with the attrimet console format."""
    logger.remove()
    logger.add(sys.stderr, colorize=colorize, format=LOG_FORMAT, level=level)
    return logger


log = logger
