import sys

from loguru import logger

from intentcad.config import settings

LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{process.name} | <cyan>{name}</cyan> - {message}"
)


def configure_logging(level: str | None = None) -> None:
    """Route all intentcad logging to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=(level or settings.log_level))
