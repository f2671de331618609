import logging

from config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure application-wide logging from settings.

    Uvicorn's loggers follow the same level so request logs and app logs agree.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(level)
