import logging

from core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the API process and the Celery worker."""
    logging.basicConfig(level=getattr(logging, level or settings.LOG_LEVEL, logging.INFO), format=LOG_FORMAT)
    # SQL echo is controlled through SQLALCHEMY_ECHO, keep the engine logger quiet otherwise
    if not settings.SQLALCHEMY_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
