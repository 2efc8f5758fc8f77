import logging

from core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once for the API and the Celery worker."""
    logging.basicConfig(level=level or settings.LOG_LEVEL, format=LOG_FORMAT)
    # SQL echo is controlled by SQLALCHEMY_ECHO, keep the engine logger quiet otherwise
    if not settings.SQLALCHEMY_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
